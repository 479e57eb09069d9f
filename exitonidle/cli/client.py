import asyncio
import signal

import click
import uvloop

from exitonidle.bus import TCPBus
from exitonidle.client import (
    ClientConfig,
    ContinuousLoadGenerator,
    LoadGenerator,
    PeriodicLoadGenerator,
)
from exitonidle.env import Env, load_env
from exitonidle.logging import LoggingConfig


@click.command(help="Drive load against the counter service and check its answers.")
@click.option(
    "--variant",
    type=click.Choice(["continuous", "periodic"]),
    default="continuous",
    show_default=True,
)
@click.option("--min-freq", type=int, default=None, help="Minimum delay between iterations in milliseconds.")
@click.option("--max-freq", type=int, default=None, help="Maximum delay between iterations in milliseconds.")
@click.option("--period", type=int, default=None, help="Increment period of the periodic variant in milliseconds.")
@click.option("--host", type=str, default=None, help="Bus daemon host.")
@click.option("--port", type=int, default=None, help="Bus daemon port.")
@click.option("--log-level", type=str, default=None)
@click.option("--env-file", type=str, default=None)
def run(
    variant: str,
    min_freq: int | None,
    max_freq: int | None,
    period: int | None,
    host: str | None,
    port: int | None,
    log_level: str | None,
    env_file: str | None,
):
    env = load_env(
        env_file=env_file,
        override={
            "EXIT_ON_IDLE_CLIENT_MIN_FREQ_MS": min_freq,
            "EXIT_ON_IDLE_CLIENT_MAX_FREQ_MS": max_freq,
            "EXIT_ON_IDLE_CLIENT_PERIOD_MS": period,
            "EXIT_ON_IDLE_BUS_HOST": host,
            "EXIT_ON_IDLE_BUS_PORT": port,
            "EXIT_ON_IDLE_LOG_LEVEL": log_level,
        },
    )

    exit_code = uvloop.run(run_client(env, variant))

    raise SystemExit(exit_code)


async def run_client(env: Env, variant: str) -> int:
    LoggingConfig().update(
        log_directory=env.EXIT_ON_IDLE_LOGS_DIRECTORY,
        log_level=env.EXIT_ON_IDLE_LOG_LEVEL,
        log_output=env.EXIT_ON_IDLE_LOG_OUTPUT,
    )

    host, port = env.get_bus_address()
    generator_type: type[LoadGenerator] = (
        PeriodicLoadGenerator if variant == "periodic" else ContinuousLoadGenerator
    )

    generator = generator_type(
        TCPBus(host, port),
        config=ClientConfig.from_env(env),
    )

    loop = asyncio.get_running_loop()
    for signum in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(signum, generator.stop)

    return await generator.run()
