import asyncio
import signal

import click
import uvloop

from exitonidle.bus import BusDaemon, SubprocessActivator
from exitonidle.env import Env, load_env
from exitonidle.logging import LoggingConfig


@click.command(help="Run the message bus that routes calls and activates the service.")
@click.option("--host", type=str, default=None)
@click.option("--port", type=int, default=None)
@click.option(
    "--activate",
    "activations",
    multiple=True,
    help="Activatable name as NAME=COMMAND. May be repeated.",
)
@click.option("--log-level", type=str, default=None)
@click.option("--env-file", type=str, default=None)
def run(
    host: str | None,
    port: int | None,
    activations: tuple[str, ...],
    log_level: str | None,
    env_file: str | None,
):
    env = load_env(
        env_file=env_file,
        override={
            "EXIT_ON_IDLE_BUS_HOST": host,
            "EXIT_ON_IDLE_BUS_PORT": port,
            "EXIT_ON_IDLE_LOG_LEVEL": log_level,
        },
    )

    try:
        commands = dict(
            SubprocessActivator.parse_command(activation)
            for activation in activations
        )

    except ValueError as err:
        raise click.BadParameter(str(err), param_hint="--activate") from err

    uvloop.run(run_daemon(env, commands))


async def run_daemon(
    env: Env,
    commands: dict[str, list[str]],
):
    LoggingConfig().update(
        log_directory=env.EXIT_ON_IDLE_LOGS_DIRECTORY,
        log_level=env.EXIT_ON_IDLE_LOG_LEVEL,
        log_output=env.EXIT_ON_IDLE_LOG_OUTPUT,
    )

    host, port = env.get_bus_address()
    daemon = BusDaemon(
        host,
        port,
        activations=commands,
        env=env,
    )

    await daemon.start()

    stopped = asyncio.Event()
    loop = asyncio.get_running_loop()

    for signum in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(signum, stopped.set)

    await stopped.wait()
    await daemon.shutdown()
