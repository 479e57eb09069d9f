import click
import uvloop

from exitonidle.bus import TCPBus
from exitonidle.chaos import ChaosDelay
from exitonidle.env import Env, load_env
from exitonidle.logging import LoggingConfig
from exitonidle.service import CounterService, ServiceConfig
from exitonidle.supervisor import (
    BusNotifier,
    NullNotifier,
    Supervisor,
    SystemdNotifier,
)


@click.command(help="Serve the counter until idle, then flush and exit.")
@click.option("--idle-timeout", "-i", type=int, default=None, help="Idle timeout in milliseconds.")
@click.option("--save-timeout", "-s", type=int, default=None, help="Save timeout in milliseconds.")
@click.option("--exit-sleep", type=int, default=None, help="Upper bound of the race-widening sleeps in milliseconds.")
@click.option("--session", "-y", is_flag=True, default=False, help="Keep state in ./counter instead of /var/lib.")
@click.option("--racy-exit", is_flag=True, default=False, help="Do not announce STOPPING=1 before releasing the name.")
@click.option("--state-path", type=str, default=None, help="Explicit path of the counter file.")
@click.option(
    "--notify",
    type=click.Choice(["bus", "systemd", "none"]),
    default=None,
    help="Where READY=1 and STOPPING=1 are sent.",
)
@click.option("--host", type=str, default=None, help="Bus daemon host.")
@click.option("--port", type=int, default=None, help="Bus daemon port.")
@click.option("--log-level", type=str, default=None)
@click.option("--env-file", type=str, default=None)
def run(
    idle_timeout: int | None,
    save_timeout: int | None,
    exit_sleep: int | None,
    session: bool,
    racy_exit: bool,
    state_path: str | None,
    notify: str | None,
    host: str | None,
    port: int | None,
    log_level: str | None,
    env_file: str | None,
):
    env = load_env(
        env_file=env_file,
        override={
            "EXIT_ON_IDLE_IDLE_TIMEOUT_MS": idle_timeout,
            "EXIT_ON_IDLE_SAVE_TIMEOUT_MS": save_timeout,
            "EXIT_ON_IDLE_EXIT_SLEEP_MS": exit_sleep,
            "EXIT_ON_IDLE_SESSION": True if session else None,
            "EXIT_ON_IDLE_RACY_EXIT": True if racy_exit else None,
            "EXIT_ON_IDLE_STATE_PATH": state_path,
            "EXIT_ON_IDLE_NOTIFY": notify,
            "EXIT_ON_IDLE_BUS_HOST": host,
            "EXIT_ON_IDLE_BUS_PORT": port,
            "EXIT_ON_IDLE_LOG_LEVEL": log_level,
        },
    )

    exit_code = uvloop.run(run_service(env))

    raise SystemExit(exit_code)


def create_supervisor(env: Env, bus: TCPBus) -> Supervisor:
    match env.EXIT_ON_IDLE_NOTIFY:
        case "bus":
            return BusNotifier(bus)

        case "systemd":
            return SystemdNotifier()

        case _:
            return NullNotifier()


async def run_service(env: Env) -> int:
    LoggingConfig().update(
        log_directory=env.EXIT_ON_IDLE_LOGS_DIRECTORY,
        log_level=env.EXIT_ON_IDLE_LOG_LEVEL,
        log_output=env.EXIT_ON_IDLE_LOG_OUTPUT,
    )

    host, port = env.get_bus_address()
    bus = TCPBus(host, port)

    service = CounterService(
        bus,
        config=ServiceConfig.from_env(env),
        supervisor=create_supervisor(env, bus),
        chaos=ChaosDelay(max_ms=env.EXIT_ON_IDLE_EXIT_SLEEP_MS),
        install_signal_handlers=True,
    )

    return await service.run()
