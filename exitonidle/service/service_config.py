import msgspec

from exitonidle.env import Env


class ServiceConfig(msgspec.Struct, kw_only=True):
    bus_name: str = "org.verbum.TestExitOnIdle"
    object_path: str = "/org/verbum/counter"
    interface: str = "org.verbum.Counter"
    idle_range: tuple[int, int] = (0, 2000)
    save_range: tuple[int, int] = (0, 1000)
    exit_sleep_ms: int = 3000
    racy_exit: bool = False
    state_path: str = "counter"

    @classmethod
    def from_env(cls, env: Env) -> "ServiceConfig":
        return cls(
            bus_name=env.EXIT_ON_IDLE_BUS_NAME,
            object_path=env.EXIT_ON_IDLE_OBJECT_PATH,
            interface=env.EXIT_ON_IDLE_INTERFACE,
            idle_range=env.get_idle_range(),
            save_range=env.get_save_range(),
            exit_sleep_ms=env.EXIT_ON_IDLE_EXIT_SLEEP_MS,
            racy_exit=env.EXIT_ON_IDLE_RACY_EXIT,
            state_path=env.get_state_path(),
        )
