import msgspec

from exitonidle.env import Env


class ClientConfig(msgspec.Struct, kw_only=True):
    bus_name: str = "org.verbum.TestExitOnIdle"
    object_path: str = "/org/verbum/counter"
    interface: str = "org.verbum.Counter"
    min_freq_ms: int = 100
    max_freq_ms: int = 2000
    period_ms: int = 1000
    status_interval: float = 3.0
    reactivate: bool = True

    @classmethod
    def from_env(cls, env: Env) -> "ClientConfig":
        return cls(
            bus_name=env.EXIT_ON_IDLE_BUS_NAME,
            object_path=env.EXIT_ON_IDLE_OBJECT_PATH,
            interface=env.EXIT_ON_IDLE_INTERFACE,
            min_freq_ms=env.EXIT_ON_IDLE_CLIENT_MIN_FREQ_MS,
            max_freq_ms=env.EXIT_ON_IDLE_CLIENT_MAX_FREQ_MS,
            period_ms=env.EXIT_ON_IDLE_CLIENT_PERIOD_MS,
            status_interval=env.get_status_interval(),
        )
