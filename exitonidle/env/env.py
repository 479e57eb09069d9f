from __future__ import annotations
import os
from pydantic import BaseModel, StrictBool, StrictStr, StrictInt
from typing import Callable, Dict, Literal, Union

from .time_parser import TimeParser

PrimaryType = Union[str, int, float, bytes, bool]


def parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


class Env(BaseModel):
    EXIT_ON_IDLE_BUS_HOST: StrictStr = "127.0.0.1"
    EXIT_ON_IDLE_BUS_PORT: StrictInt = 7755
    EXIT_ON_IDLE_BUS_NAME: StrictStr = "org.verbum.TestExitOnIdle"
    EXIT_ON_IDLE_OBJECT_PATH: StrictStr = "/org/verbum/counter"
    EXIT_ON_IDLE_INTERFACE: StrictStr = "org.verbum.Counter"

    # Service settings
    EXIT_ON_IDLE_IDLE_TIMEOUT_MIN_MS: StrictInt = 0
    EXIT_ON_IDLE_IDLE_TIMEOUT_MS: StrictInt = 2000
    EXIT_ON_IDLE_SAVE_TIMEOUT_MIN_MS: StrictInt = 0
    EXIT_ON_IDLE_SAVE_TIMEOUT_MS: StrictInt = 1000
    EXIT_ON_IDLE_EXIT_SLEEP_MS: StrictInt = 3000
    EXIT_ON_IDLE_SESSION: StrictBool = False
    EXIT_ON_IDLE_RACY_EXIT: StrictBool = False
    EXIT_ON_IDLE_STATE_PATH: StrictStr | None = None
    EXIT_ON_IDLE_NOTIFY: Literal["bus", "systemd", "none"] = "bus"

    # Client settings
    EXIT_ON_IDLE_CLIENT_MIN_FREQ_MS: StrictInt = 100
    EXIT_ON_IDLE_CLIENT_MAX_FREQ_MS: StrictInt = 2000
    EXIT_ON_IDLE_CLIENT_PERIOD_MS: StrictInt = 1000
    EXIT_ON_IDLE_STATUS_INTERVAL: StrictStr = "3s"

    # Logging
    EXIT_ON_IDLE_LOG_LEVEL: StrictStr = "info"
    EXIT_ON_IDLE_LOG_OUTPUT: Literal["stdout", "stderr"] = "stderr"
    EXIT_ON_IDLE_LOGS_DIRECTORY: StrictStr | None = None

    @classmethod
    def types_map(cls) -> Dict[str, Callable[[str], PrimaryType]]:
        return {
            "EXIT_ON_IDLE_BUS_HOST": str,
            "EXIT_ON_IDLE_BUS_PORT": int,
            "EXIT_ON_IDLE_BUS_NAME": str,
            "EXIT_ON_IDLE_OBJECT_PATH": str,
            "EXIT_ON_IDLE_INTERFACE": str,
            "EXIT_ON_IDLE_IDLE_TIMEOUT_MIN_MS": int,
            "EXIT_ON_IDLE_IDLE_TIMEOUT_MS": int,
            "EXIT_ON_IDLE_SAVE_TIMEOUT_MIN_MS": int,
            "EXIT_ON_IDLE_SAVE_TIMEOUT_MS": int,
            "EXIT_ON_IDLE_EXIT_SLEEP_MS": int,
            "EXIT_ON_IDLE_SESSION": parse_bool,
            "EXIT_ON_IDLE_RACY_EXIT": parse_bool,
            "EXIT_ON_IDLE_STATE_PATH": str,
            "EXIT_ON_IDLE_NOTIFY": str,
            "EXIT_ON_IDLE_CLIENT_MIN_FREQ_MS": int,
            "EXIT_ON_IDLE_CLIENT_MAX_FREQ_MS": int,
            "EXIT_ON_IDLE_CLIENT_PERIOD_MS": int,
            "EXIT_ON_IDLE_STATUS_INTERVAL": str,
            "EXIT_ON_IDLE_LOG_LEVEL": str,
            "EXIT_ON_IDLE_LOG_OUTPUT": str,
            "EXIT_ON_IDLE_LOGS_DIRECTORY": str,
        }

    def get_bus_address(self) -> tuple[str, int]:
        return (
            self.EXIT_ON_IDLE_BUS_HOST,
            self.EXIT_ON_IDLE_BUS_PORT,
        )

    def get_status_interval(self) -> float:
        return TimeParser(self.EXIT_ON_IDLE_STATUS_INTERVAL).time

    def get_state_path(self) -> str:
        """
        Resolve where the counter is persisted.

        An explicit EXIT_ON_IDLE_STATE_PATH wins. Otherwise the session
        scope keeps state next to the process, while the system scope
        uses the fixed location under /var/lib.
        """
        if self.EXIT_ON_IDLE_STATE_PATH:
            return self.EXIT_ON_IDLE_STATE_PATH

        if self.EXIT_ON_IDLE_SESSION:
            return os.path.join(os.getcwd(), "counter")

        return os.path.join(
            "/var/lib",
            self.EXIT_ON_IDLE_BUS_NAME,
            "counter",
        )

    def get_idle_range(self) -> tuple[int, int]:
        return (
            self.EXIT_ON_IDLE_IDLE_TIMEOUT_MIN_MS,
            self.EXIT_ON_IDLE_IDLE_TIMEOUT_MS,
        )

    def get_save_range(self) -> tuple[int, int]:
        return (
            self.EXIT_ON_IDLE_SAVE_TIMEOUT_MIN_MS,
            self.EXIT_ON_IDLE_SAVE_TIMEOUT_MS,
        )
