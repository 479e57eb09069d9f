from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from exitonidle.bus import Bus
from exitonidle.fault import AsyncFault
from exitonidle.logging import Logger
from exitonidle.logging.exit_on_idle_logging_models import (
    ClientDebug,
    ClientError,
    ClientInfo,
)

from .client_config import ClientConfig
from .rpc_call_engine import RPCCallEngine


@dataclass
class ClientContext:
    config: ClientConfig
    bus: Bus
    fault: AsyncFault = field(default_factory=AsyncFault)
    logger: Logger = field(default_factory=Logger)
    engine: RPCCallEngine | None = None
    owner: str | None = None
    expected_counter: int = 0
    increments: int = 0
    last_counter: int | None = None
    baselined: bool = False
    appearances: int = 0
    vanishes: int = 0

    @property
    def present(self) -> bool:
        return self.owner is not None

    def get_log_context(self) -> dict[str, Any]:
        return {
            "bus_name": self.config.bus_name,
            "expected_counter": self.expected_counter,
            "increments": self.increments,
        }

    async def log_debug(self, message: str) -> None:
        await self.logger.log(ClientDebug(message=message, **self.get_log_context()))

    async def log_info(self, message: str) -> None:
        await self.logger.log(ClientInfo(message=message, **self.get_log_context()))

    async def log_error(self, message: str) -> None:
        await self.logger.log(ClientError(message=message, **self.get_log_context()))
