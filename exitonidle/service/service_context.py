from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

from exitonidle.bus import Bus
from exitonidle.chaos import ChaosDelay
from exitonidle.errors import StateTransitionError
from exitonidle.fault import AsyncFault
from exitonidle.logging import Logger
from exitonidle.logging.exit_on_idle_logging_models import (
    ServiceDebug,
    ServiceError,
    ServiceInfo,
    ServiceTrace,
)
from exitonidle.persistence import CounterStore
from exitonidle.supervisor import Supervisor
from exitonidle.timers import TimerSet

from .service_config import ServiceConfig
from .service_state import ServiceState


@dataclass
class ServiceContext:
    """
    Everything the service's handlers and timer callbacks operate on.

    One context exists per service instance and is only touched from the
    event loop that runs it.
    """

    config: ServiceConfig
    bus: Bus
    supervisor: Supervisor
    store: CounterStore
    chaos: ChaosDelay
    fault: AsyncFault = field(default_factory=AsyncFault)
    logger: Logger = field(default_factory=Logger)
    counter: int = 0
    saved_counter: int | None = None
    state: ServiceState = ServiceState.RUNNING
    transitions: list[ServiceState] = field(
        default_factory=lambda: [ServiceState.RUNNING]
    )
    timers: TimerSet | None = None
    save_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    state_changed: asyncio.Event = field(default_factory=asyncio.Event)

    def transition(self, state: ServiceState):
        if not self.state.can_transition_to(state):
            raise StateTransitionError(
                f"Illegal transition {self.state.value} => {state.value}",
                current=self.state.value,
                requested=state.value,
            )

        self.state = state
        self.transitions.append(state)
        self.state_changed.set()

    def get_log_context(self) -> dict[str, Any]:
        return {
            "bus_name": self.config.bus_name,
            "state": self.state.value,
            "counter": self.counter,
        }

    async def log_trace(self, message: str) -> None:
        await self.logger.log(ServiceTrace(message=message, **self.get_log_context()))

    async def log_debug(self, message: str) -> None:
        await self.logger.log(ServiceDebug(message=message, **self.get_log_context()))

    async def log_info(self, message: str) -> None:
        await self.logger.log(ServiceInfo(message=message, **self.get_log_context()))

    async def log_error(self, message: str) -> None:
        await self.logger.log(ServiceError(message=message, **self.get_log_context()))
