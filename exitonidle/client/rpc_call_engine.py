from __future__ import annotations

import asyncio
from typing import Any, Callable

from exitonidle.bus import Bus
from exitonidle.errors import (
    CallEngineStopped,
    ExitOnIdleError,
    ProtocolViolationError,
)
from exitonidle.fault import AsyncFault
from exitonidle.persistence import MAX_COUNTER

from .client_config import ClientConfig


def _expect_no_value(method: str, value: Any):
    if value is not None:
        raise ProtocolViolationError(
            f"{method} returned a value",
            method=method,
            value=value,
        )


def _expect_counter(method: str, value: Any):
    if (
        not isinstance(value, int)
        or isinstance(value, bool)
        or value < 0
        or value > MAX_COUNTER
    ):
        raise ProtocolViolationError(
            f"{method} did not return an unsigned 32-bit integer",
            method=method,
            value=value,
        )


class RPCCallEngine:
    """
    Issues Inc and Get calls against the counter object.

    Every call runs as its own task so callers may have several in flight
    at once. The first error from any call lands in the shared AsyncFault;
    after that the engine refuses to start new calls, while calls already
    in flight finish and report their own outcome.
    """

    def __init__(
        self,
        bus: Bus,
        config: ClientConfig,
        fault: AsyncFault,
    ) -> None:
        self._bus = bus
        self._config = config
        self.fault = fault
        self._in_flight: set[asyncio.Task] = set()

        self.calls_issued = 0
        self.calls_completed = 0

    @property
    def stopped(self) -> bool:
        return self.fault.is_set

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def increment(self) -> asyncio.Task[None]:
        return self._issue("Inc", _expect_no_value)

    def get(self) -> asyncio.Task[int]:
        return self._issue("Get", _expect_counter)

    def _issue(
        self,
        method: str,
        validate: Callable[[str, Any], None],
    ) -> asyncio.Task:
        if self.fault.is_set:
            raise CallEngineStopped(
                f"Refusing to call {method} after a fault",
                fault=str(self.fault.error),
            )

        task = asyncio.ensure_future(
            self._call(method, validate),
        )

        self.calls_issued += 1
        self._in_flight.add(task)
        task.add_done_callback(self._complete)

        return task

    async def _call(
        self,
        method: str,
        validate: Callable[[str, Any], None],
    ) -> Any:
        try:
            value = await self._bus.call(
                self._config.bus_name,
                self._config.object_path,
                self._config.interface,
                method,
            )

            validate(method, value)

            return value

        except ExitOnIdleError as err:
            self.fault.set(err)
            raise

    def _complete(self, task: asyncio.Task):
        self._in_flight.discard(task)
        self.calls_completed += 1

        if not task.cancelled():
            # Failures already went to the fault slot.
            task.exception()

    async def drain(self):
        if self._in_flight:
            await asyncio.gather(
                *list(self._in_flight),
                return_exceptions=True,
            )

    async def cancel(self):
        for task in list(self._in_flight):
            task.cancel()

        await self.drain()
