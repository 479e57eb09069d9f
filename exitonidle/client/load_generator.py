from __future__ import annotations

import asyncio
import random
from abc import ABC, abstractmethod
from typing import Coroutine

from exitonidle.bus import Bus
from exitonidle.errors import BusError, ExitOnIdleError, ServiceUnknownError
from exitonidle.fault import AsyncFault
from exitonidle.logging import Logger

from .client_config import ClientConfig
from .client_context import ClientContext
from .rpc_call_engine import RPCCallEngine


class LoadGenerator(ABC):
    """
    Shared lifecycle for the load generators.

    Watches the service's well-known name (auto-starting it), hands
    appearance and disappearance to the variant, prints a status line on
    an interval and runs until the fault slot is set or stop() is called.

    If the name is unowned at watch time the generator waits on the start
    request as well, so a service that fails to activate faults the client.

    Every variant tears its load loop down when the name vanishes. When
    reactivate is enabled the generator then asks the bus to start the
    service again, so load resumes once the next instance appears.
    """

    variant = "base"

    def __init__(
        self,
        bus: Bus,
        config: ClientConfig | None = None,
        fault: AsyncFault | None = None,
        rng: random.Random | None = None,
        logger: Logger | None = None,
    ) -> None:
        if config is None:
            config = ClientConfig()

        self.context = ClientContext(
            config=config,
            bus=bus,
            fault=fault or AsyncFault(),
            logger=logger or Logger(),
        )

        self._rng = rng or random.Random()
        self._watch_id: int | None = None
        self._status_task: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()
        self._engines: list[RPCCallEngine] = []
        self._stopped = asyncio.Event()
        self._closing = False

    @property
    def fault(self) -> AsyncFault:
        return self.context.fault

    @property
    def present(self) -> bool:
        return self.context.present

    def create_engine(self) -> RPCCallEngine:
        engine = RPCCallEngine(
            self.context.bus,
            self.context.config,
            self.context.fault,
        )

        self._engines.append(engine)
        self.context.engine = engine

        return engine

    async def start(self):
        context = self.context

        context.bus.on_disconnect(self._on_bus_lost)
        await context.bus.connect()

        self._status_task = asyncio.ensure_future(self._print_status())

        self._watch_id = await context.bus.watch_name(
            context.config.bus_name,
            self._on_appeared,
            self._on_vanished,
            auto_start=True,
        )

        if context.owner is None:
            self.track(self._request_start())

    async def run(self) -> int:
        context = self.context

        try:
            await self.start()

        except ExitOnIdleError as err:
            context.fault.set(err)

        if not context.fault.is_set:
            fault_waiter = asyncio.ensure_future(context.fault.wait())
            stop_waiter = asyncio.ensure_future(self._stopped.wait())

            await asyncio.wait(
                [fault_waiter, stop_waiter],
                return_when=asyncio.FIRST_COMPLETED,
            )

            for waiter in (fault_waiter, stop_waiter):
                waiter.cancel()

        exit_code = 0
        if context.fault.is_set:
            exit_code = 1
            await context.log_error(str(context.fault.error))

        await self.close()

        return exit_code

    def stop(self):
        self._stopped.set()

    @abstractmethod
    def service_appeared(self):
        """Start load against the newly appeared owner."""

    @abstractmethod
    def service_vanished(self):
        """Tear down load for the owner that just went away."""

    def draw_delay(self) -> int:
        min_ms = self.context.config.min_freq_ms
        max_ms = self.context.config.max_freq_ms

        if max_ms <= min_ms:
            return min_ms

        return self._rng.randrange(min_ms, max_ms)

    def track(self, coroutine: Coroutine) -> asyncio.Task:
        task = asyncio.ensure_future(coroutine)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        return task

    def _on_appeared(self, name: str, owner: str):
        context = self.context
        context.owner = owner
        context.appearances += 1

        self.track(context.log_debug(f"name now owned by: {owner}"))

        if context.fault.is_set or self._closing:
            return

        self.service_appeared()

    def _on_vanished(self, name: str):
        context = self.context
        had_owner = context.owner is not None

        context.owner = None
        self.track(context.log_debug("name now owned by: <none>"))

        if not had_owner:
            return

        context.vanishes += 1
        self.service_vanished()

        if (
            context.config.reactivate
            and not context.fault.is_set
            and not self._closing
        ):
            self.track(self._request_start())

    async def _request_start(self):
        context = self.context

        try:
            await context.bus.start_service(context.config.bus_name)

        except ServiceUnknownError:
            await context.log_debug("no activatable service; waiting for an owner")

        except ExitOnIdleError as err:
            if not self._closing:
                context.fault.set(err)

    def _on_bus_lost(self, exc: Exception | None):
        if self._closing:
            return

        self.context.fault.set(
            BusError(
                "Lost connection to the bus",
                reason=str(exc) if exc else None,
            )
        )

    async def _print_status(self):
        context = self.context

        while True:
            await asyncio.sleep(context.config.status_interval)
            await context.log_info(
                f"counter: {context.expected_counter}; increments: {context.increments}"
            )

    async def close(self):
        if self._closing:
            return

        self._closing = True
        context = self.context

        if context.present:
            self.service_vanished()

        if self._status_task is not None:
            self._status_task.cancel()

        for task in list(self._tasks):
            task.cancel()

        for engine in self._engines:
            await engine.cancel()

        pending = [
            task for task in [self._status_task, *self._tasks] if task is not None
        ]

        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        if self._watch_id is not None and not context.bus.closed:
            try:
                await context.bus.unwatch_name(self._watch_id)

            except BusError:
                pass

        if not context.bus.closed:
            await context.bus.close()

        await context.logger.close()
