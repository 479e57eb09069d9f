from __future__ import annotations

import asyncio

from exitonidle.errors import CallEngineStopped, ExitOnIdleError
from exitonidle.persistence import MAX_COUNTER

from .load_generator import LoadGenerator
from .rpc_call_engine import RPCCallEngine


class PeriodicLoadGenerator(LoadGenerator):
    """
    Fixed-period load that re-syncs on every appearance.

    Each time the service appears the previous engine is dropped, a fresh
    Get re-reads the counter and, unless one is already running, a loop
    starts sending Inc every period without waiting for replies. The loop
    is cancelled when the service vanishes.
    """

    variant = "periodic"

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._periodic: asyncio.Task | None = None
        self.resyncs = 0

    @property
    def loop_armed(self) -> bool:
        return self._periodic is not None and not self._periodic.done()

    def service_appeared(self):
        engine = self.create_engine()
        self.track(self._resync(engine))

        if not self.loop_armed:
            self._periodic = self.track(self._increment_periodically())

    def service_vanished(self):
        if self._periodic is not None:
            self._periodic.cancel()
            self._periodic = None

    async def _resync(self, engine: RPCCallEngine):
        context = self.context

        try:
            counter = await engine.get()

        except (CallEngineStopped, ExitOnIdleError):
            return

        self.resyncs += 1
        context.last_counter = counter
        context.expected_counter = counter
        context.baselined = True

        await context.log_info(f"Initial counter: {counter}")

    async def _increment_periodically(self):
        context = self.context
        period = context.config.period_ms / 1000

        while not context.fault.is_set:
            await asyncio.sleep(period)

            try:
                context.engine.increment()

            except CallEngineStopped:
                return

            context.expected_counter = (context.expected_counter + 1) & MAX_COUNTER
            context.increments += 1
