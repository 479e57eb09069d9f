from __future__ import annotations

import asyncio

from exitonidle.errors import (
    CallEngineStopped,
    CounterMismatchError,
    ExitOnIdleError,
)
from exitonidle.persistence import MAX_COUNTER

from .load_generator import LoadGenerator


class ContinuousLoadGenerator(LoadGenerator):
    """
    Self-paced load with an oracle.

    The first Get after the service appears becomes the expected counter.
    Each iteration then sends Inc and Get back-to-back without waiting for
    Inc to be acknowledged, bumps the expectation, and requires Get to
    return exactly the new expectation. That only holds on a channel that
    delivers one connection's calls in order, and across restarts only if
    the service persisted every increment before it exited.

    The expectation survives the service vanishing: iterations pause and
    resume when the next instance appears, and the first Get it answers is
    checked against the count carried over from the previous instance.
    """

    variant = "continuous"

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._iteration: asyncio.TimerHandle | None = None
        self._initial_get: asyncio.Task | None = None
        self._checks_in_flight = 0
        self.iterations = 0

    @property
    def iteration_pending(self) -> bool:
        return self._iteration is not None

    def service_appeared(self):
        context = self.context

        if context.engine is None:
            self.create_engine()

        if not context.baselined:
            if self._initial_get is None or self._initial_get.done():
                self._initial_get = self.track(self._fetch_initial_counter())

            return

        if self._iteration is None and self._checks_in_flight == 0:
            self._schedule_iteration(self.draw_delay())

    def service_vanished(self):
        self._cancel_iteration()

    async def _fetch_initial_counter(self):
        context = self.context

        try:
            counter = await context.engine.get()

        except (CallEngineStopped, ExitOnIdleError):
            return

        context.expected_counter = counter
        context.last_counter = counter
        context.baselined = True

        await context.log_info(f"Initial counter: {counter}")

        if self.present and self._iteration is None:
            self._schedule_iteration(0)

    def _schedule_iteration(self, delay_ms: int):
        self._cancel_iteration()

        loop = asyncio.get_running_loop()
        self._iteration = loop.call_later(
            delay_ms / 1000,
            self._iterate,
        )

    def _cancel_iteration(self):
        if self._iteration is not None:
            self._iteration.cancel()
            self._iteration = None

    def _iterate(self):
        self._iteration = None
        context = self.context

        if not self.present or context.fault.is_set or self._closing:
            return

        try:
            context.engine.increment()
            get = context.engine.get()

        except CallEngineStopped:
            return

        context.expected_counter = (context.expected_counter + 1) & MAX_COUNTER
        context.increments += 1
        self.iterations += 1

        self._checks_in_flight += 1
        self.track(
            self._check(get, context.expected_counter),
        )

    async def _check(
        self,
        get: asyncio.Task[int],
        expected: int,
    ):
        context = self.context

        try:
            counter = await get

        except ExitOnIdleError:
            return

        finally:
            self._checks_in_flight -= 1

        context.last_counter = counter

        if counter != expected:
            context.fault.set(CounterMismatchError(expected, counter))
            return

        if self.present and not context.fault.is_set and not self._closing:
            self._schedule_iteration(self.draw_delay())
