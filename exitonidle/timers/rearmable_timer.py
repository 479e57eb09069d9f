import asyncio
import inspect
import random
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable


TimerCallback = Callable[[], Awaitable[Any] | Any]


class TimerKind(Enum):
    SAVE = "save"
    IDLE = "idle"


@dataclass(slots=True)
class PendingTimer:
    """A scheduled, not yet fired, one-shot timer."""

    kind: TimerKind
    delay_ms: int
    deadline: float
    handle: asyncio.TimerHandle


class RearmableTimer:
    """
    One-shot timer that is either armed with a deadline or idle.

    Re-arming is always cancel-then-schedule, so at most one live instance
    exists at any moment. When the timer fires it returns to idle before
    its callback runs, which lets the callback re-arm the same timer without
    racing its own cancellation.
    """

    def __init__(
        self,
        kind: TimerKind,
        callback: TimerCallback,
        delay_range: tuple[int, int],
        rng: random.Random | None = None,
    ) -> None:
        self.kind = kind
        self._callback = callback
        self._delay_range = self._validate_range(delay_range)
        self._rng = rng or random.Random()
        self._pending: PendingTimer | None = None
        self._callback_tasks: set[asyncio.Task] = set()

        self.armed_count = 0
        self.fired_count = 0

    def _validate_range(self, delay_range: tuple[int, int]):
        min_ms, max_ms = delay_range
        if min_ms < 0 or max_ms < min_ms:
            raise ValueError(
                f"Invalid {self.kind.value} timer range: [{min_ms}, {max_ms}] ms"
            )

        return (min_ms, max_ms)

    @property
    def pending(self) -> PendingTimer | None:
        return self._pending

    @property
    def is_pending(self) -> bool:
        return self._pending is not None

    @property
    def deadline(self) -> float | None:
        if self._pending is None:
            return None

        return self._pending.deadline

    def draw_delay(self, delay_range: tuple[int, int] | None = None) -> int:
        min_ms, max_ms = (
            self._validate_range(delay_range)
            if delay_range
            else self._delay_range
        )

        return self._rng.randint(min_ms, max_ms)

    def rearm(
        self,
        delay_range: tuple[int, int] | None = None,
        delay_ms: int | None = None,
    ) -> PendingTimer:
        self.cancel()

        if delay_ms is None:
            delay_ms = self.draw_delay(delay_range)

        loop = asyncio.get_running_loop()
        deadline = loop.time() + delay_ms / 1000

        pending = PendingTimer(
            kind=self.kind,
            delay_ms=delay_ms,
            deadline=deadline,
            handle=None,
        )

        pending.handle = loop.call_at(
            deadline,
            self._fire,
            pending,
        )

        self._pending = pending
        self.armed_count += 1

        return pending

    def arm_if_idle(
        self,
        delay_range: tuple[int, int] | None = None,
    ) -> PendingTimer | None:
        if self._pending is not None:
            return None

        return self.rearm(delay_range=delay_range)

    def cancel(self) -> bool:
        pending = self._pending
        if pending is None:
            return False

        self._pending = None
        pending.handle.cancel()

        return True

    def _fire(self, pending: PendingTimer):
        if self._pending is not pending:
            return

        self._pending = None
        self.fired_count += 1

        result = self._callback()

        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._callback_tasks.add(task)
            task.add_done_callback(self._callback_tasks.discard)

    async def drain(self):
        while self._callback_tasks:
            await asyncio.gather(*list(self._callback_tasks))


class TimerSet:
    """The service's save and idle timers."""

    def __init__(
        self,
        on_save: TimerCallback,
        on_idle: TimerCallback,
        save_range: tuple[int, int],
        idle_range: tuple[int, int],
        rng: random.Random | None = None,
    ) -> None:
        self.save = RearmableTimer(
            TimerKind.SAVE,
            on_save,
            save_range,
            rng=rng,
        )
        self.idle = RearmableTimer(
            TimerKind.IDLE,
            on_idle,
            idle_range,
            rng=rng,
        )

    def __getitem__(self, kind: TimerKind) -> RearmableTimer:
        match kind:
            case TimerKind.SAVE:
                return self.save

            case TimerKind.IDLE:
                return self.idle

    def cancel_all(self):
        self.save.cancel()
        self.idle.cancel()

    async def drain(self):
        await asyncio.gather(
            self.save.drain(),
            self.idle.drain(),
        )
