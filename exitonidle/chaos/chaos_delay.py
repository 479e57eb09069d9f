import asyncio
import random


class ChaosDelay:
    """
    Injectable race-widening delay.

    The service awaits this at the points of its shutdown sequence where
    in-flight calls and supervisor decisions can interleave. A zero upper
    bound makes every sleep a plain yield to the event loop, which keeps
    tests deterministic; a wide range amplifies ordering bugs.
    """

    def __init__(
        self,
        max_ms: int = 0,
        min_ms: int = 0,
        rng: random.Random | None = None,
    ) -> None:
        if max_ms < min_ms:
            raise ValueError(
                f"Chaos delay upper bound {max_ms} ms is below lower bound {min_ms} ms"
            )

        self.min_ms = min_ms
        self.max_ms = max_ms
        self._rng = rng or random.Random()
        self.history: list[tuple[str, int]] = []

    @classmethod
    def disabled(cls) -> "ChaosDelay":
        return cls(max_ms=0)

    def draw(self) -> int:
        if self.max_ms <= self.min_ms:
            return self.min_ms

        return self._rng.randrange(self.min_ms, self.max_ms)

    async def sleep(self, point: str) -> int:
        delay_ms = self.draw()
        self.history.append((point, delay_ms))

        await asyncio.sleep(delay_ms / 1000)

        return delay_ms
