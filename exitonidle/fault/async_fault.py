import asyncio


class AsyncFault:
    """
    Sticky first-error slot shared by everything running on one loop.

    The first error handed to set() is kept; every later one is dropped.
    Once set, the slot never clears, and wait() returns immediately.
    """

    def __init__(self) -> None:
        self._error: Exception | None = None
        self._event = asyncio.Event()
        self.discarded: list[Exception] = []

    @property
    def error(self) -> Exception | None:
        return self._error

    @property
    def is_set(self) -> bool:
        return self._error is not None

    def set(self, error: Exception) -> bool:
        if self._error is not None:
            self.discarded.append(error)
            return False

        self._error = error
        self._event.set()

        return True

    def raise_if_set(self):
        if self._error is not None:
            raise self._error

    async def wait(self) -> Exception:
        await self._event.wait()
        return self._error
