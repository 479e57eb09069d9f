import asyncio
import os
import tempfile

from exitonidle.errors import PersistenceLoadError, PersistenceSaveError


MAX_COUNTER = 2**32 - 1


class CounterStore:
    """
    Durable home of the counter: one decimal line terminated by a newline.

    Writes go to a temporary file in the same directory which then replaces
    the target, so a reader never observes a partially written value.
    """

    def __init__(self, path: str) -> None:
        self.path = path

    def load(self) -> int:
        try:
            with open(self.path, "r") as counter_file:
                contents = counter_file.read()

        except FileNotFoundError:
            return 0

        except OSError as err:
            raise PersistenceLoadError(
                f"Failed to read counter state: {err}",
                path=self.path,
            ) from err

        value = contents.strip()
        if value == "":
            return 0

        if not value.isdigit():
            raise PersistenceLoadError(
                "Counter state is not an unsigned decimal",
                path=self.path,
                contents=value[:32],
            )

        counter = int(value)
        if counter > MAX_COUNTER:
            raise PersistenceLoadError(
                "Counter state exceeds the 32-bit unsigned range",
                path=self.path,
                value=counter,
            )

        return counter

    def save(self, value: int) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        temp_path: str | None = None

        try:
            os.makedirs(directory, exist_ok=True)

            descriptor, temp_path = tempfile.mkstemp(
                dir=directory,
                prefix=".counter-",
            )

            with os.fdopen(descriptor, "w") as temp_file:
                temp_file.write(f"{value}\n")
                temp_file.flush()
                os.fsync(temp_file.fileno())

            os.replace(temp_path, self.path)
            temp_path = None

        except OSError as err:
            raise PersistenceSaveError(
                f"Failed to save counter state: {err}",
                path=self.path,
                value=value,
            ) from err

        finally:
            if temp_path and os.path.exists(temp_path):
                os.unlink(temp_path)

    async def save_async(self, value: int) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self.save, value)
