import asyncio
import io
import os
import pathlib
import sys
from collections import defaultdict
from typing import Dict

import msgspec

from exitonidle.logging.config import LoggingConfig, StreamType
from exitonidle.logging.models import Log


DEFAULT_TEMPLATE = "{timestamp} - {level} - {logger} - {message}"


class LoggerStream:
    """
    Writes logs for one named logger.

    Console output renders each entry through a template. File output
    appends one JSON-encoded Log per line, with file work pushed to the
    default executor so logging never blocks the loop on disk I/O.
    """

    def __init__(
        self,
        name: str = "default",
        template: str = DEFAULT_TEMPLATE,
    ) -> None:
        self.name = name
        self.template = template

        self._config = LoggingConfig()
        self._files: Dict[str, io.TextIOWrapper] = {}
        self._file_locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._closed = False

    @property
    def closed(self):
        return self._closed

    async def log(
        self,
        log: Log,
        path: str | None = None,
    ):
        if self._closed or not self._config.enabled(log.entry.level):
            return

        logfile_path = self._resolve_path(path)
        if logfile_path is None:
            self._write_to_console(log)
            return

        loop = asyncio.get_running_loop()

        async with self._file_locks[logfile_path]:
            await loop.run_in_executor(
                None,
                self._write_to_file,
                log,
                logfile_path,
            )

    def _resolve_path(self, path: str | None) -> str | None:
        if path:
            return str(pathlib.Path(path).absolute())

        if directory := self._config.directory:
            return os.path.join(directory, f"{self.name}.json")

        return None

    def _write_to_console(self, log: Log):
        stream = sys.stdout if self._config.output == StreamType.STDOUT else sys.stderr

        try:
            line = log.entry.to_template(
                self.template,
                context=log.context(),
            )

        except (KeyError, IndexError, ValueError) as err:
            line = (
                f"{log.timestamp} - {log.entry.level.value} - {log.logger}"
                f" - failed to render log entry: {err}"
            )

        stream.write(line + "\n")
        stream.flush()

    def _write_to_file(
        self,
        log: Log,
        logfile_path: str,
    ):
        logfile = self._files.get(logfile_path)

        if logfile is None or logfile.closed:
            pathlib.Path(logfile_path).parent.mkdir(parents=True, exist_ok=True)
            logfile = open(logfile_path, "a")
            self._files[logfile_path] = logfile

        logfile.write(msgspec.json.encode(log).decode() + "\n")
        logfile.flush()

    async def close(self):
        self._closed = True

        if not self._files:
            return

        loop = asyncio.get_running_loop()

        for logfile_path in list(self._files):
            async with self._file_locks[logfile_path]:
                logfile = self._files.pop(logfile_path)
                await loop.run_in_executor(None, logfile.close)
