from __future__ import annotations

import asyncio
from typing import Dict

from exitonidle.logging.models import Entry, Log

from .logger_stream import LoggerStream


class Logger:
    """Hands out one LoggerStream per logger name."""

    def __init__(self) -> None:
        self._streams: Dict[str, LoggerStream] = {}

    def __getitem__(self, name: str) -> LoggerStream:
        stream = self._streams.get(name)

        if stream is None or stream.closed:
            stream = LoggerStream(name=name)
            self._streams[name] = stream

        return stream

    async def log(
        self,
        entry: Entry,
        name: str = "default",
        path: str | None = None,
    ):
        stream = self[name]

        await stream.log(
            Log.from_caller(entry, logger=name),
            path=path,
        )

    async def close(self):
        if self._streams:
            await asyncio.gather(*[
                stream.close() for stream in self._streams.values()
            ])
