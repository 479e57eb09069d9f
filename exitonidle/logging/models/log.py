import datetime
import sys
import threading
from typing import Generic, TypeVar

import msgspec

from .entry import Entry


T = TypeVar('T', bound=Entry)


class Log(msgspec.Struct, Generic[T], kw_only=True):
    """An entry plus where and when it was logged."""

    entry: T
    logger: str
    filename: str
    function_name: str
    line_number: int
    thread_id: int = msgspec.field(
        default_factory=threading.get_native_id,
    )
    timestamp: str = msgspec.field(
        default_factory=lambda: datetime.datetime.now(datetime.UTC).isoformat()
    )

    @classmethod
    def from_caller(
        cls,
        entry: T,
        logger: str,
        depth: int = 2,
    ) -> "Log[T]":
        frame = sys._getframe(depth)

        return cls(
            entry=entry,
            logger=logger,
            filename=frame.f_code.co_filename,
            function_name=frame.f_code.co_name,
            line_number=frame.f_lineno,
        )

    def context(self) -> dict:
        return {
            "logger": self.logger,
            "filename": self.filename,
            "function_name": self.function_name,
            "line_number": self.line_number,
            "thread_id": self.thread_id,
            "timestamp": self.timestamp,
        }
