import contextvars
from enum import Enum
from typing import Literal

from exitonidle.logging.models import LogLevel, LogLevelName


LogOutput = Literal['stdout', 'stderr']


class StreamType(Enum):
    STDOUT = "stdout"
    STDERR = "stderr"


_log_level = contextvars.ContextVar("_log_level", default=LogLevel.INFO)
_log_output = contextvars.ContextVar("_log_output", default=StreamType.STDERR)
_log_directory: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "_log_directory",
    default=None,
)


class LoggingConfig:
    """
    Process-wide logging settings.

    Values live in context variables, so every Logger created in the same
    context (or a task spawned from it) sees an update immediately. When a
    log directory is set, entries go to JSON files there instead of the
    console.
    """

    def update(
        self,
        log_directory: str | None = None,
        log_level: LogLevelName | str | None = None,
        log_output: LogOutput | None = None,
    ):
        if log_directory:
            _log_directory.set(log_directory)

        if log_level:
            _log_level.set(LogLevel.to_level(log_level))

        if log_output:
            _log_output.set(StreamType(log_output))

    def enabled(self, log_level: LogLevel) -> bool:
        return log_level.rank >= _log_level.get().rank

    @property
    def level(self) -> LogLevel:
        return _log_level.get()

    @property
    def output(self) -> StreamType:
        return _log_output.get()

    @property
    def directory(self) -> str | None:
        return _log_directory.get()
