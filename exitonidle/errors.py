"""
Error hierarchy for the exit-on-idle harness.

Errors are classified by:
- Category: where the error came from (transport, persistence, protocol, state)
- Fatal: whether the error must stop the process that observed it

Fatal errors are funneled into the process-wide AsyncFault slot. Non-fatal
errors (runtime save failures) are logged and discarded by their caller.
"""

from enum import Enum, auto
from typing import Any


class ErrorCategory(Enum):
    """What kind of error is this?"""

    TRANSPORT = auto()
    """Bus unreachable, name not owned, activation refused, malformed frames."""

    PERSISTENCE = auto()
    """Counter state could not be read or written."""

    PROTOCOL = auto()
    """Unexpected response shape or oracle assertion failure."""

    STATE = auto()
    """Illegal service state transition."""


class ExitOnIdleError(Exception):
    category: ErrorCategory = ErrorCategory.TRANSPORT
    fatal: bool = True

    def __init__(
        self,
        message: str,
        **context: Any,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        if not self.context:
            return self.message

        details = ", ".join(
            f"{key}={value!r}" for key, value in self.context.items()
        )

        return f"{self.message} ({details})"


class BusError(ExitOnIdleError):
    """Generic transport failure: connection lost, bad frame, bus closed."""

    category = ErrorCategory.TRANSPORT


class ServiceUnknownError(BusError):
    """No peer owns the name and no unit can be activated for it."""


class ActivationError(BusError):
    """
    The supervisor refused to activate a unit.

    Raised when a call targets a name whose owner released it without first
    announcing STOPPING=1: the supervisor still believes the old instance is
    running and will not start a new one.
    """


class NameNotOwnedError(BusError):
    """The service could not become primary owner of its well-known name."""


class RemoteMethodError(BusError):
    """The remote side answered a call with an error reply."""

    def __init__(
        self,
        message: str,
        error_name: str = "org.freedesktop.DBus.Error.Failed",
        **context: Any,
    ) -> None:
        super().__init__(message, **context)
        self.error_name = error_name


class PersistenceLoadError(ExitOnIdleError):
    category = ErrorCategory.PERSISTENCE


class PersistenceSaveError(ExitOnIdleError):
    category = ErrorCategory.PERSISTENCE
    fatal = False


class ProtocolViolationError(ExitOnIdleError):
    category = ErrorCategory.PROTOCOL


class CounterMismatchError(ProtocolViolationError):
    """The server's counter does not match the client's expectation."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(
            f"Counter mismatch: expected {expected}, got {actual}",
            expected=expected,
            actual=actual,
        )
        self.expected = expected
        self.actual = actual

    def __str__(self) -> str:
        return self.message


class StateTransitionError(ExitOnIdleError):
    category = ErrorCategory.STATE


class CallEngineStopped(ExitOnIdleError):
    """A call was attempted after the engine's fault slot was set."""

    category = ErrorCategory.TRANSPORT
