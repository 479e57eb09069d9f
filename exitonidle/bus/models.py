import msgspec
from typing import Any

from exitonidle.errors import (
    ActivationError,
    BusError,
    ExitOnIdleError,
    RemoteMethodError,
    ServiceUnknownError,
)


# RequestName replies
REQUEST_NAME_PRIMARY_OWNER = 1
REQUEST_NAME_EXISTS = 3
REQUEST_NAME_ALREADY_OWNER = 4

# ReleaseName replies
RELEASE_NAME_RELEASED = 1
RELEASE_NAME_NON_EXISTENT = 2
RELEASE_NAME_NOT_OWNER = 3

# StartServiceByName replies
START_REPLY_SUCCESS = 1
START_REPLY_ALREADY_RUNNING = 2

ERROR_FAILED = "org.freedesktop.DBus.Error.Failed"
ERROR_SERVICE_UNKNOWN = "org.freedesktop.DBus.Error.ServiceUnknown"
ERROR_SPAWN_FAILED = "org.freedesktop.DBus.Error.Spawn.Failed"
ERROR_UNKNOWN_METHOD = "org.freedesktop.DBus.Error.UnknownMethod"
ERROR_NO_REPLY = "org.freedesktop.DBus.Error.NoReply"


class Message(msgspec.Struct, kw_only=True):
    serial: int = 0


class Hello(Message):
    pass


class Welcome(Message):
    reply_serial: int
    unique_name: str


class RequestName(Message):
    name: str


class ReleaseName(Message):
    name: str


class WatchName(Message):
    name: str
    auto_start: bool = False


class UnwatchName(Message):
    name: str


class StartServiceByName(Message):
    name: str


class Notify(Message):
    state: str


class Reply(Message):
    reply_serial: int
    value: int | str | None = None


class MethodCall(Message):
    destination: str
    path: str
    interface: str
    method: str
    args: list[Any] = msgspec.field(default_factory=list)
    sender: str | None = None


class MethodReturn(Message):
    reply_serial: int
    value: Any = None


class MethodError(Message):
    reply_serial: int
    error_name: str
    message: str


class NameOwnerChanged(Message):
    name: str
    old_owner: str | None = None
    new_owner: str | None = None


MESSAGE_TYPES: dict[bytes, type[Message]] = {
    model.__name__.encode(): model
    for model in (
        Hello,
        Welcome,
        RequestName,
        ReleaseName,
        WatchName,
        UnwatchName,
        StartServiceByName,
        Notify,
        Reply,
        MethodCall,
        MethodReturn,
        MethodError,
        NameOwnerChanged,
    )
}


def error_to_reply(
    err: Exception,
    reply_serial: int,
) -> MethodError:
    match err:
        case ServiceUnknownError():
            error_name = ERROR_SERVICE_UNKNOWN

        case ActivationError():
            error_name = ERROR_SPAWN_FAILED

        case RemoteMethodError():
            error_name = err.error_name

        case _:
            error_name = ERROR_FAILED

    message = err.message if isinstance(err, ExitOnIdleError) else str(err)

    return MethodError(
        reply_serial=reply_serial,
        error_name=error_name,
        message=message,
    )


def reply_to_error(reply: MethodError) -> BusError:
    match reply.error_name:
        case "org.freedesktop.DBus.Error.ServiceUnknown":
            return ServiceUnknownError(reply.message)

        case "org.freedesktop.DBus.Error.Spawn.Failed":
            return ActivationError(reply.message)

        case _:
            return RemoteMethodError(
                reply.message,
                error_name=reply.error_name,
            )
