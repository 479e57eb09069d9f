from .models import Entry, LogLevel


class ServiceTrace(Entry, kw_only=True):
    bus_name: str
    state: str
    counter: int
    level: LogLevel = LogLevel.TRACE

class ServiceDebug(Entry, kw_only=True):
    bus_name: str
    state: str
    counter: int
    level: LogLevel = LogLevel.DEBUG

class ServiceInfo(Entry, kw_only=True):
    bus_name: str
    state: str
    counter: int
    level: LogLevel = LogLevel.INFO

class ServiceError(Entry, kw_only=True):
    bus_name: str
    state: str
    counter: int
    level: LogLevel = LogLevel.ERROR

class ClientDebug(Entry, kw_only=True):
    bus_name: str
    expected_counter: int
    increments: int
    level: LogLevel = LogLevel.DEBUG

class ClientInfo(Entry, kw_only=True):
    bus_name: str
    expected_counter: int
    increments: int
    level: LogLevel = LogLevel.INFO

class ClientError(Entry, kw_only=True):
    bus_name: str
    expected_counter: int
    increments: int
    level: LogLevel = LogLevel.ERROR

class DaemonDebug(Entry, kw_only=True):
    host: str
    port: int
    level: LogLevel = LogLevel.DEBUG

class DaemonInfo(Entry, kw_only=True):
    host: str
    port: int
    level: LogLevel = LogLevel.INFO

class DaemonError(Entry, kw_only=True):
    host: str
    port: int
    level: LogLevel = LogLevel.ERROR
