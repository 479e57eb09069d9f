from __future__ import annotations

import asyncio
import itertools
import socket
from typing import Any

from exitonidle.env import Env
from exitonidle.errors import BusError, RemoteMethodError
from exitonidle.logging import Logger
from exitonidle.logging.exit_on_idle_logging_models import (
    DaemonDebug,
    DaemonError,
    DaemonInfo,
)

from .activation import SubprocessActivator
from .models import (
    ERROR_NO_REPLY,
    Hello,
    Message,
    MethodCall,
    MethodError,
    MethodReturn,
    NameOwnerChanged,
    Notify,
    ReleaseName,
    Reply,
    RequestName,
    StartServiceByName,
    UnwatchName,
    WatchName,
    Welcome,
    error_to_reply,
    reply_to_error,
)
from .protocol import AbstractConnection, BusProtocol
from .registry import NameRegistry, Peer


class DaemonConnection(AbstractConnection, Peer):
    """The daemon's end of one client connection."""

    def __init__(self, daemon: BusDaemon) -> None:
        self.daemon = daemon
        self.registry = daemon.registry
        self.unique_name: str | None = None
        self.protocol: BusProtocol | None = None

        self._serials = itertools.count(1)
        self._pending_calls: dict[int, asyncio.Future] = {}
        self._disconnected = False

    def connection_made(self, protocol: BusProtocol):
        self.protocol = protocol

    def read(self, message: Message):
        if self.unique_name is None and not isinstance(message, Hello):
            self.protocol_error(
                BusError(
                    "First message on a bus connection must be Hello",
                    message_type=type(message).__name__,
                )
            )
            self.protocol.close()
            return

        match message:
            case Hello():
                self.unique_name = self.registry.next_unique_name()
                self.registry.add_peer(self)
                self.send(
                    Welcome(
                        reply_serial=message.serial,
                        unique_name=self.unique_name,
                    )
                )
                self.daemon.log_soon(
                    DaemonDebug,
                    f"Accepted connection {self.unique_name}",
                )

            case RequestName():
                self._reply(
                    message,
                    self.registry.request_name(self, message.name),
                )

            case ReleaseName():
                self._reply(
                    message,
                    self.registry.release_name(self, message.name),
                )

            case WatchName():
                self._reply(
                    message,
                    self.registry.watch(
                        self,
                        message.name,
                        auto_start=message.auto_start,
                    ),
                )

            case UnwatchName():
                self.registry.unwatch(self, message.name)
                self._reply(message, None)

            case Notify():
                self.registry.notify(self, message.state)
                self._reply(message, None)

            case StartServiceByName():
                self.daemon.track(
                    self._start_service(message),
                )

            case MethodCall():
                message.sender = self.unique_name
                self.daemon.track(
                    self._route_call(message),
                )

            case MethodReturn() | MethodError():
                self._complete_call(message)

            case _:
                self.protocol_error(
                    BusError(
                        "Unexpected message from client",
                        message_type=type(message).__name__,
                    )
                )

    def protocol_error(self, err: Exception):
        self.daemon.log_soon(
            DaemonError,
            f"Protocol error from {self.unique_name}: {err}",
        )

    def connection_lost(self, exc: Exception | None):
        if self._disconnected:
            return

        self._disconnected = True

        for future in self._pending_calls.values():
            if not future.done():
                future.set_exception(
                    RemoteMethodError(
                        f"{self.unique_name} disconnected before replying",
                        error_name=ERROR_NO_REPLY,
                    )
                )

        self._pending_calls.clear()

        if self.unique_name is not None:
            self.registry.peer_disconnected(self)
            self.daemon.log_soon(
                DaemonDebug,
                f"Connection {self.unique_name} closed",
            )

        self.daemon.connections.discard(self)

    async def deliver(self, call: MethodCall) -> Any:
        if self._disconnected:
            raise RemoteMethodError(
                f"{self.unique_name} disconnected before replying",
                error_name=ERROR_NO_REPLY,
            )

        forwarded = MethodCall(
            serial=next(self._serials),
            destination=call.destination,
            path=call.path,
            interface=call.interface,
            method=call.method,
            args=call.args,
            sender=call.sender,
        )

        future = asyncio.get_running_loop().create_future()
        self._pending_calls[forwarded.serial] = future

        self.send(forwarded)

        return await future

    def emit(self, signal: NameOwnerChanged):
        self.send(signal)

    def send(self, message: Message) -> bool:
        if self.protocol is None or self._disconnected:
            return False

        return self.protocol.send(message)

    def _reply(
        self,
        request: Message,
        value: int | str | None,
    ):
        self.send(
            Reply(
                reply_serial=request.serial,
                value=value,
            )
        )

    async def _route_call(self, call: MethodCall):
        try:
            value = await self.registry.dispatch(call)
            self.send(
                MethodReturn(
                    reply_serial=call.serial,
                    value=value,
                )
            )

        except BusError as err:
            self.send(
                error_to_reply(err, call.serial),
            )

    async def _start_service(self, request: StartServiceByName):
        try:
            self._reply(
                request,
                await self.registry.start_service(request.name),
            )

        except BusError as err:
            self.send(
                error_to_reply(err, request.serial),
            )

    def _complete_call(self, message: MethodReturn | MethodError):
        future = self._pending_calls.pop(message.reply_serial, None)
        if future is None or future.done():
            return

        if isinstance(message, MethodError):
            future.set_exception(reply_to_error(message))

        else:
            future.set_result(message.value)


class BusDaemon:
    """
    A small TCP message bus.

    Clients speak the framed protocol in exitonidle.bus.protocol. The daemon
    owns the NameRegistry, routes method calls to the owners of well-known
    names and, for names with an activation command, starts the service on
    the first call that finds the name unowned.
    """

    def __init__(
        self,
        host: str,
        port: int,
        activations: dict[str, list[str]] | None = None,
        env: Env | None = None,
    ) -> None:
        self.host = host
        self.port = port
        self.env = env or Env()
        self.registry = NameRegistry()
        self.connections: set[DaemonConnection] = set()

        self._activations = activations or {}
        self._activator: SubprocessActivator | None = None
        self._server: asyncio.Server | None = None
        self._server_socket: socket.socket | None = None
        self._pending: set[asyncio.Task] = set()
        self._logger = Logger()
        self._running = False

    @property
    def address(self) -> tuple[str, int]:
        return (self.host, self.port)

    async def start(self):
        loop = asyncio.get_running_loop()

        self._server_socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._server_socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._server_socket.bind((self.host, self.port))
        self._server_socket.setblocking(False)

        self.host, self.port = self._server_socket.getsockname()[:2]

        self._server = await loop.create_server(
            lambda: BusProtocol(self._create_connection()),
            sock=self._server_socket,
        )

        self._activator = SubprocessActivator(
            self._activations,
            bus_address=self.address,
        )

        for name in self._activations:
            self.registry.register_unit(name, self._activator)

        self._running = True

        await self._log_info(
            f"Bus listening on {self.host}:{self.port} with {len(self._activations)} activatable names"
        )

    async def serve_forever(self):
        if self._server is None:
            await self.start()

        await self._server.serve_forever()

    def _create_connection(self) -> DaemonConnection:
        connection = DaemonConnection(self)
        self.connections.add(connection)

        return connection

    def track(self, coroutine):
        task = asyncio.ensure_future(coroutine)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

        return task

    def log_soon(
        self,
        model: type[DaemonDebug] | type[DaemonInfo] | type[DaemonError],
        message: str,
    ):
        self.track(
            self._logger.log(
                model(message=message, **self._get_log_context()),
            )
        )

    async def shutdown(self):
        self._running = False

        if self._server is not None:
            self._server.close()

        for connection in list(self.connections):
            if connection.protocol is not None:
                connection.protocol.close()

        if self._activator is not None:
            await self._activator.shutdown()

        if self._server is not None:
            await self._server.wait_closed()

        for task in list(self._pending):
            task.cancel()

        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

        await self._log_info("Bus stopped")
        await self._logger.close()

    def _get_log_context(self) -> dict:
        return {
            "host": self.host,
            "port": self.port,
        }

    async def _log_info(self, message: str) -> None:
        await self._logger.log(DaemonInfo(message=message, **self._get_log_context()))
