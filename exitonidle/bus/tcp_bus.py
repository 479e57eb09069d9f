from __future__ import annotations

import asyncio
import itertools
from typing import Any

from exitonidle.errors import BusError

from .bus import Bus
from .models import (
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


class TCPBus(Bus, AbstractConnection):
    """Client connection to a BusDaemon."""

    def __init__(
        self,
        host: str,
        port: int,
    ) -> None:
        super().__init__()
        self.host = host
        self.port = port
        self.protocol: BusProtocol | None = None

        self._serials = itertools.count(1)
        self._pending: dict[int, asyncio.Future] = {}
        self._handler_tasks: set[asyncio.Task] = set()
        self._protocol_error: Exception | None = None

    async def connect(self) -> str:
        if self.unique_name is not None:
            return self.unique_name

        loop = asyncio.get_running_loop()

        try:
            await loop.create_connection(
                lambda: BusProtocol(self),
                host=self.host,
                port=self.port,
            )

        except OSError as err:
            raise BusError(
                f"Could not connect to bus at {self.host}:{self.port}: {err}",
            ) from err

        welcome: Welcome = await self._request(Hello())
        self.unique_name = welcome.unique_name

        return self.unique_name

    async def close(self):
        if self._closed:
            return

        if self.protocol is not None:
            self.protocol.close()

        self._shutdown(None)

    async def request_name(self, name: str) -> int:
        reply: Reply = await self._request(RequestName(name=name))
        return reply.value

    async def release_name(self, name: str) -> int:
        reply: Reply = await self._request(ReleaseName(name=name))
        return reply.value

    async def notify(self, state: str):
        await self._request(Notify(state=state))

    async def start_service(self, name: str) -> int:
        response = await self._request(StartServiceByName(name=name))

        if isinstance(response, MethodError):
            raise reply_to_error(response)

        return response.value

    async def call(
        self,
        destination: str,
        path: str,
        interface: str,
        method: str,
        args: list[Any] | None = None,
    ) -> Any:
        response = await self._request(
            MethodCall(
                destination=destination,
                path=path,
                interface=interface,
                method=method,
                args=args or [],
            )
        )

        if isinstance(response, MethodError):
            raise reply_to_error(response)

        return response.value

    async def _add_watch(
        self,
        name: str,
        auto_start: bool,
    ) -> str | None:
        reply: Reply = await self._request(
            WatchName(
                name=name,
                auto_start=auto_start,
            )
        )

        return reply.value

    async def _remove_watch(self, name: str):
        await self._request(UnwatchName(name=name))

    async def _request(self, message: Message):
        if self._closed or self.protocol is None or self.protocol.closing:
            raise BusError(
                "Bus connection is closed",
                host=self.host,
                port=self.port,
            )

        message.serial = next(self._serials)

        future = asyncio.get_running_loop().create_future()
        self._pending[message.serial] = future

        self.protocol.send(message)

        return await future

    def connection_made(self, protocol: BusProtocol):
        self.protocol = protocol

    def read(self, message: Message):
        match message:
            case Welcome() | Reply() | MethodReturn() | MethodError():
                future = self._pending.pop(message.reply_serial, None)
                if future is not None and not future.done():
                    future.set_result(message)

            case MethodCall():
                task = asyncio.ensure_future(
                    self._handle_call(message),
                )
                self._handler_tasks.add(task)
                task.add_done_callback(self._handler_tasks.discard)

            case NameOwnerChanged():
                self.handle_owner_changed(message)

            case _:
                self.protocol_error(
                    BusError(
                        "Unexpected message from bus",
                        message_type=type(message).__name__,
                    )
                )

    async def _handle_call(self, call: MethodCall):
        try:
            value = await self._invoke_exported(call)
            reply = MethodReturn(
                reply_serial=call.serial,
                value=value,
            )

        except Exception as err:
            reply = error_to_reply(err, call.serial)

        if self.protocol is not None:
            self.protocol.send(reply)

    def protocol_error(self, err: Exception):
        if self._protocol_error is None:
            self._protocol_error = err

    def connection_lost(self, exc: Exception | None):
        self._shutdown(exc or self._protocol_error)

    def _shutdown(self, exc: Exception | None):
        if self._closed:
            return

        self._closed = True

        error = BusError(
            f"Connection to bus at {self.host}:{self.port} lost",
            reason=str(exc) if exc else None,
        )

        for future in self._pending.values():
            if not future.done():
                future.set_exception(error)

        self._pending.clear()

        self._run_disconnect_callbacks(exc)
