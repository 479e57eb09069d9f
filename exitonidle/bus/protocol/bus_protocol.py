import asyncio
from typing import Generic, TypeVar

from exitonidle.bus.models import Message
from exitonidle.errors import BusError

from .abstract_connection import AbstractConnection
from .codec import decode_message, encode_message
from .receive_buffer import ReceiveBuffer, frame_message


T = TypeVar("T", bound=AbstractConnection)


class BusProtocol(asyncio.Protocol, Generic[T]):
    def __init__(
        self,
        conn: T,
    ):
        super().__init__()
        self.transport: asyncio.Transport | None = None
        self.conn = conn
        self._receive_buffer = ReceiveBuffer()

    @property
    def closing(self) -> bool:
        return self.transport is None or self.transport.is_closing()

    def connection_made(self, transport: asyncio.Transport):
        self.transport = transport
        self.conn.connection_made(self)

    def data_received(self, data: bytes):
        try:
            self._receive_buffer += data

            for frame in self._receive_buffer.frames():
                self.conn.read(
                    decode_message(frame),
                )

        except BusError as err:
            self._receive_buffer.clear()
            self.conn.protocol_error(err)
            self.transport.close()

    def send(self, message: Message) -> bool:
        if self.closing:
            return False

        self.transport.write(
            frame_message(
                encode_message(message),
            )
        )

        return True

    def close(self):
        if self.transport is not None:
            self.transport.close()

    def connection_lost(self, exc: Exception | None) -> None:
        self._receive_buffer.clear()
        self.conn.connection_lost(exc)
