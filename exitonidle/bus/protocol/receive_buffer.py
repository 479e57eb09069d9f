from __future__ import annotations

import struct
from typing import Iterator

from exitonidle.errors import BusError


# Frames are prefixed with their payload length as a big-endian u32.
FRAME_PREFIX = struct.Struct(">I")

# Bus messages are tiny; anything past these limits is a broken peer.
# The buffer limit applies to bytes left over once whole frames are taken out.
MAX_FRAME_LENGTH = 64 * 1024
MAX_BUFFER_SIZE = 256 * 1024


class BufferOverflowError(BusError):
    """More unparsed bytes are pending than the connection will hold."""


class FrameTooLargeError(BusError):
    def __init__(
        self,
        actual_size: int,
        max_size: int,
    ) -> None:
        super().__init__(
            "Frame length exceeds maximum",
            actual_size=actual_size,
            max_size=max_size,
        )
        self.actual_size = actual_size
        self.max_size = max_size


class ReceiveBuffer:
    """Accumulates stream bytes and hands back complete frame payloads."""

    def __init__(
        self,
        max_frame_length: int = MAX_FRAME_LENGTH,
        max_buffer_size: int = MAX_BUFFER_SIZE,
    ) -> None:
        self.buffer = bytearray()
        self._max_frame_length = max_frame_length
        self._max_buffer_size = max_buffer_size

    def __iadd__(self, data: bytes | bytearray) -> ReceiveBuffer:
        self.buffer += data
        return self

    def __len__(self) -> int:
        return len(self.buffer)

    def maybe_extract_framed(self) -> bytes | None:
        if len(self.buffer) < FRAME_PREFIX.size:
            return None

        (length,) = FRAME_PREFIX.unpack_from(self.buffer)

        if length > self._max_frame_length:
            raise FrameTooLargeError(length, self._max_frame_length)

        end = FRAME_PREFIX.size + length
        if len(self.buffer) < end:
            return None

        payload = bytes(self.buffer[FRAME_PREFIX.size:end])
        del self.buffer[:end]

        return payload

    def frames(self) -> Iterator[bytes]:
        while (frame := self.maybe_extract_framed()) is not None:
            yield frame

        if len(self.buffer) > self._max_buffer_size:
            raise BufferOverflowError(
                "Receive buffer is full",
                size=len(self.buffer),
                max_size=self._max_buffer_size,
            )

    def clear(self):
        self.buffer.clear()


def frame_message(data: bytes) -> bytes:
    return FRAME_PREFIX.pack(len(data)) + data
