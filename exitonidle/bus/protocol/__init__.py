from .abstract_connection import AbstractConnection as AbstractConnection
from .bus_protocol import BusProtocol as BusProtocol
from .codec import (
    decode_message as decode_message,
    encode_message as encode_message,
)
from .receive_buffer import (
    ReceiveBuffer as ReceiveBuffer,
    frame_message as frame_message,
    BufferOverflowError as BufferOverflowError,
    FrameTooLargeError as FrameTooLargeError,
    MAX_FRAME_LENGTH as MAX_FRAME_LENGTH,
    MAX_BUFFER_SIZE as MAX_BUFFER_SIZE,
)
