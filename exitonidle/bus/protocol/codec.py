import msgspec
import orjson

from exitonidle.bus.models import MESSAGE_TYPES, Message
from exitonidle.errors import BusError


SEPARATOR = b'<|/|'


def encode_message(message: Message) -> bytes:
    payload = orjson.dumps({
        key: value for key, value in msgspec.structs.asdict(message).items() if value is not None
    })

    return message.__class__.__name__.encode() + SEPARATOR + payload


def decode_message(data: bytes) -> Message:
    try:
        message_name, payload = data.split(SEPARATOR, maxsplit=1)

    except ValueError as err:
        raise BusError("Malformed bus frame: missing message type") from err

    model = MESSAGE_TYPES.get(message_name)
    if model is None:
        raise BusError(
            "Malformed bus frame: unknown message type",
            message_type=message_name.decode(errors="replace"),
        )

    try:
        return msgspec.convert(orjson.loads(payload), model)

    except (orjson.JSONDecodeError, msgspec.ValidationError) as err:
        raise BusError(
            f"Malformed bus frame: {err}",
            message_type=model.__name__,
        ) from err
