"""JSON rendering strategies for decoded messages."""

import base64
import json
import math
from collections.abc import Callable
from enum import Enum
from typing import Any

from google.protobuf import json_format
from google.protobuf.descriptor import FieldDescriptor
from google.protobuf.message import Message


class RenderStrategy(str, Enum):
    """How decoded messages are turned into JSON documents."""

    FAST = "fast"  # reflective walk, proto field names, numeric int64/enums
    EXACT = "exact"  # canonical proto3 JSON mapping


def _scalar_to_json(field: FieldDescriptor, value: Any) -> Any:
    if field.type == FieldDescriptor.TYPE_BYTES:
        return base64.b64encode(value).decode("ascii")
    if isinstance(value, float) and not math.isfinite(value):
        if math.isnan(value):
            return "NaN"
        return "Infinity" if value > 0 else "-Infinity"
    return value


def _value_to_json(field: FieldDescriptor, value: Any) -> Any:
    if field.type == FieldDescriptor.TYPE_MESSAGE:
        return message_to_dict(value)
    return _scalar_to_json(field, value)


def message_to_dict(message: Message) -> dict[str, Any]:
    """Recursively convert a message to a JSON-serializable dict.

    Handles:
    - Nested messages → dict
    - Repeated fields → lists
    - Map fields → dict with string keys
    - bytes → base64 string
    - Non-finite floats → "NaN" / "Infinity" / "-Infinity"

    Only fields that are set are included, in field-number order.
    """
    result: dict[str, Any] = {}
    for field, value in message.ListFields():
        if field.message_type is not None and field.message_type.GetOptions().map_entry:
            value_field = field.message_type.fields_by_name["value"]
            result[field.name] = {
                str(key).lower() if isinstance(key, bool) else str(key): _value_to_json(
                    value_field, item
                )
                for key, item in sorted(value.items())
            }
        elif not isinstance(value, (Message, str, bytes, int, float)):
            # repeated container
            result[field.name] = [_value_to_json(field, item) for item in value]
        else:
            result[field.name] = _value_to_json(field, value)
    return result


def render_fast(message: Message) -> bytes:
    return json.dumps(message_to_dict(message), separators=(",", ":")).encode()


def render_exact(message: Message) -> bytes:
    document = json_format.MessageToDict(
        message,
        preserving_proto_field_name=True,
        descriptor_pool=message.DESCRIPTOR.file.pool,
    )
    return json.dumps(document, separators=(",", ":")).encode()


_RENDERERS: dict[RenderStrategy, Callable[[Message], bytes]] = {
    RenderStrategy.FAST: render_fast,
    RenderStrategy.EXACT: render_exact,
}


def get_renderer(strategy: RenderStrategy | str) -> Callable[[Message], bytes]:
    return _RENDERERS[RenderStrategy(strategy)]
