"""
Value Model.

Documents are plain Python values: None, bool, int, str, list and dict.
Integers are signed 64-bit and dict insertion order is the key order on
the wire and in re-serialized text.
"""

import json
from typing import Any, Union

from bson.int64 import Int64

from rbshell.core.exceptions import ProtocolError

Value = Union[None, bool, int, str, list["Value"], dict[str, "Value"]]
Document = dict[str, Value]

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1


def is_value(obj: Any) -> bool:
    """Check that obj is built only from Value Model types."""
    if obj is None or isinstance(obj, (bool, str)):
        return True
    if isinstance(obj, int):
        return INT64_MIN <= obj <= INT64_MAX
    if isinstance(obj, list):
        return all(is_value(item) for item in obj)
    if isinstance(obj, dict):
        return all(isinstance(k, str) and is_value(v) for k, v in obj.items())
    return False


def is_document(obj: Any) -> bool:
    """A document is an object at the top level."""
    return isinstance(obj, dict) and is_value(obj)


def to_query_text(value: Value) -> str:
    """
    Serialize a value back into query-language text.

    The output is deterministic and parses back to an equal value:
    strings use JSON escaping, objects keep their key order.
    """
    if value is None:
        return "null"
    # bool before int: True is an int too
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(int(value))
    if isinstance(value, str):
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, list):
        return "[" + ", ".join(to_query_text(item) for item in value) + "]"
    if isinstance(value, dict):
        pairs = (f"{json.dumps(k, ensure_ascii=False)}: {to_query_text(v)}" for k, v in value.items())
        return "{" + ", ".join(pairs) + "}"
    raise TypeError(f"Not a document value: {type(value).__name__}")


def to_bson_value(value: Value) -> Any:
    """Convert a value for BSON encoding. Every integer is sent as Int64."""
    if isinstance(value, bool) or value is None or isinstance(value, str):
        return value
    if isinstance(value, int):
        return Int64(value)
    if isinstance(value, list):
        return [to_bson_value(item) for item in value]
    if isinstance(value, dict):
        return {k: to_bson_value(v) for k, v in value.items()}
    raise TypeError(f"Not a document value: {type(value).__name__}")


def from_bson_value(obj: Any) -> Value:
    """
    Convert a decoded BSON value into the Value Model.

    Raises:
        ProtocolError: If the server sent a BSON type the shell cannot represent.
    """
    if obj is None or isinstance(obj, (bool, str)):
        return obj
    if isinstance(obj, int):
        return int(obj)
    if isinstance(obj, list):
        return [from_bson_value(item) for item in obj]
    if isinstance(obj, dict):
        return {str(k): from_bson_value(v) for k, v in obj.items()}
    raise ProtocolError(f"Unsupported BSON type in server response: {type(obj).__name__}")
