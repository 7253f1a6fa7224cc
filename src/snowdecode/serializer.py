"""
Canonical JSON rendering of decoded structured values.

Used for columns fetched as strings. The output is compact JSON with no
whitespace between tokens, OBJECT fields in declaration order, and scalars
rendered exactly as the native decoding produced them.
"""

import datetime
import decimal
import json
import logging
from collections.abc import Mapping
from typing import Any, List

logger = logging.getLogger(__name__)


def _key_text(key: Any) -> str:
    if isinstance(key, str):
        return key
    if isinstance(key, bool):
        return "true" if key else "false"
    if isinstance(key, (int, float, decimal.Decimal)):
        return str(key)
    raise TypeError(f"Cannot serialize object key of type {type(key).__name__}")


def _render(value: Any, out: List[str]) -> None:
    if value is None:
        out.append("null")
    elif isinstance(value, bool):
        out.append("true" if value else "false")
    elif isinstance(value, int):
        out.append(int.__repr__(value))
    elif isinstance(value, float):
        # Shortest round-trip form, so 1.1 stays 1.1
        out.append(json.dumps(value))
    elif isinstance(value, decimal.Decimal):
        if value.is_finite():
            out.append(str(value))
        elif value.is_nan():
            out.append("NaN")
        else:
            out.append("-Infinity" if value.is_signed() else "Infinity")
    elif isinstance(value, str):
        out.append(json.dumps(value, ensure_ascii=False))
    elif isinstance(value, (bytes, bytearray, memoryview)):
        out.append("[" + ",".join(str(b) for b in bytes(value)) + "]")
    elif isinstance(value, Mapping):
        out.append("{")
        for i, (key, item) in enumerate(value.items()):
            if i:
                out.append(",")
            out.append(json.dumps(_key_text(key), ensure_ascii=False))
            out.append(":")
            _render(item, out)
        out.append("}")
    elif isinstance(value, (list, tuple)):
        out.append("[")
        for i, item in enumerate(value):
            if i:
                out.append(",")
            _render(item, out)
        out.append("]")
    elif isinstance(value, (datetime.datetime, datetime.date, datetime.time)):
        out.append(json.dumps(value.isoformat()))
    else:
        raise TypeError(f"Cannot serialize value of type {type(value).__name__}")


def serialize(value: Any) -> str:
    """
    Render a decoded value as compact JSON text.

    >>> serialize({"binary": b"abc", "f": 1.1, "ok": True})
    '{"binary":[97,98,99],"f":1.1,"ok":true}'
    """
    out: List[str] = []
    _render(value, out)
    return "".join(out)
