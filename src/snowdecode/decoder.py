"""
Recursive decoding of structured column values.

``StructuredValueDecoder`` walks a raw value together with its descriptor:
OBJECT fields are read in descriptor order, ARRAY elements in sequence order,
and every scalar leaf is handed to the ScalarValueConverter.
"""

import copy
import decimal
import json
import logging
from collections.abc import Mapping
from typing import Any, List, Optional, Tuple, Union

from snowdecode.conversion import ScalarValueConverter
from snowdecode.exc import MissingFieldError, TypeMismatchError
from snowdecode.formatting import SessionFormattingContext
from snowdecode.serializer import serialize
from snowdecode.types import (
    ArrayType,
    MapType,
    ObjectType,
    ScalarType,
    TypeDescriptor,
    TypeKind,
)

logger = logging.getLogger(__name__)


def _child_path(path: str, name: str) -> str:
    return f"{path}.{name}" if path else name


def _parse_json(raw: str, descriptor: TypeDescriptor, path: str, exact: bool = True):
    # Typed leaves get exact decimals so NUMBER keeps every digit the server sent
    try:
        if exact:
            return json.loads(raw, parse_float=decimal.Decimal)
        return json.loads(raw)
    except ValueError:
        raise TypeMismatchError(
            f"Invalid JSON for {descriptor.kind.value} at {path or '<root>'}",
            context={"path": path, "kind": descriptor.kind.value, "raw-type": "str"},
        )


def _mismatch(raw: Any, descriptor: TypeDescriptor, path: str, expected: str):
    return TypeMismatchError(
        f"Expected {expected} for {descriptor.kind.value} at {path or '<root>'}, "
        f"got {type(raw).__name__}",
        context={
            "path": path,
            "kind": descriptor.kind.value,
            "raw-type": type(raw).__name__,
        },
    )


class StructuredValueDecoder:
    """
    Decodes raw structured values into native value trees.

    The decoder holds only the read-only formatting context, so one instance
    can be shared by every row, column and thread of a statement.
    """

    def __init__(self, context: Optional[SessionFormattingContext] = None):
        self.context = context or SessionFormattingContext()

    def decode(self, raw: Any, descriptor: TypeDescriptor, path: str = "") -> Any:
        """
        Decode a raw value against its descriptor.

        Args:
            raw: The value as delivered by the result source. Structured values
                may be JSON text or already-parsed mappings and sequences.
            descriptor: The value's type descriptor
            path: Location prefix used in error messages, usually the column name

        Returns:
            The decoded value tree
        """
        if raw is None:
            if descriptor.nullable:
                return None
            raise TypeMismatchError(
                f"NULL value for NOT NULL {descriptor.kind.value} at {path or '<root>'}",
                context={
                    "path": path,
                    "kind": descriptor.kind.value,
                    "raw-type": "NoneType",
                },
            )

        if isinstance(descriptor, ScalarType):
            return ScalarValueConverter.convert_value(
                raw, descriptor, self.context, path
            )

        if isinstance(raw, str):
            raw = _parse_json(
                raw, descriptor, path, exact=not self._is_untyped(descriptor)
            )

        if isinstance(descriptor, ObjectType):
            return self._decode_object(raw, descriptor, path)
        if isinstance(descriptor, ArrayType):
            return self._decode_array(raw, descriptor, path)
        if isinstance(descriptor, MapType):
            return self._decode_map(raw, descriptor, path)
        raise TypeError(f"Unknown descriptor {descriptor!r}")

    def _is_untyped(self, descriptor: TypeDescriptor) -> bool:
        if not self.context.structured_types_enabled:
            return True
        return getattr(descriptor, "is_semi_structured", False)

    def _decode_object(self, raw: Any, descriptor: ObjectType, path: str) -> Any:
        if not isinstance(raw, Mapping):
            raise _mismatch(raw, descriptor, path, "a mapping")
        if self._is_untyped(descriptor):
            return copy.deepcopy(dict(raw))

        result = {}
        for field in descriptor.fields:
            field_path = _child_path(path, field.name)
            if field.name not in raw:
                if field.nullable:
                    result[field.name] = None
                    continue
                raise MissingFieldError(
                    f"Field {field.name} is missing at {path or '<root>'}",
                    context={
                        "path": field_path,
                        "kind": field.type.kind.value,
                        "field": field.name,
                    },
                )
            result[field.name] = self.decode(raw[field.name], field.type, field_path)

        if len(raw) > len(result):
            logger.debug(
                "Ignoring undeclared fields at %s: %s",
                path or "<root>",
                [k for k in raw if k not in result],
            )
        return result

    def _decode_array(self, raw: Any, descriptor: ArrayType, path: str) -> Any:
        if not isinstance(raw, (list, tuple)):
            raise _mismatch(raw, descriptor, path, "a sequence")
        if self._is_untyped(descriptor):
            return copy.deepcopy(list(raw))
        return [
            self.decode(element, descriptor.element, f"{path}[{i}]")
            for i, element in enumerate(raw)
        ]

    def _map_entries(self, raw: Any, descriptor: MapType, path: str) -> List[Tuple]:
        if isinstance(raw, Mapping):
            return list(raw.items())
        # Arrow delivers MAP values as a list of (key, value) pairs
        if isinstance(raw, (list, tuple)) and all(
            isinstance(entry, (list, tuple)) and len(entry) == 2 for entry in raw
        ):
            return [tuple(entry) for entry in raw]
        raise _mismatch(raw, descriptor, path, "a mapping or key/value pairs")

    def _decode_map(self, raw: Any, descriptor: MapType, path: str) -> Any:
        entries = self._map_entries(raw, descriptor, path)
        if not self.context.structured_types_enabled:
            return {key: copy.deepcopy(value) for key, value in entries}

        result = {}
        for key, value in entries:
            entry_path = _child_path(path, str(key))
            decoded_key = self.decode(key, descriptor.key, entry_path)
            result[decoded_key] = self.decode(value, descriptor.value, entry_path)
        return result

    def decode_column(
        self,
        column_name: Optional[str],
        raw: Any,
        descriptor: TypeDescriptor,
        as_string: Optional[bool] = None,
    ) -> Union[Any, str]:
        """
        Decode one column value in the rendering mode requested for the column.

        Args:
            column_name: The result column name, used for string-mode lookup and errors
            raw: The raw value
            descriptor: The column descriptor
            as_string: Force (True) or suppress (False) string mode; by default the
                context's fetch_as_string setting decides

        Returns:
            The native value tree, or its JSON rendering in string mode
        """
        if as_string is None:
            as_string = self.context.wants_string(column_name, descriptor)

        if as_string and raw is None:
            return None
        if (
            as_string
            and isinstance(raw, str)
            and descriptor.kind.is_structured
            and not self.context.structured_types_enabled
        ):
            return raw

        value = self.decode(raw, descriptor, column_name or "")
        if as_string:
            return serialize(value)
        return value
