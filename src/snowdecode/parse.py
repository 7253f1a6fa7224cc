"""
Builders that turn server column metadata into type descriptors.

Two representations are supported: structured type declarations such as
``OBJECT(a VARCHAR, b ARRAY(INTEGER NOT NULL))`` and the row-type metadata
dictionaries sent with each result, e.g.

    {"name": "RESULT", "type": "object", "nullable": true,
     "fields": [{"fieldName": "a", "fieldType": {"type": "text"}}]}
"""

import dataclasses
import logging
import re
from functools import lru_cache
from typing import Any, List, Mapping, Optional, Tuple, Union

from snowdecode.exc import TypeStringParseError
from snowdecode.types import (
    ArrayType,
    FieldDescriptor,
    MapType,
    ObjectType,
    ScalarType,
    TypeDescriptor,
    TypeKind,
)

logger = logging.getLogger(__name__)

_TOKEN = re.compile(
    r'\s*(?:(?P<punct>[(),])|(?P<number>\d+)|(?P<quoted>"(?:[^"]|"")*")'
    r"|(?P<word>[A-Za-z_][A-Za-z0-9_$]*))"
)

# Row-type names that differ from declaration names
METADATA_TYPE_MAP = {
    "TEXT": TypeKind.VARCHAR,
    "FIXED": TypeKind.NUMBER,
    "REAL": TypeKind.DOUBLE,
}


class _TypeStringParser:
    """Recursive-descent parser over a regex tokenizer."""

    def __init__(self, text: str):
        self.text = text
        self.tokens = self._tokenize(text)
        self.index = 0

    def _error(self, message: str, position: Optional[int] = None):
        if position is None:
            if self.index < len(self.tokens):
                position = self.tokens[self.index][2]
            else:
                position = len(self.text)
        return TypeStringParseError(
            f"{message} in type declaration {self.text!r} at position {position}",
            context={"type-string": self.text, "position": position},
        )

    def _tokenize(self, text: str) -> List[Tuple[str, str, int]]:
        tokens = []
        position = 0
        while position < len(text):
            remainder = text[position:]
            if remainder.strip() == "":
                break
            match = _TOKEN.match(text, position)
            if match is None or match.end() == position:
                position += len(remainder) - len(remainder.lstrip())
                raise self._error(f"Unexpected character {text[position]!r}", position)
            kind = match.lastgroup
            start = match.start(kind)
            tokens.append((kind, match.group(kind), start))
            position = match.end()
        return tokens

    def _peek(self, value: Optional[str] = None) -> bool:
        if self.index >= len(self.tokens):
            return False
        if value is None:
            return True
        return self.tokens[self.index][1].upper() == value

    def _next(self, kind: Optional[str] = None, value: Optional[str] = None) -> str:
        if self.index >= len(self.tokens):
            raise self._error("Unexpected end of input")
        token_kind, text, _ = self.tokens[self.index]
        if kind is not None and token_kind != kind:
            raise self._error(f"Expected {value or kind}, found {text!r}")
        if value is not None and text.upper() != value:
            raise self._error(f"Expected {value}, found {text!r}")
        self.index += 1
        return text

    def parse(self) -> TypeDescriptor:
        descriptor = self._parse_nullable_type()
        if self._peek():
            raise self._error(f"Unexpected token {self.tokens[self.index][1]!r}")
        return descriptor

    def _parse_nullable_type(self) -> TypeDescriptor:
        descriptor = self._parse_type()
        if self._peek("NOT"):
            self._next()
            self._next("word", "NULL")
            return dataclasses.replace(descriptor, nullable=False)
        if self._peek("NULL"):
            self._next()
        return descriptor

    def _parse_type(self) -> TypeDescriptor:
        name = self._next("word").upper()
        if name == "DOUBLE" and self._peek("PRECISION"):
            self._next()
            name = "DOUBLE PRECISION"

        try:
            if name == "OBJECT":
                return self._parse_object()
            if name == "ARRAY":
                return self._parse_array()
            if name == "MAP":
                return self._parse_map()
        except ValueError as e:
            raise self._error(str(e))
        return self._parse_scalar(name)

    def _parse_object(self) -> ObjectType:
        if not self._peek("("):
            return ObjectType(fields=None)
        self._next("punct")
        fields = []
        if not self._peek(")"):
            fields.append(self._parse_field())
            while self._peek(","):
                self._next()
                fields.append(self._parse_field())
        self._next("punct", ")")
        return ObjectType(fields=tuple(fields))

    def _parse_field(self) -> FieldDescriptor:
        if self._peek() and self.tokens[self.index][0] == "quoted":
            name = self._next("quoted")[1:-1].replace('""', '"')
        else:
            name = self._next("word")
        return FieldDescriptor(name, self._parse_nullable_type())

    def _parse_array(self) -> ArrayType:
        if not self._peek("("):
            return ArrayType(element=None)
        self._next("punct")
        element = self._parse_nullable_type()
        self._next("punct", ")")
        return ArrayType(element=element)

    def _parse_map(self) -> MapType:
        self._next("punct", "(")
        key = self._parse_type()
        self._next("punct", ",")
        value = self._parse_nullable_type()
        self._next("punct", ")")
        return MapType(key=key, value=value)

    def _parse_scalar(self, name: str) -> ScalarType:
        kind = TypeKind.from_name(name)
        params = []
        if self._peek("("):
            self._next("punct")
            params.append(int(self._next("number")))
            while self._peek(","):
                self._next()
                params.append(int(self._next("number")))
            self._next("punct", ")")

        if kind is TypeKind.NUMBER and params:
            return ScalarType(
                kind, precision=params[0], scale=params[1] if len(params) > 1 else 0
            )
        if (kind.is_timestamp or kind is TypeKind.TIME) and params:
            return ScalarType(kind, scale=params[0])
        # Lengths of VARCHAR(n) and BINARY(n) do not affect decoding
        return ScalarType(kind)


@lru_cache(maxsize=256)
def parse_type_string(text: str) -> TypeDescriptor:
    """
    Parse a structured type declaration into a descriptor.

    >>> parse_type_string("OBJECT(a VARCHAR, b INTEGER NOT NULL)").field_names
    ['a', 'b']

    Raises:
        TypeStringParseError: If the declaration is malformed
        UnsupportedKindError: If the declaration names an unknown type
    """
    descriptor = _TypeStringParser(text).parse()
    logger.debug("Parsed type declaration %r into %s", text, descriptor)
    return descriptor


def _metadata_kind(type_name: str) -> TypeKind:
    normalized = type_name.strip().upper()
    return METADATA_TYPE_MAP.get(normalized) or TypeKind.from_name(normalized)


def _unwrap_field(field: Mapping[str, Any]) -> Tuple[Optional[str], Mapping[str, Any]]:
    if "fieldType" in field:
        return field.get("fieldName"), field["fieldType"]
    return field.get("name"), field


def _metadata_error(message: str, metadata: Mapping[str, Any]) -> TypeStringParseError:
    return TypeStringParseError(
        message, context={"type-string": str(metadata), "position": None}
    )


def descriptor_from_metadata(metadata: Mapping[str, Any]) -> TypeDescriptor:
    """
    Build a descriptor from a row-type metadata dictionary.

    Nested members are listed under ``fields``: named members for an OBJECT,
    a single element entry for an ARRAY, and key then value entries for a MAP.
    Members may be flat (``{"name": ..., "type": ...}``) or wrapped
    (``{"fieldName": ..., "fieldType": {...}}``).

    Raises:
        TypeStringParseError: If the metadata does not describe a valid type
        UnsupportedKindError: If the metadata names an unknown type
    """
    try:
        return _build_from_metadata(metadata)
    except ValueError as e:
        raise _metadata_error(str(e), metadata)


def _build_from_metadata(metadata: Mapping[str, Any]) -> TypeDescriptor:
    kind = _metadata_kind(metadata["type"])
    nullable = metadata.get("nullable", True)
    if nullable is None:
        nullable = True
    fields = metadata.get("fields")

    if kind is TypeKind.OBJECT:
        if not fields:
            return ObjectType(fields=None, nullable=nullable)
        members = []
        for field in fields:
            name, field_type = _unwrap_field(field)
            if name is None:
                raise _metadata_error("OBJECT field metadata without a name", metadata)
            members.append(FieldDescriptor(name, _build_from_metadata(field_type)))
        return ObjectType(fields=tuple(members), nullable=nullable)

    if kind is TypeKind.ARRAY:
        if not fields:
            return ArrayType(element=None, nullable=nullable)
        _, element = _unwrap_field(fields[0])
        return ArrayType(element=_build_from_metadata(element), nullable=nullable)

    if kind is TypeKind.MAP:
        if not fields or len(fields) != 2:
            raise _metadata_error(
                "MAP metadata must list a key and a value type", metadata
            )
        _, key = _unwrap_field(fields[0])
        _, value = _unwrap_field(fields[1])
        return MapType(
            key=_build_from_metadata(key),
            value=_build_from_metadata(value),
            nullable=nullable,
        )

    return ScalarType(
        kind,
        nullable=nullable,
        precision=metadata.get("precision") if kind is TypeKind.NUMBER else None,
        scale=metadata.get("scale"),
    )


def as_descriptor(
    declaration: Union[TypeDescriptor, str, Mapping[str, Any]]
) -> TypeDescriptor:
    """Accept a descriptor, a type declaration string or row-type metadata."""
    if isinstance(declaration, TypeDescriptor):
        return declaration
    if isinstance(declaration, str):
        return parse_type_string(declaration)
    if isinstance(declaration, Mapping):
        return descriptor_from_metadata(declaration)
    raise TypeError(f"Cannot build a type descriptor from {type(declaration).__name__}")
