"""
Type descriptors for structured result columns.

A column typed ``OBJECT(a VARCHAR, b ARRAY(INTEGER))`` is described by a tree of
immutable descriptors built once per statement and reused for every row:

    ObjectType(fields=(
        FieldDescriptor("a", ScalarType(TypeKind.VARCHAR)),
        FieldDescriptor("b", ArrayType(ScalarType(TypeKind.INTEGER))),
    ))

Descriptors never inspect raw values; the decoder pairs each raw value with
its descriptor and trusts the descriptor for the type.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from snowdecode.exc import UnsupportedKindError

logger = logging.getLogger(__name__)

# Structured types the server produces are far shallower than this
MAX_NESTING_DEPTH = 100

# Fractional second digits of a TIME or TIMESTAMP_* declared without a scale.
# Row-type metadata reports it explicitly, declarations leave it out.
SERVER_DEFAULT_FRACTIONAL_SCALE = 9

_PLAIN_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_$]*$")


class TypeKind(Enum):
    """
    Logical type of a descriptor node.

    The scalar members are leaf kinds handled by the scalar converter. OBJECT,
    ARRAY and MAP are structured kinds with nested descriptors. GEOGRAPHY,
    GEOMETRY and VECTOR are server types that have no client-side converter.
    """

    # String types
    VARCHAR = "VARCHAR"

    # Boolean type
    BOOLEAN = "BOOLEAN"

    # Numeric types
    TINYINT = "TINYINT"
    SMALLINT = "SMALLINT"
    INTEGER = "INTEGER"
    BIGINT = "BIGINT"
    NUMBER = "NUMBER"
    FLOAT = "FLOAT"
    DOUBLE = "DOUBLE"

    # Date/Time types
    TIMESTAMP_LTZ = "TIMESTAMP_LTZ"
    TIMESTAMP_NTZ = "TIMESTAMP_NTZ"
    TIMESTAMP_TZ = "TIMESTAMP_TZ"
    DATE = "DATE"
    TIME = "TIME"

    # Binary type
    BINARY = "BINARY"

    # Semi-structured value passed through as parsed JSON
    VARIANT = "VARIANT"

    # Structured types
    OBJECT = "OBJECT"
    ARRAY = "ARRAY"
    MAP = "MAP"

    # Known to the server, not converted by this library
    GEOGRAPHY = "GEOGRAPHY"
    GEOMETRY = "GEOMETRY"
    VECTOR = "VECTOR"

    @classmethod
    def from_name(cls, name: str) -> "TypeKind":
        """
        Resolve a type name or one of its aliases (e.g. ``INT``, ``STRING``) to a TypeKind.

        Raises:
            UnsupportedKindError: If the name is not a known type
        """
        normalized = " ".join(name.upper().split())
        normalized = TYPE_ALIASES.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError:
            raise UnsupportedKindError(
                f"Unsupported type: {name}", context={"kind": name}
            )

    @property
    def is_integer(self) -> bool:
        return self in (
            TypeKind.TINYINT,
            TypeKind.SMALLINT,
            TypeKind.INTEGER,
            TypeKind.BIGINT,
        )

    @property
    def is_floating(self) -> bool:
        return self in (TypeKind.FLOAT, TypeKind.DOUBLE)

    @property
    def is_numeric(self) -> bool:
        return self.is_integer or self.is_floating or self is TypeKind.NUMBER

    @property
    def is_timestamp(self) -> bool:
        return self in (
            TypeKind.TIMESTAMP_LTZ,
            TypeKind.TIMESTAMP_NTZ,
            TypeKind.TIMESTAMP_TZ,
        )

    @property
    def is_temporal(self) -> bool:
        return self.is_timestamp or self in (TypeKind.DATE, TypeKind.TIME)

    @property
    def is_structured(self) -> bool:
        return self in (TypeKind.OBJECT, TypeKind.ARRAY, TypeKind.MAP)


TYPE_ALIASES: Dict[str, str] = {
    "INT": "INTEGER",
    "BYTEINT": "TINYINT",
    "STRING": "VARCHAR",
    "TEXT": "VARCHAR",
    "CHAR": "VARCHAR",
    "CHARACTER": "VARCHAR",
    "NCHAR": "VARCHAR",
    "NVARCHAR": "VARCHAR",
    "DECIMAL": "NUMBER",
    "NUMERIC": "NUMBER",
    "REAL": "DOUBLE",
    "FLOAT4": "FLOAT",
    "FLOAT8": "DOUBLE",
    "DOUBLE PRECISION": "DOUBLE",
    "DATETIME": "TIMESTAMP_NTZ",
    "TIMESTAMP": "TIMESTAMP_NTZ",
    "TIMESTAMPLTZ": "TIMESTAMP_LTZ",
    "TIMESTAMPNTZ": "TIMESTAMP_NTZ",
    "TIMESTAMPTZ": "TIMESTAMP_TZ",
    "VARBINARY": "BINARY",
}


def _quote_name(name: str) -> str:
    if _PLAIN_IDENTIFIER.match(name):
        return name
    return '"' + name.replace('"', '""') + '"'


def _with_null_marker(descriptor: "TypeDescriptor") -> str:
    rendered = descriptor.type_string()
    return rendered if descriptor.nullable else rendered + " NOT NULL"


class TypeDescriptor:
    """Common interface of all descriptor nodes."""

    kind: TypeKind
    nullable: bool

    @property
    def depth(self) -> int:
        """Number of structured levels below and including this node."""
        return getattr(self, "_depth", 0)

    @property
    def is_structured(self) -> bool:
        return self.kind.is_structured

    def type_string(self) -> str:
        raise NotImplementedError

    def __str__(self) -> str:
        return self.type_string()


def _check_depth(descriptor: TypeDescriptor, children: Iterable[TypeDescriptor]):
    depth = 1 + max((child.depth for child in children), default=0)
    if depth > MAX_NESTING_DEPTH:
        raise ValueError(
            f"Structured type nesting of {depth} exceeds the maximum of {MAX_NESTING_DEPTH}"
        )
    object.__setattr__(descriptor, "_depth", depth)


@dataclass(frozen=True)
class ScalarType(TypeDescriptor):
    """
    A leaf of the descriptor tree.

    Attributes:
        kind: Scalar type kind
        nullable: Whether the server may send NULL for this value
        precision: Total digits for NUMBER
        scale: Digits after the decimal point for NUMBER, fractional second
            digits for TIME and TIMESTAMP_* kinds
    """

    kind: TypeKind
    nullable: bool = True
    precision: Optional[int] = None
    scale: Optional[int] = None

    def __post_init__(self):
        if isinstance(self.kind, str):
            object.__setattr__(self, "kind", TypeKind.from_name(self.kind))
        if self.kind.is_structured:
            raise ValueError(
                f"{self.kind.value} is a structured kind and cannot be used as a scalar"
            )
        # TIMESTAMP_LTZ(9) and TIMESTAMP_LTZ are the same type
        if (
            self.has_fractional_seconds
            and self.scale == SERVER_DEFAULT_FRACTIONAL_SCALE
        ):
            object.__setattr__(self, "scale", None)

    @property
    def has_fractional_seconds(self) -> bool:
        return self.kind.is_timestamp or self.kind is TypeKind.TIME

    def type_string(self) -> str:
        if self.kind is TypeKind.NUMBER and self.precision is not None:
            return f"NUMBER({self.precision},{self.scale or 0})"
        if self.scale is not None and self.has_fractional_seconds:
            return f"{self.kind.value}({self.scale})"
        return self.kind.value


@dataclass(frozen=True)
class FieldDescriptor:
    """A named, typed member of an OBJECT."""

    name: str
    type: TypeDescriptor

    @property
    def nullable(self) -> bool:
        return self.type.nullable


@dataclass(frozen=True)
class ObjectType(TypeDescriptor):
    """
    OBJECT with an ordered sequence of fields.

    ``fields=None`` describes a semi-structured OBJECT whose members carry no
    declared types.
    """

    fields: Optional[Tuple[FieldDescriptor, ...]]
    nullable: bool = True

    kind = TypeKind.OBJECT

    def __post_init__(self):
        if self.fields is None:
            return
        fields = tuple(
            f if isinstance(f, FieldDescriptor) else FieldDescriptor(*f)
            for f in self.fields
        )
        seen = set()
        for f in fields:
            if f.name in seen:
                raise ValueError(f"Duplicate field name in OBJECT: {f.name}")
            seen.add(f.name)
        object.__setattr__(self, "fields", fields)
        _check_depth(self, (f.type for f in fields))

    @property
    def is_semi_structured(self) -> bool:
        return self.fields is None

    @property
    def field_names(self) -> List[str]:
        return [f.name for f in self.fields or ()]

    def type_string(self) -> str:
        if self.fields is None:
            return "OBJECT"
        members = ", ".join(
            f"{_quote_name(f.name)} {_with_null_marker(f.type)}" for f in self.fields
        )
        return f"OBJECT({members})"


@dataclass(frozen=True)
class ArrayType(TypeDescriptor):
    """ARRAY of a single element type; ``element=None`` is a semi-structured ARRAY."""

    element: Optional[TypeDescriptor]
    nullable: bool = True

    kind = TypeKind.ARRAY

    def __post_init__(self):
        if self.element is not None:
            _check_depth(self, (self.element,))

    @property
    def is_semi_structured(self) -> bool:
        return self.element is None

    def type_string(self) -> str:
        if self.element is None:
            return "ARRAY"
        return f"ARRAY({_with_null_marker(self.element)})"


@dataclass(frozen=True)
class MapType(TypeDescriptor):
    """MAP with typed keys and values. Keys are VARCHAR or numeric."""

    key: TypeDescriptor
    value: TypeDescriptor
    nullable: bool = True

    kind = TypeKind.MAP

    def __post_init__(self):
        if not isinstance(self.key, ScalarType):
            raise ValueError("MAP keys must be a scalar type")
        if not (self.key.kind is TypeKind.VARCHAR or self.key.kind.is_numeric):
            raise ValueError(
                f"MAP keys must be VARCHAR or numeric, not {self.key.kind.value}"
            )
        _check_depth(self, (self.key, self.value))

    def type_string(self) -> str:
        return f"MAP({self.key.type_string()}, {_with_null_marker(self.value)})"


class Row(tuple):
    """
    A row in a result set.

    Fields are accessible by position (``row[0]``), by name (``row["key"]``)
    or as attributes (``row.key``).

    Calling ``Row`` with positional field names returns a row factory:

    >>> ResultRow = Row("id", "result")
    >>> row = ResultRow(1, {"string": "a"})
    >>> row.result
    {'string': 'a'}
    """

    def __new__(cls, *args, **kwargs):
        if args and kwargs:
            raise ValueError("Can not use both args and kwargs to create Row")
        if kwargs:
            row = tuple.__new__(cls, list(kwargs.values()))
            row.__fields__ = list(kwargs.keys())
            return row
        return tuple.__new__(cls, args)

    def asDict(self, recursive: bool = False) -> Dict[str, Any]:
        """Return the row as an insertion-ordered dict keyed by column name."""
        if not hasattr(self, "__fields__"):
            raise TypeError("Cannot convert a Row class into dict")

        if recursive:

            def conv(obj):
                if isinstance(obj, Row):
                    return obj.asDict(True)
                elif isinstance(obj, list):
                    return [conv(o) for o in obj]
                elif isinstance(obj, dict):
                    return dict((k, conv(v)) for k, v in obj.items())
                return obj

            return dict(zip(self.__fields__, (conv(o) for o in self)))
        return dict(zip(self.__fields__, self))

    def __contains__(self, item):
        if hasattr(self, "__fields__"):
            return item in self.__fields__
        return super().__contains__(item)

    def __call__(self, *args):
        """Create a new Row using this Row's values as field names."""
        if len(args) > len(self):
            raise ValueError(
                "Can not create Row with fields %s, expected %d values "
                "but got %s" % (self, len(self), args)
            )
        return _create_row(self, args)

    def __getitem__(self, item):
        if isinstance(item, (int, slice)):
            return super().__getitem__(item)
        try:
            idx = self.__fields__.index(item)
            return super().__getitem__(idx)
        except IndexError:
            raise KeyError(item)
        except ValueError:
            raise ValueError(item)

    def __getattr__(self, item):
        if item.startswith("__"):
            raise AttributeError(item)
        try:
            idx = self.__fields__.index(item)
            return self[idx]
        except IndexError:
            raise AttributeError(item)
        except ValueError:
            raise AttributeError(item)

    def __setattr__(self, key, value):
        if key != "__fields__":
            raise RuntimeError("Row is read-only")
        self.__dict__[key] = value

    def __reduce__(self):
        if hasattr(self, "__fields__"):
            return (_create_row, (self.__fields__, tuple(self)))
        return tuple.__reduce__(self)

    def __repr__(self):
        if hasattr(self, "__fields__"):
            return "Row(%s)" % ", ".join(
                "%s=%r" % (k, v) for k, v in zip(self.__fields__, tuple(self))
            )
        return "<Row(%s)>" % ", ".join("%r" % field for field in self)


def _create_row(
    fields: Union[Row, List[str]], values: Union[Tuple[Any, ...], List[Any]]
):
    row = Row(*values)
    row.__fields__ = list(fields)
    return row
