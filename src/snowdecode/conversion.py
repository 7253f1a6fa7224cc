"""
Scalar conversion for leaves of structured values.

Each converter takes the raw leaf exactly as the result source delivered it,
the leaf's ScalarType descriptor and the session formatting context, and
returns the client-facing value. Temporal kinds are returned as strings
formatted with the session output patterns.
"""

import base64
import binascii
import copy
import datetime
import decimal
import logging
import re
from typing import Any, Callable, Dict, Optional

from dateutil import parser, tz

from snowdecode.exc import (
    MalformedTemporalError,
    StructuredDecodeError,
    TypeMismatchError,
    UnsupportedKindError,
)
from snowdecode.formatting import SessionFormattingContext, format_datetime
from snowdecode.types import ScalarType, TypeKind

logger = logging.getLogger(__name__)

# Fractional second digits kept for temporal leaves declared at the default scale
DEFAULT_TEMPORAL_SCALE = 0

_TRUE_STRINGS = ("true", "t", "yes", "y", "1")
_FALSE_STRINGS = ("false", "f", "no", "n", "0")

_INTEGER_LITERAL = re.compile(r"^[+-]?\d+$")
_EPOCH_TIMESTAMP = re.compile(r"^(-?)(\d+)(?:\.(\d{1,9}))?(?:\s+(\d+))?$")
_EPOCH_SECONDS = re.compile(r"^(\d+)(?:\.(\d{1,9}))?$")
_DATE_PREFIX = re.compile(r"^[+-]?\d{4,}-\d{2}-\d{2}")
_TIME_LITERAL = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2})(?:\.(\d{1,9}))?)?$")

_UNIX_EPOCH = datetime.datetime(1970, 1, 1, tzinfo=tz.UTC)
_EPOCH_DATE = datetime.date(1970, 1, 1)

# TIMESTAMP_TZ epoch values carry the offset as minutes + 1440
_TZ_OFFSET_BIAS = 1440


def _mismatch(value: Any, descriptor: ScalarType, expected: str) -> TypeMismatchError:
    return TypeMismatchError(
        f"Expected {expected} for {descriptor.kind.value}, got {type(value).__name__}: {value!r}",
        context={"kind": descriptor.kind.value, "raw-type": type(value).__name__},
    )


def _malformed(value: Any, descriptor: ScalarType) -> MalformedTemporalError:
    return MalformedTemporalError(
        f"Cannot parse {descriptor.kind.value} value {value!r}",
        context={"kind": descriptor.kind.value},
    )


def _convert_decimal(
    value: decimal.Decimal, precision: Optional[int] = None, scale: Optional[int] = None
) -> decimal.Decimal:
    """
    Apply optional precision and scale to a decimal.

    Args:
        value: The decimal to adjust
        precision: Optional precision (total number of significant digits) for the decimal
        scale: Optional scale (number of decimal places) for the decimal

    Returns:
        A decimal.Decimal object with appropriate precision and scale
    """
    if scale is None:
        return value

    quantizer = decimal.Decimal(1).scaleb(-scale)
    context = decimal.Context(prec=precision) if precision is not None else None
    return value.quantize(quantizer, context=context)


def _microseconds(fraction: Optional[str]) -> int:
    # Digits beyond microseconds are dropped, never rounded
    return int((fraction or "").ljust(6, "0")[:6])


def _truncate(value, descriptor: ScalarType):
    """Drop fractional second digits beyond the descriptor scale."""
    digits = descriptor.scale
    if digits is None:
        digits = DEFAULT_TEMPORAL_SCALE
    if digits >= 6:
        return value
    unit = 10 ** (6 - digits)
    return value.replace(microsecond=value.microsecond - value.microsecond % unit)


def _convert_integer(value: Any, descriptor: ScalarType, context) -> int:
    if isinstance(value, bool):
        raise _mismatch(value, descriptor, "an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and _INTEGER_LITERAL.match(value.strip()):
        return int(value)
    raise _mismatch(value, descriptor, "an integer")


def _convert_number(value: Any, descriptor: ScalarType, context):
    if isinstance(value, bool):
        raise _mismatch(value, descriptor, "a number")
    try:
        if isinstance(value, (int, decimal.Decimal)):
            number = decimal.Decimal(value)
        elif isinstance(value, float):
            number = decimal.Decimal(repr(value))
        elif isinstance(value, str):
            number = decimal.Decimal(value.strip())
        else:
            raise _mismatch(value, descriptor, "a number")
    except decimal.InvalidOperation:
        raise _mismatch(value, descriptor, "a number")
    if not number.is_finite():
        raise _mismatch(value, descriptor, "a finite number")

    if not descriptor.scale:
        if number != number.to_integral_value():
            raise _mismatch(value, descriptor, "an integral number")
        return int(number)
    try:
        return _convert_decimal(number, descriptor.precision, descriptor.scale)
    except decimal.InvalidOperation:
        raise _mismatch(
            value,
            descriptor,
            f"a number fitting NUMBER({descriptor.precision},{descriptor.scale})",
        )


def _convert_float(value: Any, descriptor: ScalarType, context) -> float:
    if isinstance(value, bool):
        raise _mismatch(value, descriptor, "a floating point number")
    if isinstance(value, (int, float, decimal.Decimal)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            pass
    raise _mismatch(value, descriptor, "a floating point number")


def _convert_boolean(value: Any, descriptor: ScalarType, context) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise _mismatch(value, descriptor, "a boolean")


def _convert_varchar(value: Any, descriptor: ScalarType, context) -> str:
    if isinstance(value, str):
        return value
    raise _mismatch(value, descriptor, "a string")


def _convert_binary(
    value: Any, descriptor: ScalarType, context: SessionFormattingContext
) -> bytes:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, (list, tuple)):
        try:
            return bytes(value)
        except (TypeError, ValueError):
            raise _mismatch(value, descriptor, "a sequence of byte values")
    if not isinstance(value, str):
        raise _mismatch(value, descriptor, "encoded binary text")

    try:
        if context.binary_format == "HEX":
            return bytes.fromhex(value)
        if context.binary_format == "BASE64":
            return base64.b64decode(value, validate=True)
        return value.encode("utf-8")
    except (ValueError, binascii.Error):
        raise _mismatch(value, descriptor, f"{context.binary_format} encoded binary")


def _parse_timestamp(value: Any, descriptor: ScalarType) -> datetime.datetime:
    """
    Parse a raw timestamp into a datetime.

    Epoch values (``seconds[.fraction][ offset_index]``) yield aware datetimes;
    literals yield aware datetimes when they carry an offset and naive ones
    otherwise.
    """
    if isinstance(value, datetime.datetime):
        return value
    if not isinstance(value, str):
        raise _mismatch(value, descriptor, "a timestamp string")

    text = value.strip()
    match = _EPOCH_TIMESTAMP.match(text)
    if match:
        sign, seconds, fraction, offset_index = match.groups()
        delta = datetime.timedelta(
            seconds=int(seconds), microseconds=_microseconds(fraction)
        )
        try:
            instant = _UNIX_EPOCH + (-delta if sign else delta)
        except OverflowError:
            raise _malformed(value, descriptor)
        if offset_index is None:
            return instant
        if descriptor.kind is not TypeKind.TIMESTAMP_TZ:
            raise _malformed(value, descriptor)
        minutes = int(offset_index) - _TZ_OFFSET_BIAS
        return instant.astimezone(tz.tzoffset(None, minutes * 60))

    if not _DATE_PREFIX.match(text):
        raise _malformed(value, descriptor)
    try:
        return parser.parse(text)
    except (ValueError, OverflowError):
        raise _malformed(value, descriptor)


def _convert_timestamp_ltz(
    value: Any, descriptor: ScalarType, context: SessionFormattingContext
) -> str:
    parsed = _parse_timestamp(value, descriptor)
    if parsed.tzinfo is None:
        localized = parsed.replace(tzinfo=context.tzinfo)
    else:
        localized = parsed.astimezone(context.tzinfo)
    return format_datetime(
        _truncate(localized, descriptor), context.timestamp_format(descriptor.kind)
    )


def _convert_timestamp_ntz(
    value: Any, descriptor: ScalarType, context: SessionFormattingContext
) -> str:
    wall_clock = _parse_timestamp(value, descriptor).replace(tzinfo=None)
    return format_datetime(
        _truncate(wall_clock, descriptor), context.timestamp_format(descriptor.kind)
    )


def _convert_timestamp_tz(
    value: Any, descriptor: ScalarType, context: SessionFormattingContext
) -> str:
    parsed = _parse_timestamp(value, descriptor)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=context.tzinfo)
    return format_datetime(
        _truncate(parsed, descriptor), context.timestamp_format(descriptor.kind)
    )


def _convert_date(
    value: Any, descriptor: ScalarType, context: SessionFormattingContext
) -> str:
    if isinstance(value, datetime.datetime):
        day = value.date()
    elif isinstance(value, datetime.date):
        day = value
    elif isinstance(value, str):
        text = value.strip()
        try:
            if _INTEGER_LITERAL.match(text):
                day = _EPOCH_DATE + datetime.timedelta(days=int(text))
            else:
                day = datetime.date.fromisoformat(text)
        except (ValueError, OverflowError):
            raise _malformed(value, descriptor)
    else:
        raise _mismatch(value, descriptor, "a date string")

    if context.dates_in_session_timezone:
        midnight = datetime.datetime.combine(day, datetime.time(0), tzinfo=tz.UTC)
        day = midnight.astimezone(context.tzinfo).date()

    return format_datetime(
        datetime.datetime.combine(day, datetime.time(0)), context.date_output_format
    )


def _parse_time(value: Any, descriptor: ScalarType) -> datetime.time:
    if isinstance(value, datetime.time):
        return value.replace(tzinfo=None)
    if not isinstance(value, str):
        raise _mismatch(value, descriptor, "a time string")

    text = value.strip()
    try:
        match = _TIME_LITERAL.match(text)
        if match:
            hours, minutes, seconds, fraction = match.groups()
            return datetime.time(
                int(hours), int(minutes), int(seconds or 0), _microseconds(fraction)
            )
        match = _EPOCH_SECONDS.match(text)
        if match:
            seconds, fraction = match.groups()
            hours, remainder = divmod(int(seconds), 3600)
            minutes, seconds = divmod(remainder, 60)
            return datetime.time(hours, minutes, seconds, _microseconds(fraction))
    except ValueError:
        pass
    raise _malformed(value, descriptor)


def _convert_time(
    value: Any, descriptor: ScalarType, context: SessionFormattingContext
) -> str:
    parsed = _truncate(_parse_time(value, descriptor), descriptor)
    return format_datetime(
        datetime.datetime.combine(_EPOCH_DATE, parsed), context.time_output_format
    )


class ScalarValueConverter:
    """
    Converts one raw leaf value to its client representation.

    Converters never coerce a value of the wrong shape: a list where a
    VARCHAR was declared, or ``True`` where an INTEGER was declared, raise
    TypeMismatchError.
    """

    TYPE_MAPPING: Dict[TypeKind, Callable] = {
        # Numeric types
        TypeKind.TINYINT: _convert_integer,
        TypeKind.SMALLINT: _convert_integer,
        TypeKind.INTEGER: _convert_integer,
        TypeKind.BIGINT: _convert_integer,
        TypeKind.NUMBER: _convert_number,
        TypeKind.FLOAT: _convert_float,
        TypeKind.DOUBLE: _convert_float,
        # Boolean type
        TypeKind.BOOLEAN: _convert_boolean,
        # String type
        TypeKind.VARCHAR: _convert_varchar,
        # Binary type
        TypeKind.BINARY: _convert_binary,
        # Date/Time types
        TypeKind.TIMESTAMP_LTZ: _convert_timestamp_ltz,
        TypeKind.TIMESTAMP_NTZ: _convert_timestamp_ntz,
        TypeKind.TIMESTAMP_TZ: _convert_timestamp_tz,
        TypeKind.DATE: _convert_date,
        TypeKind.TIME: _convert_time,
        # Semi-structured values are already parsed JSON
        TypeKind.VARIANT: lambda v, d, c: copy.deepcopy(v),
    }

    @staticmethod
    def convert_value(
        value: Any,
        descriptor: ScalarType,
        context: SessionFormattingContext,
        path: Optional[str] = None,
    ) -> Any:
        """
        Convert a raw leaf value based on its descriptor.

        Args:
            value: The raw value, never None
            descriptor: The leaf descriptor
            context: Session formatting context
            path: Location of the value, reported in errors

        Returns:
            The converted value

        Raises:
            TypeMismatchError: If the raw value has the wrong shape
            MalformedTemporalError: If a temporal literal cannot be parsed
            UnsupportedKindError: If no converter exists for the kind
        """
        converter_func = ScalarValueConverter.TYPE_MAPPING.get(descriptor.kind)
        if converter_func is None:
            raise UnsupportedKindError(
                f"No converter for type {descriptor.kind.value}",
                context={"kind": descriptor.kind.value, "path": path},
            )
        try:
            return converter_func(value, descriptor, context)
        except StructuredDecodeError as e:
            e.context.setdefault("path", path)
            raise
