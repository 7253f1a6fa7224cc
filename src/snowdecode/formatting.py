"""
Session formatting state and output pattern rendering.

The server describes how temporal values are shown with session parameters
such as ``TIMESTAMP_LTZ_OUTPUT_FORMAT='YYYY-MM-DD HH24:MI:SS.FF3 TZHTZM'``.
``SessionFormattingContext`` captures those parameters once per session or
statement and is passed explicitly into every conversion call.
"""

import datetime
import logging
import re
from dataclasses import dataclass, replace
from functools import lru_cache
from typing import Any, FrozenSet, Iterable, Mapping, Optional, Tuple, Union

from dateutil import tz

from snowdecode.exc import ProgrammingError
from snowdecode.types import TypeDescriptor, TypeKind

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "America/Los_Angeles"
DEFAULT_DATE_OUTPUT_FORMAT = "YYYY-MM-DD"
DEFAULT_TIME_OUTPUT_FORMAT = "HH24:MI:SS"
DEFAULT_TIMESTAMP_LTZ_OUTPUT_FORMAT = "YYYY-MM-DD HH24:MI:SS.FF3 TZHTZM"
DEFAULT_TIMESTAMP_NTZ_OUTPUT_FORMAT = "YYYY-MM-DD HH24:MI:SS.FF3"
DEFAULT_TIMESTAMP_TZ_OUTPUT_FORMAT = "YYYY-MM-DD HH24:MI:SS.FF3 TZHTZM"

BINARY_FORMATS = ("HEX", "BASE64", "UTF8")

_MONTH_NAMES = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)
_WEEKDAY_NAMES = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")

# Longer tokens come first so that HH24 wins over HH and YYYY over YY
_FORMAT_TOKEN = re.compile(
    r'"[^"]*"|YYYY|YY|MMMM|MON|MM|DD|DY|HH24|HH12|HH|AM|PM|MI|SS|FF[0-9]?|TZH|TZM|.',
    re.IGNORECASE | re.DOTALL,
)
_KNOWN_TOKENS = frozenset(
    [
        "YYYY",
        "YY",
        "MMMM",
        "MON",
        "MM",
        "DD",
        "DY",
        "HH24",
        "HH12",
        "HH",
        "AM",
        "PM",
        "MI",
        "SS",
        "TZH",
        "TZM",
    ]
)

_OFFSET_TIMEZONE = re.compile(
    r"^(?:UTC|GMT)?\s*([+-])(\d{1,2})(?::?(\d{2}))?$", re.IGNORECASE
)


def resolve_timezone(value: Union[str, datetime.tzinfo]) -> datetime.tzinfo:
    """
    Resolve a TIMEZONE setting into a tzinfo.

    Accepts an IANA name (``America/Los_Angeles``), a fixed offset
    (``-0800``, ``+05:30``, ``UTC-08:00``), ``UTC``, or a tzinfo instance.

    Raises:
        ProgrammingError: If the value does not name a time zone
    """
    if isinstance(value, datetime.tzinfo):
        return value
    if not isinstance(value, str) or not value.strip():
        raise ProgrammingError(
            "TIMEZONE must be a non-empty string", context={"timezone": value}
        )

    name = value.strip()
    if name.upper() in ("UTC", "GMT", "Z"):
        return tz.UTC

    match = _OFFSET_TIMEZONE.match(name)
    if match:
        sign, hours, minutes = match.groups()
        seconds = int(hours) * 3600 + int(minutes or 0) * 60
        if seconds >= 24 * 3600:
            raise ProgrammingError(
                f"Time zone offset out of range: {name}", context={"timezone": name}
            )
        return tz.tzoffset(None, -seconds if sign == "-" else seconds)

    zone = tz.gettz(name)
    if zone is None:
        raise ProgrammingError(f"Unknown time zone: {name}", context={"timezone": name})
    return zone


@lru_cache(maxsize=64)
def compile_format(pattern: str) -> Tuple[Tuple[bool, str], ...]:
    """
    Split an output pattern into ``(is_token, text)`` pieces.

    Tokens are upper-cased; double-quoted text and unrecognised characters
    become literals.
    """
    pieces = []
    for match in _FORMAT_TOKEN.finditer(pattern):
        text = match.group(0)
        upper = text.upper()
        if text.startswith('"'):
            pieces.append((False, text[1:-1]))
        elif upper in _KNOWN_TOKENS or upper.startswith("FF"):
            pieces.append((True, upper))
        else:
            pieces.append((False, text))
    return tuple(pieces)


def _offset_parts(value: datetime.datetime) -> Tuple[str, str]:
    offset = value.utcoffset() or datetime.timedelta(0)
    total_minutes = int(offset.total_seconds()) // 60
    sign = "-" if total_minutes < 0 else "+"
    hours, minutes = divmod(abs(total_minutes), 60)
    return f"{sign}{hours:02d}", f"{minutes:02d}"


def _render_token(token: str, value: datetime.datetime) -> str:
    if token == "YYYY":
        return f"{value.year:04d}"
    if token == "YY":
        return f"{value.year % 100:02d}"
    if token == "MM":
        return f"{value.month:02d}"
    if token == "MMMM":
        return _MONTH_NAMES[value.month - 1]
    if token == "MON":
        return _MONTH_NAMES[value.month - 1][:3]
    if token == "DD":
        return f"{value.day:02d}"
    if token == "DY":
        return _WEEKDAY_NAMES[value.weekday()]
    if token in ("HH24", "HH"):
        return f"{value.hour:02d}"
    if token == "HH12":
        return f"{(value.hour + 11) % 12 + 1:02d}"
    if token in ("AM", "PM"):
        return "AM" if value.hour < 12 else "PM"
    if token == "MI":
        return f"{value.minute:02d}"
    if token == "SS":
        return f"{value.second:02d}"
    if token.startswith("FF"):
        digits = int(token[2:]) if len(token) > 2 else 9
        return f"{value.microsecond:06d}000"[:digits]
    if token == "TZH":
        return _offset_parts(value)[0]
    if token == "TZM":
        return _offset_parts(value)[1]
    raise ValueError(f"Unknown format token {token}")


def format_datetime(value: datetime.datetime, pattern: str) -> str:
    """Render a datetime with a server-style output pattern. Naive values render offset +0000."""
    return "".join(
        _render_token(text, value) if is_token else text
        for is_token, text in compile_format(pattern)
    )


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "t", "1", "yes", "y", "on")
    return bool(value)


@dataclass(frozen=True)
class SessionFormattingContext:
    """
    Read-only formatting state for one session or statement.

    Attributes:
        timezone: Session time zone, see ``resolve_timezone``
        date_output_format: Pattern for DATE values
        time_output_format: Pattern for TIME values
        timestamp_ltz_output_format: Pattern for TIMESTAMP_LTZ values
        timestamp_ntz_output_format: Pattern for TIMESTAMP_NTZ values
        timestamp_tz_output_format: Pattern for TIMESTAMP_TZ values
        binary_format: How the server encoded BINARY values (HEX, BASE64, UTF8)
        fetch_as_string: Column names or structured kind names (OBJECT, ARRAY,
            MAP) to return as JSON strings instead of native values
        structured_types_enabled: When False, structured columns are returned
            as plain parsed JSON without per-field conversion
        dates_in_session_timezone: Render DATE values as the session-local day
            of their UTC midnight instead of as timezone-naive dates
    """

    timezone: Union[str, datetime.tzinfo] = DEFAULT_TIMEZONE
    date_output_format: str = DEFAULT_DATE_OUTPUT_FORMAT
    time_output_format: str = DEFAULT_TIME_OUTPUT_FORMAT
    timestamp_ltz_output_format: str = DEFAULT_TIMESTAMP_LTZ_OUTPUT_FORMAT
    timestamp_ntz_output_format: str = DEFAULT_TIMESTAMP_NTZ_OUTPUT_FORMAT
    timestamp_tz_output_format: str = DEFAULT_TIMESTAMP_TZ_OUTPUT_FORMAT
    binary_format: str = "HEX"
    fetch_as_string: FrozenSet[str] = frozenset()
    structured_types_enabled: bool = True
    dates_in_session_timezone: bool = False

    def __post_init__(self):
        binary_format = self.binary_format.upper().replace("-", "")
        if binary_format not in BINARY_FORMATS:
            raise ProgrammingError(
                f"Unsupported binary format: {self.binary_format}",
                context={"binary-format": self.binary_format},
            )
        object.__setattr__(self, "binary_format", binary_format)
        object.__setattr__(self, "fetch_as_string", frozenset(self.fetch_as_string))
        object.__setattr__(self, "_tzinfo", resolve_timezone(self.timezone))
        object.__setattr__(
            self,
            "_fetch_as_string_kinds",
            frozenset(name.upper() for name in self.fetch_as_string),
        )

    @property
    def tzinfo(self) -> datetime.tzinfo:
        return self._tzinfo

    def timestamp_format(self, kind: TypeKind) -> str:
        if kind is TypeKind.TIMESTAMP_LTZ:
            return self.timestamp_ltz_output_format
        if kind is TypeKind.TIMESTAMP_NTZ:
            return self.timestamp_ntz_output_format
        if kind is TypeKind.TIMESTAMP_TZ:
            return self.timestamp_tz_output_format
        raise ValueError(f"{kind} is not a timestamp kind")

    def wants_string(
        self, column_name: Optional[str], descriptor: TypeDescriptor
    ) -> bool:
        """Whether a column should be rendered as a JSON string for this statement."""
        if column_name is not None and column_name in self.fetch_as_string:
            return True
        return descriptor.kind.value in self._fetch_as_string_kinds

    def with_fetch_as_string(self, *names: str) -> "SessionFormattingContext":
        """Return a copy that also renders the given columns or kinds as strings."""
        return replace(self, fetch_as_string=self.fetch_as_string | frozenset(names))

    @classmethod
    def from_session_parameters(
        cls,
        parameters: Mapping[str, Any],
        fetch_as_string: Iterable[str] = (),
        **overrides,
    ) -> "SessionFormattingContext":
        """
        Build a context from server session parameters.

        Parameter names are matched case-insensitively. An empty or ``AUTO``
        per-kind timestamp format falls back to ``TIMESTAMP_OUTPUT_FORMAT``
        and then to the default for that kind. Keyword overrides win over
        parameters.
        """
        params = {str(k).upper(): v for k, v in parameters.items()}

        def pattern(name: str, fallback: Optional[str] = None) -> Optional[str]:
            value = params.get(name)
            if value is None or str(value).strip().upper() in ("", "AUTO"):
                return fallback
            return str(value)

        generic = pattern("TIMESTAMP_OUTPUT_FORMAT")
        kwargs = {
            "timezone": params.get("TIMEZONE") or DEFAULT_TIMEZONE,
            "date_output_format": pattern(
                "DATE_OUTPUT_FORMAT", DEFAULT_DATE_OUTPUT_FORMAT
            ),
            "time_output_format": pattern(
                "TIME_OUTPUT_FORMAT", DEFAULT_TIME_OUTPUT_FORMAT
            ),
            "timestamp_ltz_output_format": pattern(
                "TIMESTAMP_LTZ_OUTPUT_FORMAT",
                generic or DEFAULT_TIMESTAMP_LTZ_OUTPUT_FORMAT,
            ),
            "timestamp_ntz_output_format": pattern(
                "TIMESTAMP_NTZ_OUTPUT_FORMAT",
                generic or DEFAULT_TIMESTAMP_NTZ_OUTPUT_FORMAT,
            ),
            "timestamp_tz_output_format": pattern(
                "TIMESTAMP_TZ_OUTPUT_FORMAT",
                generic or DEFAULT_TIMESTAMP_TZ_OUTPUT_FORMAT,
            ),
            "binary_format": params.get("BINARY_OUTPUT_FORMAT") or "HEX",
            "fetch_as_string": frozenset(fetch_as_string),
            "structured_types_enabled": _as_bool(
                params.get("ENABLE_STRUCTURED_TYPES_IN_CLIENT_RESPONSE", True)
            ),
        }
        kwargs.update(overrides)
        logger.debug("Session formatting parameters resolved: %s", kwargs)
        return cls(**kwargs)
