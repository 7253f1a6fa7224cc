import json
import logging

logger = logging.getLogger(__name__)

### PEP-249 Mandated ###
# https://peps.python.org/pep-0249/#exceptions
class Error(Exception):
    """Base class for DB-API2.0 exceptions.
    `message`: An optional user-friendly error message. It should be short, actionable and stable
    `context`: Optional extra context about the error. MUST be JSON serializable
    """

    def __init__(self, message=None, context=None, *args, **kwargs):
        super().__init__(message, *args, **kwargs)
        self.message = message
        self.context = context or {}

    def __str__(self):
        return self.message

    def message_with_context(self):
        return self.message + ": " + json.dumps(self.context, default=str)


class Warning(Exception):
    pass


class InterfaceError(Error):
    pass


class DatabaseError(Error):
    pass


class ProgrammingError(DatabaseError):
    pass


class DataError(DatabaseError):
    pass


class NotSupportedError(DatabaseError):
    pass


### Custom error classes ###
class TypeStringParseError(ProgrammingError):
    """Thrown if a structured type declaration such as `OBJECT(a VARCHAR)` cannot be parsed.
    Its context will have the following keys:
    "type-string": The declaration being parsed
    "position": Character offset where parsing failed
    """

    pass


class StructuredDecodeError(DataError):
    """Base class for errors raised while decoding a structured value.
    Its context will have the following keys:
    "path": Location of the failing value inside the column, e.g. `RESULT.inside[2]`
    "kind": The type kind the value was being decoded as (if available)
    """

    @property
    def path(self):
        return self.context.get("path")


class TypeMismatchError(StructuredDecodeError):
    """Thrown if the shape of a raw value disagrees with its type descriptor,
    for example a list where an OBJECT was declared or text where an INTEGER was expected.
    Additional context keys:
    "raw-type": The Python type name of the offending raw value
    """

    pass


class MissingFieldError(StructuredDecodeError):
    """Thrown if a field declared NOT NULL is absent from a raw OBJECT value.
    Additional context keys:
    "field": The missing field name
    """

    pass


class MalformedTemporalError(StructuredDecodeError):
    """Thrown if a DATE, TIME or TIMESTAMP_* literal cannot be parsed"""

    pass


class UnsupportedKindError(NotSupportedError):
    """Thrown if a descriptor references a type kind that has no converter,
    or a type declaration names a type this library does not know.
    """

    @property
    def path(self):
        return self.context.get("path")
