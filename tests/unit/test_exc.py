import json

import pytest

import snowdecode
from snowdecode.exc import (
    DatabaseError,
    DataError,
    Error,
    MalformedTemporalError,
    MissingFieldError,
    NotSupportedError,
    ProgrammingError,
    StructuredDecodeError,
    TypeMismatchError,
    TypeStringParseError,
    UnsupportedKindError,
)


class TestExceptionHierarchy:
    """Test the exception classes raised while decoding."""

    @pytest.mark.parametrize(
        "cls,parent",
        [
            (TypeMismatchError, StructuredDecodeError),
            (MissingFieldError, StructuredDecodeError),
            (MalformedTemporalError, StructuredDecodeError),
            (StructuredDecodeError, DataError),
            (UnsupportedKindError, NotSupportedError),
            (TypeStringParseError, ProgrammingError),
            (DataError, DatabaseError),
            (DatabaseError, Error),
        ],
    )
    def test_parents(self, cls, parent):
        assert issubclass(cls, parent)

    def test_message_and_context(self):
        context = {"path": "RESULT.a", "kind": "INTEGER"}
        e = TypeMismatchError("bad value", context=context)
        assert str(e) == "bad value"
        assert e.path == "RESULT.a"
        message, _, context = e.message_with_context().partition(": ")
        assert message == "bad value"
        assert json.loads(context) == {"path": "RESULT.a", "kind": "INTEGER"}

    def test_empty_context(self):
        e = MalformedTemporalError("cannot parse")
        assert e.context == {}
        assert e.path is None


class TestPackageApi:
    """Test the top-level decode helper."""

    def test_decode_from_type_string(self, pacific_context):
        assert snowdecode.decode(
            '{"a":"1"}', "OBJECT(a INTEGER)", pacific_context
        ) == {"a": 1}

    def test_decode_as_string(self, pacific_context):
        result = snowdecode.decode(
            '["616263"]', "ARRAY(BINARY)", pacific_context, as_string=True
        )
        assert result == "[[97,98,99]]"

    def test_decode_from_metadata(self):
        metadata = {"type": "map", "fields": [{"type": "text"}, {"type": "boolean"}]}
        assert snowdecode.decode('{"k":true}', metadata) == {"k": True}

    def test_structured_kind_names(self):
        assert (snowdecode.OBJECT, snowdecode.ARRAY, snowdecode.MAP) == (
            "OBJECT",
            "ARRAY",
            "MAP",
        )
