"""
Tests for the scalar leaf converters.
"""

import datetime
import decimal
import math

import pytest
from dateutil import tz

from snowdecode.conversion import ScalarValueConverter
from snowdecode.exc import (
    MalformedTemporalError,
    TypeMismatchError,
    UnsupportedKindError,
)
from snowdecode.formatting import SessionFormattingContext
from snowdecode.types import ScalarType, TypeKind


def convert(value, kind, context, **kwargs):
    descriptor = ScalarType(kind, **kwargs)
    return ScalarValueConverter.convert_value(value, descriptor, context)


class TestNumericConversion:
    """Integer, NUMBER and floating point leaves."""

    @pytest.mark.parametrize(
        "kind",
        [TypeKind.TINYINT, TypeKind.SMALLINT, TypeKind.INTEGER, TypeKind.BIGINT],
    )
    def test_integer_kinds(self, kind, pacific_context):
        assert convert("123", kind, pacific_context) == 123
        assert convert(-5, kind, pacific_context) == -5

    def test_big_integer_keeps_every_digit(self, pacific_context):
        assert convert("98765432109876543210", TypeKind.BIGINT, pacific_context) == (
            98765432109876543210
        )

    @pytest.mark.parametrize("value", [True, "1.5", 1.5, "abc", [1]])
    def test_integer_rejects_other_shapes(self, value, pacific_context):
        with pytest.raises(TypeMismatchError):
            convert(value, TypeKind.INTEGER, pacific_context)

    def test_number_with_scale(self, pacific_context):
        result = convert("3.3", TypeKind.NUMBER, pacific_context, precision=10, scale=2)
        assert result == decimal.Decimal("3.30")
        assert str(result) == "3.30"

    def test_number_from_exact_decimal(self, pacific_context):
        result = convert(
            decimal.Decimal("12345678901234567890.12"),
            TypeKind.NUMBER,
            pacific_context,
            precision=38,
            scale=2,
        )
        assert result == decimal.Decimal("12345678901234567890.12")

    def test_number_without_scale_is_integer(self, pacific_context):
        result = convert("42", TypeKind.NUMBER, pacific_context, precision=38, scale=0)
        assert result == 42
        assert isinstance(result, int)

    def test_number_without_scale_rejects_fraction(self, pacific_context):
        with pytest.raises(TypeMismatchError):
            convert("4.2", TypeKind.NUMBER, pacific_context, precision=38, scale=0)

    def test_number_rejects_non_numeric(self, pacific_context):
        with pytest.raises(TypeMismatchError):
            convert("four", TypeKind.NUMBER, pacific_context, precision=38, scale=2)

    @pytest.mark.parametrize("kind", [TypeKind.FLOAT, TypeKind.DOUBLE])
    def test_floating_kinds(self, kind, pacific_context):
        assert convert("1.1", kind, pacific_context) == 1.1
        assert convert(decimal.Decimal("2.2"), kind, pacific_context) == 2.2
        assert convert(3, kind, pacific_context) == 3.0

    def test_float_special_values(self, pacific_context):
        assert math.isnan(convert("NaN", TypeKind.DOUBLE, pacific_context))
        assert convert("inf", TypeKind.DOUBLE, pacific_context) == math.inf

    @pytest.mark.parametrize("value", [True, "one point one", [1.1]])
    def test_float_rejects_other_shapes(self, value, pacific_context):
        with pytest.raises(TypeMismatchError):
            convert(value, TypeKind.FLOAT, pacific_context)


class TestBooleanAndTextConversion:
    """BOOLEAN, VARCHAR and BINARY leaves."""

    def test_boolean(self, pacific_context):
        assert convert(True, TypeKind.BOOLEAN, pacific_context) is True
        assert convert("TRUE", TypeKind.BOOLEAN, pacific_context) is True
        assert convert("n", TypeKind.BOOLEAN, pacific_context) is False

    @pytest.mark.parametrize("value", ["maybe", 1, 0.0])
    def test_boolean_rejects_other_shapes(self, value, pacific_context):
        with pytest.raises(TypeMismatchError):
            convert(value, TypeKind.BOOLEAN, pacific_context)

    def test_varchar(self, pacific_context):
        assert convert("a", TypeKind.VARCHAR, pacific_context) == "a"
        assert convert("", TypeKind.VARCHAR, pacific_context) == ""

    @pytest.mark.parametrize("value", [5, ["a"], {"a": 1}])
    def test_varchar_rejects_other_shapes(self, value, pacific_context):
        with pytest.raises(TypeMismatchError):
            convert(value, TypeKind.VARCHAR, pacific_context)

    def test_binary_hex(self, pacific_context):
        assert convert("616263", TypeKind.BINARY, pacific_context) == b"abc"

    def test_binary_from_byte_values(self, pacific_context):
        assert convert([97, 98, 99], TypeKind.BINARY, pacific_context) == b"abc"
        assert convert(bytearray(b"abc"), TypeKind.BINARY, pacific_context) == b"abc"

    def test_binary_base64(self):
        context = SessionFormattingContext(timezone="UTC", binary_format="base64")
        assert convert("YWJj", TypeKind.BINARY, context) == b"abc"

    def test_binary_utf8(self):
        context = SessionFormattingContext(timezone="UTC", binary_format="UTF-8")
        assert convert("abc", TypeKind.BINARY, context) == b"abc"

    @pytest.mark.parametrize("value", ["zz", [256], 12])
    def test_binary_rejects_invalid_values(self, value, pacific_context):
        with pytest.raises(TypeMismatchError):
            convert(value, TypeKind.BINARY, pacific_context)


class TestTimestampConversion:
    """TIMESTAMP_LTZ, TIMESTAMP_NTZ and TIMESTAMP_TZ leaves."""

    def test_ltz_literal_is_session_local(self, pacific_context):
        result = convert("2021-12-22 09:43:44", TypeKind.TIMESTAMP_LTZ, pacific_context)
        assert result == "2021-12-22 09:43:44.000 -0800"

    def test_ltz_with_offset_is_converted(self, pacific_context):
        result = convert(
            "2021-12-22 17:43:44 +0000", TypeKind.TIMESTAMP_LTZ, pacific_context
        )
        assert result == "2021-12-22 09:43:44.000 -0800"

    def test_ltz_summer_offset(self, pacific_context):
        result = convert("2021-06-22 09:43:44", TypeKind.TIMESTAMP_LTZ, pacific_context)
        assert result == "2021-06-22 09:43:44.000 -0700"

    def test_fraction_truncated_without_scale(self, pacific_context):
        result = convert(
            "2021-12-22 09:43:44.999999", TypeKind.TIMESTAMP_LTZ, pacific_context
        )
        assert result == "2021-12-22 09:43:44.000 -0800"

    def test_fraction_truncated_to_scale(self, pacific_context):
        result = convert(
            "2021-12-22 09:43:44.123956",
            TypeKind.TIMESTAMP_LTZ,
            pacific_context,
            scale=3,
        )
        assert result == "2021-12-22 09:43:44.123 -0800"

    def test_full_precision_pattern(self):
        context = SessionFormattingContext(
            timezone="UTC", timestamp_ntz_output_format="YYYY-MM-DD HH24:MI:SS.FF6"
        )
        result = convert(
            "2021-12-22 09:43:44.123456", TypeKind.TIMESTAMP_NTZ, context, scale=6
        )
        assert result == "2021-12-22 09:43:44.123456"

    def test_server_default_scale_keeps_whole_seconds(self):
        context = SessionFormattingContext(
            timezone="UTC", timestamp_ntz_output_format="YYYY-MM-DD HH24:MI:SS.FF6"
        )
        result = convert(
            "2021-12-22 09:43:44.123456", TypeKind.TIMESTAMP_NTZ, context, scale=9
        )
        assert result == "2021-12-22 09:43:44.000000"

    def test_ltz_epoch(self, pacific_context):
        result = convert(
            "1640195024.123456789", TypeKind.TIMESTAMP_LTZ, pacific_context, scale=3
        )
        assert result == "2021-12-22 09:43:44.123 -0800"

    def test_ntz_ignores_session_timezone(self, pacific_context, utc_context):
        for context in (pacific_context, utc_context):
            result = convert("2021-12-23 09:44:44", TypeKind.TIMESTAMP_NTZ, context)
            assert result == "2021-12-23 09:44:44.000"

    def test_ntz_epoch_is_wall_clock_utc(self, pacific_context):
        result = convert("1640195024", TypeKind.TIMESTAMP_NTZ, pacific_context)
        assert result == "2021-12-22 17:43:44.000"

    def test_ntz_accepts_naive_datetime(self, pacific_context):
        value = datetime.datetime(2021, 12, 23, 9, 44, 44, 500000)
        result = convert(value, TypeKind.TIMESTAMP_NTZ, pacific_context)
        assert result == "2021-12-23 09:44:44.000"

    def test_tz_keeps_offset(self, utc_context):
        result = convert(
            "2021-12-24 09:45:45 -0800", TypeKind.TIMESTAMP_TZ, utc_context
        )
        assert result == "2021-12-24 09:45:45.000 -0800"

    def test_tz_without_offset_uses_session_timezone(self, utc_context):
        result = convert("2021-12-24 09:45:45", TypeKind.TIMESTAMP_TZ, utc_context)
        assert result == "2021-12-24 09:45:45.000 +0000"

    def test_tz_epoch_with_offset_index(self, utc_context):
        result = convert("1640195024.000 960", TypeKind.TIMESTAMP_TZ, utc_context)
        assert result == "2021-12-22 09:43:44.000 -0800"

    def test_offset_index_rejected_for_ltz(self, utc_context):
        with pytest.raises(MalformedTemporalError):
            convert("1640195024.000 960", TypeKind.TIMESTAMP_LTZ, utc_context)

    def test_fixed_offset_session(self):
        context = SessionFormattingContext(timezone="+05:30")
        result = convert("2021-12-22 09:43:44", TypeKind.TIMESTAMP_LTZ, context)
        assert result == "2021-12-22 09:43:44.000 +0530"

    def test_aware_datetime_input(self, pacific_context):
        value = datetime.datetime(2021, 12, 22, 17, 43, 44, tzinfo=tz.UTC)
        result = convert(value, TypeKind.TIMESTAMP_LTZ, pacific_context)
        assert result == "2021-12-22 09:43:44.000 -0800"

    @pytest.mark.parametrize(
        "value", ["not a timestamp", "2021-02-30 10:00:00", "09:43:44"]
    )
    def test_malformed_timestamp(self, value, pacific_context):
        with pytest.raises(MalformedTemporalError):
            convert(value, TypeKind.TIMESTAMP_LTZ, pacific_context)

    def test_non_string_timestamp(self, pacific_context):
        with pytest.raises(TypeMismatchError):
            convert(1640195024, TypeKind.TIMESTAMP_LTZ, pacific_context)


class TestDateAndTimeConversion:
    """DATE and TIME leaves."""

    def test_date(self, pacific_context):
        assert convert("2023-12-24", TypeKind.DATE, pacific_context) == "2023-12-24"

    def test_date_epoch_days(self, pacific_context):
        assert convert("19715", TypeKind.DATE, pacific_context) == "2023-12-24"

    def test_date_in_session_timezone(self, pacific_context, utc_context):
        west = SessionFormattingContext(
            timezone=pacific_context.timezone, dates_in_session_timezone=True
        )
        assert convert("2023-12-24", TypeKind.DATE, west) == "2023-12-23"
        utc = SessionFormattingContext(
            timezone=utc_context.timezone, dates_in_session_timezone=True
        )
        assert convert("2023-12-24", TypeKind.DATE, utc) == "2023-12-24"

    def test_date_output_format(self):
        context = SessionFormattingContext(
            timezone="UTC", date_output_format="DY, DD MON YYYY"
        )
        assert convert("2023-12-24", TypeKind.DATE, context) == "Sun, 24 Dec 2023"

    @pytest.mark.parametrize("value", ["2023-02-30", "yesterday"])
    def test_malformed_date(self, value, pacific_context):
        with pytest.raises(MalformedTemporalError):
            convert(value, TypeKind.DATE, pacific_context)

    def test_date_rejects_number(self, pacific_context):
        with pytest.raises(TypeMismatchError):
            convert(19715, TypeKind.DATE, pacific_context)

    def test_time(self, pacific_context):
        assert convert("09:45:45", TypeKind.TIME, pacific_context) == "09:45:45"

    def test_time_epoch_seconds(self, pacific_context):
        assert convert("45296", TypeKind.TIME, pacific_context) == "12:34:56"

    def test_time_with_scale(self):
        context = SessionFormattingContext(
            timezone="UTC", time_output_format="HH24:MI:SS.FF3"
        )
        assert convert("12:34:56.789123", TypeKind.TIME, context, scale=3) == (
            "12:34:56.789"
        )
        assert convert("12:34:56.789123", TypeKind.TIME, context) == "12:34:56.000"

    @pytest.mark.parametrize("value", ["25:00:00", "noon", "12:61"])
    def test_malformed_time(self, value, pacific_context):
        with pytest.raises(MalformedTemporalError):
            convert(value, TypeKind.TIME, pacific_context)


class TestConvertValue:
    """Dispatch through ScalarValueConverter.convert_value."""

    def test_variant_passes_through_as_a_copy(self, pacific_context):
        value = {"a": [1, "b"]}
        result = convert(value, TypeKind.VARIANT, pacific_context)
        assert result == value
        assert result is not value
        assert result["a"] is not value["a"]

    @pytest.mark.parametrize(
        "kind", [TypeKind.GEOGRAPHY, TypeKind.GEOMETRY, TypeKind.VECTOR]
    )
    def test_unsupported_kind(self, kind, pacific_context):
        with pytest.raises(UnsupportedKindError):
            convert("x", kind, pacific_context)

    def test_error_carries_path(self, pacific_context):
        with pytest.raises(TypeMismatchError) as exc_info:
            ScalarValueConverter.convert_value(
                "x", ScalarType(TypeKind.INTEGER), pacific_context, "RESULT.i"
            )
        assert exc_info.value.path == "RESULT.i"
        assert exc_info.value.context["kind"] == "INTEGER"
        assert "RESULT.i" in exc_info.value.message_with_context()
