from datetime import date, datetime, timedelta, timezone

import pytest

from utils.datetime_utils import (
    day_string,
    ensure_utc,
    parse_rfc3339,
    to_rfc3339_utc,
)


def test_parse_rfc3339_zulu_and_offsets():
    assert parse_rfc3339("2024-06-01T10:00:00Z") == datetime(2024, 6, 1, 10, tzinfo=timezone.utc)
    shifted = parse_rfc3339("2024-06-01T12:00:00+02:00")
    assert shifted == datetime(2024, 6, 1, 10, tzinfo=timezone.utc)
    assert shifted.tzinfo == timezone.utc


def test_parse_rfc3339_long_fraction():
    parsed = parse_rfc3339("2024-06-01T10:00:00.123456789+00:00")
    assert parsed.microsecond == 123456


def test_parse_rfc3339_rejects_garbage():
    assert parse_rfc3339(None) is None
    assert parse_rfc3339("   ") is None
    assert parse_rfc3339("yesterday") is None


def test_to_rfc3339_utc_uses_millis_and_z():
    local = datetime(2024, 6, 1, 13, 0, 0, 500000, tzinfo=timezone(timedelta(hours=3)))
    assert to_rfc3339_utc(local) == "2024-06-01T10:00:00.500Z"
    assert to_rfc3339_utc("2024-06-01T10:00:00+00:00") == "2024-06-01T10:00:00.000Z"
    assert to_rfc3339_utc(None) is None


def test_ensure_utc_treats_naive_as_utc():
    assert ensure_utc(datetime(2024, 1, 1)).tzinfo == timezone.utc


def test_day_string_variants():
    assert day_string(date(2024, 2, 29)) == "2024-02-29"
    assert day_string("2024-06-01T23:30:00-02:00") == "2024-06-02"
    assert len(day_string()) == 10
    with pytest.raises(ValueError):
        day_string("soon")
