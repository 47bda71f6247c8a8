"""Unit tests for timestamp and masking utilities."""

from datetime import datetime, timedelta, timezone

import pytest

from notification_engine.utils.masking import mask_recipient
from notification_engine.utils.timestamps import (
    ensure_utc,
    from_storage,
    parse_iso_datetime,
    to_storage,
    utc_now,
)


class TestUtcNow:
    """Tests for utc_now function."""

    def test_utc_now_returns_utc_datetime(self):
        now = utc_now()

        assert isinstance(now, datetime)
        assert now.tzinfo == timezone.utc

    def test_utc_now_is_recent(self):
        before = datetime.now(timezone.utc)
        now = utc_now()
        after = datetime.now(timezone.utc)

        assert before <= now <= after


class TestEnsureUtc:
    def test_none(self):
        assert ensure_utc(None) is None

    def test_naive_is_treated_as_utc(self):
        result = ensure_utc(datetime(2025, 11, 4, 12, 0))

        assert result == datetime(2025, 11, 4, 12, 0, tzinfo=timezone.utc)

    def test_offset_is_converted(self):
        pacific = timezone(timedelta(hours=-8))

        result = ensure_utc(datetime(2025, 11, 4, 4, 0, tzinfo=pacific))

        assert result == datetime(2025, 11, 4, 12, 0, tzinfo=timezone.utc)
        assert result.tzinfo == timezone.utc


class TestStorageFormat:
    def test_to_storage_fixed_width(self):
        assert to_storage(datetime(2025, 11, 4, 12, 0, tzinfo=timezone.utc)) == "2025-11-04T12:00:00.000000Z"
        assert to_storage(None) is None

    def test_from_storage_restores_value(self):
        value = datetime(2025, 11, 4, 12, 0, 0, 123456, tzinfo=timezone.utc)

        assert from_storage(to_storage(value)) == value

    def test_from_storage_without_fraction(self):
        assert from_storage("2025-11-04T12:00:00Z") == datetime(2025, 11, 4, 12, 0, tzinfo=timezone.utc)

    @pytest.mark.parametrize("value", [None, ""])
    def test_from_storage_empty(self, value):
        assert from_storage(value) is None

    def test_storage_strings_sort_chronologically(self):
        earlier = datetime(2025, 11, 4, 9, 59, 59, 999999, tzinfo=timezone.utc)
        later = datetime(2025, 11, 4, 10, 0, tzinfo=timezone.utc)

        assert to_storage(earlier) < to_storage(later)


class TestParseIsoDatetime:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("2025-11-04", datetime(2025, 11, 4, tzinfo=timezone.utc)),
            ("2025-11-04T12:00:00", datetime(2025, 11, 4, 12, tzinfo=timezone.utc)),
            ("2025-11-04T12:00:00Z", datetime(2025, 11, 4, 12, tzinfo=timezone.utc)),
            ("2025-11-04T04:00:00-08:00", datetime(2025, 11, 4, 12, tzinfo=timezone.utc)),
        ],
    )
    def test_valid(self, value, expected):
        assert parse_iso_datetime(value) == expected

    @pytest.mark.parametrize("value", ["", "   ", "yesterday", "2025-13-01"])
    def test_invalid(self, value):
        assert parse_iso_datetime(value) is None


class TestMaskRecipient:
    def test_email(self):
        assert mask_recipient("jane.doe@example.com") == "ja***@example.com"

    def test_phone(self):
        assert mask_recipient("+16575551234") == "***1234"

    def test_short_and_empty(self):
        assert mask_recipient("123") == "***"
        assert mask_recipient("") == ""
