"""
Tests for datetime utilities.
"""
from datetime import datetime, timedelta, timezone

import pytest

from assessment.core.datetime_utils import ensure_timezone_aware, is_within_window, utc_now

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class TestUtcNow:
    def test_is_timezone_aware(self):
        assert utc_now().tzinfo == timezone.utc


class TestEnsureTimezoneAware:
    def test_naive_is_treated_as_utc(self):
        result = ensure_timezone_aware(datetime(2026, 3, 2, 9, 0))
        assert result == NOW

    def test_aware_is_unchanged(self):
        offset = timezone(timedelta(hours=2))
        value = datetime(2026, 3, 2, 11, 0, tzinfo=offset)
        assert ensure_timezone_aware(value) is value

    def test_none_raises(self):
        with pytest.raises(ValueError):
            ensure_timezone_aware(None)


class TestIsWithinWindow:
    """Both bounds are optional and inclusive."""

    def test_open_window(self):
        assert is_within_window(NOW, None, None)

    def test_bounds_are_inclusive(self):
        assert is_within_window(NOW, NOW, NOW)

    def test_before_start(self):
        assert not is_within_window(NOW, NOW + timedelta(seconds=1), None)

    def test_after_end(self):
        assert not is_within_window(NOW, None, NOW - timedelta(seconds=1))

    def test_naive_bounds_are_utc(self):
        assert is_within_window(NOW, datetime(2026, 3, 2, 8, 0), datetime(2026, 3, 2, 10, 0))
