"""
Unit tests for schedule time calculation.
"""

from datetime import datetime, timezone

import pytest

from app.core.time_utils import format_local, next_daily_occurrence, to_naive_utc


class TestNextDailyOccurrence:
    """Tests for the daily cut-off calculator (business zone Asia/Shanghai, UTC+8)"""

    def test_after_cutoff_rolls_to_next_day(self):
        # 03:30 in Shanghai
        now = datetime(2026, 3, 10, 19, 30, tzinfo=timezone.utc)

        result = next_daily_occurrence(3, tz="Asia/Shanghai", now=now)

        # 03:00 Shanghai on March 12 == 19:00 UTC on March 11
        assert result == datetime(2026, 3, 11, 19, 0, tzinfo=timezone.utc)

    def test_before_cutoff_same_day(self):
        # 01:00 in Shanghai
        now = datetime(2026, 3, 10, 17, 0, tzinfo=timezone.utc)

        result = next_daily_occurrence(2, tz="Asia/Shanghai", now=now)

        assert result == datetime(2026, 3, 10, 18, 0, tzinfo=timezone.utc)

    def test_exactly_at_cutoff_is_next_day(self):
        now = datetime(2026, 3, 10, 19, 0, tzinfo=timezone.utc)

        result = next_daily_occurrence(3, tz="Asia/Shanghai", now=now)

        assert result == datetime(2026, 3, 11, 19, 0, tzinfo=timezone.utc)

    def test_naive_now_is_read_as_utc(self):
        aware = next_daily_occurrence(3, tz="Asia/Shanghai", now=datetime(2026, 3, 10, 19, 30, tzinfo=timezone.utc))
        naive = next_daily_occurrence(3, tz="Asia/Shanghai", now=datetime(2026, 3, 10, 19, 30))

        assert aware == naive

    def test_independent_of_server_zone(self):
        now = datetime(2026, 7, 1, 12, 0, tzinfo=timezone.utc)

        result = next_daily_occurrence(3, tz="Asia/Shanghai", now=now)

        assert result > now
        assert result.astimezone(timezone.utc).hour == 19

    @pytest.mark.parametrize("hour,minute", [(24, 0), (-1, 0), (3, 60)])
    def test_out_of_range(self, hour, minute):
        with pytest.raises(ValueError):
            next_daily_occurrence(hour, minute)


def test_to_naive_utc():
    aware = datetime(2026, 3, 11, 3, 0, tzinfo=timezone.utc)

    assert to_naive_utc(aware) == datetime(2026, 3, 11, 3, 0)
    assert to_naive_utc(datetime(2026, 3, 11, 3, 0)).tzinfo is None


def test_format_local():
    assert format_local(datetime(2026, 3, 11, 19, 0), tz="Asia/Shanghai").startswith("2026-03-12 03:00")
