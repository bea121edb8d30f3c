"""
Unit tests for breath window assembly and CO trends.
"""

import math

from datetime import UTC, date, datetime, timedelta, timezone

import pytest

from breathco.analysis.stream import (
    BreathSamplePoint,
    SampleStreamBuilder,
    TimedSample,
    dedupe_by_timestamp,
    nearest_sample_value,
    session_voltage,
)
from breathco.analysis.trends import DailyMedian, compute_trends, smoke_free_streak
from breathco.analysis.types import WindowPoint


class TestNearestSample:
    """Test nearest-in-time temperature lookup."""

    def test_nearest(self):
        samples = [TimedSample(0, 20.0), TimedSample(1000, 21.0), TimedSample(2000, 22.0)]
        assert nearest_sample_value(samples, 900) == 21.0
        assert nearest_sample_value(samples, 5000) == 22.0
        assert nearest_sample_value(samples, -300) == 20.0

    def test_earliest_wins_tie(self):
        samples = [TimedSample(0, 20.0), TimedSample(1000, 21.0)]
        assert nearest_sample_value(samples, 500) == 20.0

    def test_empty(self):
        assert nearest_sample_value([], 100) is None


class TestSessionVoltage:
    def test_prefers_warmup_voltage(self):
        assert session_voltage(2.91, 430.0) == 2.91

    def test_derived_from_baseline_raw(self):
        assert session_voltage(None, 145.63) == pytest.approx(1.0)

    def test_unknown(self):
        assert session_voltage(None, None) is None


class TestSampleStreamBuilder:
    """Test CO/temperature alignment."""

    def test_aligns_to_nearest_temperature(self):
        builder = SampleStreamBuilder(fixed_voltage=2.9)
        builder.record_temperature(0, 24.0)
        builder.record_temperature(1000, 26.0)
        builder.record_co(100, 500.0)
        builder.record_co(950, 510.0)

        window = builder.build_window()

        assert [p.temperature_c for p in window] == [24.0, 26.0]
        assert [p.raw_co for p in window] == [500.0, 510.0]
        assert all(p.voltage_v == 2.9 for p in window)

    def test_later_temperature_realigns_window(self):
        """Alignment uses every temperature recorded by the time the window is built."""
        builder = SampleStreamBuilder()
        builder.record_temperature(0, 24.0)
        point = builder.record_co(900, 500.0)
        builder.record_temperature(1000, 30.0)

        assert point.temperature_c == 24.0
        assert builder.build_window()[0].temperature_c == 30.0

    def test_repeated_timestamps_ignored(self):
        builder = SampleStreamBuilder()
        assert builder.record_temperature(0, 24.0) is True
        assert builder.record_temperature(0, 25.0) is False
        assert builder.record_co(10, 500.0) is not None
        assert builder.record_co(10, 501.0) is None

        assert len(builder.co_samples) == 1
        assert len(builder.temperature_samples) == 1

    def test_missing_values_ignored(self):
        builder = SampleStreamBuilder()
        assert builder.record_temperature(0, None) is False
        assert builder.record_co(0, None) is None

    def test_co_without_temperature_dropped_from_window(self):
        builder = SampleStreamBuilder()
        point = builder.record_co(0, 500.0, live_temperature_c=23.5, battery_percent=80)

        assert point == BreathSamplePoint(
            timestamp_ms=0,
            co_raw=500.0,
            temperature_c=23.5,
            voltage_v=None,
            battery_percent=80,
        )
        assert builder.build_window() == []

    def test_non_adjacent_duplicate_kept_once(self):
        builder = SampleStreamBuilder()
        builder.record_temperature(0, 24.0)
        builder.record_co(100, 500.0)
        builder.record_co(200, 505.0)
        builder.record_co(100, 999.0)

        window = builder.build_window()
        assert [p.timestamp_ms for p in window] == [100, 200]
        assert window[0].raw_co == 500.0

    def test_reset(self):
        builder = SampleStreamBuilder(fixed_voltage=2.9)
        builder.record_temperature(0, 24.0)
        builder.record_co(0, 500.0)
        builder.reset(fixed_voltage=2.8)

        assert builder.co_samples == []
        assert builder.points == []
        assert builder.fixed_voltage == 2.8
        assert builder.record_co(0, 500.0) is not None


class TestDedupe:
    def test_sorted_first_kept(self):
        window = [
            WindowPoint(timestamp_ms=2, raw_co=2.0, temperature_c=20.0),
            WindowPoint(timestamp_ms=1, raw_co=1.0, temperature_c=20.0),
            WindowPoint(timestamp_ms=2, raw_co=9.0, temperature_c=20.0),
        ]
        result = dedupe_by_timestamp(window)
        assert [(p.timestamp_ms, p.raw_co) for p in result] == [(1, 1.0), (2, 2.0)]


class TestTrends:
    """Test daily medians and smoke-free streak."""

    TODAY = date(2024, 5, 10)

    def _at(self, day_offset, hour=12):
        day = self.TODAY - timedelta(days=day_offset)
        return datetime(day.year, day.month, day.day, hour, tzinfo=UTC)

    def test_seven_day_range(self):
        result = compute_trends([], today=self.TODAY)

        assert [entry.day for entry in result.daily] == [
            self.TODAY - timedelta(days=offset) for offset in range(6, -1, -1)
        ]
        assert result.measured_days == 0
        assert result.smoke_free_streak_days == 0
        assert all(math.isnan(entry.median_ppm) for entry in result.daily)

    def test_daily_median(self):
        sessions = [(self._at(0, 8), 1.0), (self._at(0, 9), 5.0), (self._at(0, 10), 2.0)]
        result = compute_trends(sessions, today=self.TODAY)

        assert result.daily[-1].median_ppm == pytest.approx(2.0)
        assert result.measured_days == 1

    def test_invalid_values_skipped(self):
        sessions = [
            (self._at(1), None),
            (self._at(1), -1.0),
            (self._at(1), math.nan),
            (self._at(10), 1.0),
        ]
        result = compute_trends(sessions, today=self.TODAY)
        assert result.measured_days == 0

    def test_timezone_converted_to_utc(self):
        """23:30 at UTC-2 on the 9th is 01:30 UTC on the 10th."""
        tz = timezone(timedelta(hours=-2))
        started = datetime(2024, 5, 9, 23, 30, tzinfo=tz)
        result = compute_trends([(started, 1.0)], today=self.TODAY)

        assert result.daily[-1].measured
        assert not result.daily[-2].measured

    def test_streak_stops_at_high_day(self):
        sessions = [
            (self._at(0), 1.0),
            (self._at(1), 3.0),
            (self._at(3), 0.5),
            (self._at(4), 12.0),
            (self._at(5), 0.2),
        ]
        result = compute_trends(sessions, today=self.TODAY)

        assert result.smoke_free_streak_days == 3
        assert result.measured_days == 5

    def test_streak_ends_today_if_today_high(self):
        daily = [
            DailyMedian(day=self.TODAY - timedelta(days=1), median_ppm=1.0),
            DailyMedian(day=self.TODAY, median_ppm=8.0),
        ]
        assert smoke_free_streak(daily) == 0
