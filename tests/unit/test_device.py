"""
Unit tests for payload decoding, battery estimation and the warm-up lifecycle.
"""

import logging
import struct

import numpy as np
import pytest

from breathco.device.battery import (
    battery_bucket,
    battery_capacity_mah,
    battery_percent_from_raw,
    estimate_battery_percent,
    estimate_runtime,
    estimate_voltage_from_raw,
)
from breathco.device.packets import (
    decode_battery_level,
    decode_co_raw,
    decode_temperature,
    decode_text,
)
from breathco.device.warmup import BaselinePreparationState, WarmupTracker


class TestBatteryPercent:
    """Test CR2032 discharge-curve interpolation."""

    @pytest.mark.parametrize(
        "voltage, expected",
        [
            (3.30, 100),
            (3.00, 100),
            (2.95, 95),
            (2.90, 88),
            (2.80, 66),
            (2.40, 0),
            (2.10, 0),
        ],
    )
    def test_curve_points_and_clamps(self, voltage, expected):
        assert estimate_battery_percent(voltage) == expected

    def test_interpolation_truncates(self):
        """Halfway between 2.90 (88) and 2.95 (95) is 91.5, reported as 91."""
        assert estimate_battery_percent(2.925) == 91

    def test_monotonic_non_decreasing(self):
        voltages = np.linspace(2.2, 3.2, 401)
        percents = [estimate_battery_percent(float(v)) for v in voltages]

        assert all(0 <= p <= 100 for p in percents)
        assert all(b >= a for a, b in zip(percents, percents[1:]))

    def test_voltage_from_raw(self):
        assert estimate_voltage_from_raw(145.63) == pytest.approx(1.0)
        assert estimate_voltage_from_raw(0.0) == pytest.approx(4.67 / 150.30)

    def test_percent_from_raw(self):
        assert battery_percent_from_raw(460.0) == 100
        assert battery_percent_from_raw(350.0) == 0


class TestBatteryRuntime:
    """Test runtime estimate and display tiers."""

    def test_full_battery(self):
        estimate = estimate_runtime(100)
        assert estimate.percent == 100
        assert estimate.hours_remaining == pytest.approx(136.0)
        assert estimate.bucket_percent == 100

    def test_half_battery(self):
        estimate = estimate_runtime(50)
        assert estimate.hours_remaining == pytest.approx(68.0)
        assert estimate.bucket_percent == 50

    def test_out_of_range_clamped(self):
        assert estimate_runtime(140).percent == 100
        assert estimate_runtime(-5).percent == 0
        assert estimate_runtime(-5).hours_remaining == 0.0

    def test_unknown_percent(self):
        assert estimate_runtime(None) is None

    @pytest.mark.parametrize(
        "percent, tier",
        [(100, 100), (88, 100), (87, 75), (63, 75), (62, 50), (38, 50), (13, 25), (12, 0), (0, 0)],
    )
    def test_buckets(self, percent, tier):
        assert battery_bucket(percent) == tier

    def test_capacity(self):
        assert battery_capacity_mah(50) == pytest.approx(110.0)


class TestPayloadDecoding:
    """Test characteristic payload decoding."""

    def test_temperature_little_endian_centidegrees(self):
        assert decode_temperature(struct.pack("<h", 2534)) == pytest.approx(25.34)
        assert decode_temperature(struct.pack("<h", -150)) == pytest.approx(-1.5)

    def test_co_raw_big_endian(self):
        assert decode_co_raw(bytes([0x01, 0xF4])) == 500.0
        assert decode_co_raw(bytes([0xFF, 0xFF, 0x00])) == 65535.0

    @pytest.mark.parametrize("payload", [None, b"", b"\x01"])
    def test_short_payloads(self, payload):
        assert decode_temperature(payload) is None
        assert decode_co_raw(payload) is None

    def test_battery_level(self, caplog):
        assert decode_battery_level(bytes([87])) == 87
        assert decode_battery_level(bytes([250])) == 100
        assert decode_battery_level(b"") is None

        with caplog.at_level(logging.WARNING):
            assert decode_battery_level(bytes([7])) == 7
        assert "Low battery" in caplog.text

    def test_text(self):
        assert decode_text(b" F2E4CB88-0001\n") == "F2E4CB88-0001"
        assert decode_text(b"\xff\xfe") is None
        assert decode_text(None) is None


class TestWarmupTracker:
    """Test the connect / countdown / capture lifecycle."""

    def test_connect_starts_countdown(self):
        state = WarmupTracker().on_connect()
        assert state.is_preparing_baseline is True
        assert state.preparation_seconds_left == 20
        assert state.is_warmup_complete is False

    def test_full_timeline(self):
        tracker = WarmupTracker()
        tracker.on_connect()
        tracker.update_live(co_raw=430.0, temperature_c=24.5)

        for _ in range(19):
            state = tracker.tick()
        assert state.preparation_seconds_left == 1
        assert state.is_warmup_complete is False

        state = tracker.tick()
        assert state.is_warmup_complete is True
        assert state.is_preparing_baseline is False
        assert state.baseline_raw_value is None

        for _ in range(6):
            state = tracker.tick()
        assert state.baseline_raw_value is None

        state = tracker.tick()
        assert state.baseline_raw_value == 430.0
        assert state.baseline_temperature_c == 24.5
        assert state.raw_battery_adc == 430.0
        assert state.battery_voltage == pytest.approx(434.67 / 150.30)
        assert state.calculated_battery_percent == estimate_battery_percent(434.67 / 150.30)
        assert state.battery_capacity_mah == pytest.approx(
            220.0 * state.calculated_battery_percent / 100.0
        )

    def test_capture_uses_latest_live_value(self):
        tracker = WarmupTracker(warmup_seconds=2, capture_delay_seconds=1)
        tracker.on_connect()
        tracker.update_live(co_raw=400.0)
        tracker.tick()
        tracker.tick()
        tracker.update_live(co_raw=410.0)
        assert tracker.tick().baseline_raw_value == 410.0

    def test_capture_without_live_reading_is_skipped(self):
        tracker = WarmupTracker(warmup_seconds=1, capture_delay_seconds=1)
        tracker.on_connect()
        tracker.tick()
        state = tracker.tick()

        assert state.is_warmup_complete is True
        assert state.baseline_raw_value is None

    def test_disconnect_resets_everything(self):
        tracker = WarmupTracker(warmup_seconds=1, capture_delay_seconds=1)
        tracker.on_connect()
        tracker.update_live(co_raw=420.0)
        tracker.tick()
        tracker.tick()

        assert tracker.on_disconnect() == BaselinePreparationState()
        tracker.on_connect()
        assert tracker.capture_baseline().baseline_raw_value is None

    def test_reconnect_restarts_countdown(self):
        tracker = WarmupTracker()
        tracker.on_connect()
        for _ in range(10):
            tracker.tick()
        assert tracker.on_connect().preparation_seconds_left == 20

    def test_idle_tick_is_noop(self):
        tracker = WarmupTracker()
        assert tracker.tick() == BaselinePreparationState()
