"""
End-to-end tests for the breath sampling session.

These tests drive a SamplingSession the way the connection layer does:
warm-up, start gating, sensor updates, countdown and analysis, with records
persisted to a real SQLite database.
"""

import pytest

from breathco.analysis.calibration import CalibrationCache
from breathco.analysis.types import CalibrationPath, CalibrationSource, GasFitCoefficients
from breathco.database.repository import CalibrationRepository, SessionRepository
from breathco.device.warmup import WarmupTracker
from breathco.session.sampling import (
    NOT_CONNECTED_MESSAGE,
    NOT_ENOUGH_ALIGNED_MESSAGE,
    NOT_ENOUGH_SAMPLES_MESSAGE,
    SamplingSession,
    format_summary,
)
from tests.helpers.synthetic_data import gas_step_window, human_breath_window, make_window

SERIAL = "F2E4CB88-0001"


def ready_warmup(baseline_raw=430.0):
    """Warm-up state after a completed countdown and baseline capture."""
    tracker = WarmupTracker(warmup_seconds=1, capture_delay_seconds=1)
    tracker.on_connect()
    tracker.update_live(co_raw=baseline_raw, temperature_c=24.0)
    tracker.tick()
    return tracker.tick()


def feed(session, window):
    """Send each window point as a temperature then a CO update."""
    for point in window:
        session.record_temperature(point.timestamp_ms, point.temperature_c)
        session.record_co(point.timestamp_ms, point.raw_co, battery_percent=81)


class TestStartGating:
    """Test conditions under which sampling may start."""

    def test_not_connected(self):
        with pytest.raises(RuntimeError, match=NOT_CONNECTED_MESSAGE):
            SamplingSession().start(15, connected=False)

    def test_warmup_in_progress(self):
        tracker = WarmupTracker()
        state = tracker.on_connect()

        with pytest.raises(RuntimeError, match="Warmup in progress. Please wait 20s."):
            SamplingSession().start(15, connected=True, warmup=state)

    def test_already_sampling(self):
        session = SamplingSession()
        session.start(15, connected=True)

        with pytest.raises(RuntimeError, match="already running"):
            session.start(15, connected=True)

    @pytest.mark.parametrize("duration", [0, -5])
    def test_invalid_duration(self, duration):
        with pytest.raises(ValueError):
            SamplingSession().start(duration, connected=True)

    def test_start_returns_session_id(self):
        session = SamplingSession()
        session_id = session.start(15, connected=True)

        assert session_id.startswith("session-")
        assert session.is_sampling is True
        assert session.remaining_sec == 15


class TestConfiguredSession:
    """Test sessions built from the [sampling] and [analysis] settings."""

    def test_default_duration_without_config(self):
        session = SamplingSession()
        session.start(connected=True)
        assert session.remaining_sec == 15

    def test_configured_default_duration(self):
        session = SamplingSession.from_config({"sampling": {"default_duration_sec": 20}})
        session.start(connected=True)
        assert session.remaining_sec == 20

    def test_explicit_duration_wins(self):
        session = SamplingSession.from_config({"sampling": {"default_duration_sec": 20}})
        session.start(8, connected=True)
        assert session.remaining_sec == 8

    def test_invalid_configured_duration_uses_default(self):
        session = SamplingSession.from_config({"sampling": {"default_duration_sec": 0}})
        session.start(connected=True)
        assert session.remaining_sec == 15

    def test_configured_analysis_coefficients(self):
        session = SamplingSession.from_config(
            {"analysis": {"human_path_temp_rise_threshold_c": 5.0}}
        )
        session.start(connected=True)
        feed(session, human_breath_window())

        outcome = session.stop()
        assert outcome.analysis.calibration_path != CalibrationPath.HUMAN_BREATH

    def test_reads_config_file(self, isolated_config):
        isolated_config.write_text(
            "[sampling]\ndefault_duration_sec = 25\n", encoding="utf-8"
        )
        session = SamplingSession.from_config()
        session.start(connected=True)
        assert session.remaining_sec == 25


class TestSessionLifecycle:
    """Test collection, countdown and analysis."""

    def test_human_breath_saved(self, initialized_db):
        repo = SessionRepository()
        session = SamplingSession(record_sink=repo.save)
        session.start(10, connected=True, warmup=ready_warmup(), serial_number=SERIAL)
        feed(session, human_breath_window())

        outcome = None
        for _ in range(10):
            outcome = session.tick()
        assert outcome is not None

        assert outcome.analyzed is True
        assert outcome.analysis.calibration_path == CalibrationPath.HUMAN_BREATH
        assert outcome.message == format_summary(outcome.analysis)
        assert outcome.sensor_suspicious is False
        assert outcome.analysis.baseline_voltage == pytest.approx(434.67 / 150.30)
        assert len(outcome.points) == 10

        stored = repo.get(outcome.session_id)
        assert stored is not None
        assert stored.device_id == SERIAL
        assert stored.battery_percent == 81
        assert stored.estimated_ppm == pytest.approx(outcome.analysis.estimated_ppm)
        assert session.is_sampling is False

    def test_tick_before_zero_keeps_sampling(self):
        session = SamplingSession()
        session.start(3, connected=True)

        assert session.tick() is None
        assert session.tick() is None
        assert session.remaining_sec == 1
        assert session.is_sampling is True

    def test_too_few_co_samples(self):
        session = SamplingSession()
        session.start(15, connected=True)
        feed(session, human_breath_window()[:4])

        outcome = session.stop()
        assert outcome.analyzed is False
        assert outcome.message == NOT_ENOUGH_SAMPLES_MESSAGE

    def test_no_temperature_alignment(self):
        session = SamplingSession()
        session.start(15, connected=True)
        for point in human_breath_window():
            session.record_co(point.timestamp_ms, point.raw_co)

        outcome = session.stop()
        assert outcome.analyzed is False
        assert outcome.message == NOT_ENOUGH_ALIGNED_MESSAGE
        assert len(outcome.points) == 10

    def test_abort_skips_analysis(self):
        sink = []
        session = SamplingSession(record_sink=sink.append)
        session.start(15, connected=True, serial_number=SERIAL)
        feed(session, human_breath_window())

        outcome = session.abort("Device disconnected")

        assert outcome.analyzed is False
        assert outcome.message == "Device disconnected"
        assert outcome.analysis is None
        assert sink == []
        assert session.stop() is None

    def test_updates_ignored_when_idle(self):
        session = SamplingSession()
        assert session.record_co(0, 500.0, battery_percent=64) is None
        assert session.battery_percent == 64
        assert session.builder.co_samples == []

    def test_no_serial_no_record(self):
        sink = []
        session = SamplingSession(record_sink=sink.append)
        session.start(15, connected=True)
        feed(session, human_breath_window())

        outcome = session.stop()
        assert outcome.analyzed is True
        assert outcome.record is None
        assert sink == []

    def test_suspicious_sensor(self):
        session = SamplingSession()
        session.start(15, connected=True, serial_number=SERIAL)
        feed(session, make_window([120.0] * 8 + [150.0, 140.0], [25.0] * 8 + [28.5, 28.5]))

        assert session.stop().sensor_suspicious is True

    def test_configured_duration_reaches_legacy_path(self):
        session = SamplingSession()
        session.start(28, connected=True)
        feed(session, make_window([500.0] * 5, [24.0] * 5, step_ms=1500))

        outcome = session.stop()
        assert outcome.analysis.calibration_path == CalibrationPath.LEGACY_GAS_FALLBACK
        assert outcome.analysis.calibration_duration_bucket_sec == 30


class TestCloudCalibrationSnapshot:
    """Test that cloud calibration is resolved before and frozen at start."""

    def test_repository_calibration_used(self, initialized_db):
        CalibrationRepository().put_document(
            SERIAL,
            {"a_drift_raw_per_s": 0.0, "G_raw_per_ppm": 1.0, "tau_s": 22.0, "dead_s": 0.0},
        )
        cache = CalibrationCache(CalibrationRepository())
        session = SamplingSession(cache=cache)
        session.update_serial(SERIAL)

        session.start(30, connected=True, warmup=ready_warmup())
        cache.clear()
        feed(session, gas_step_window())
        outcome = session.stop()

        assert outcome.analysis.calibration_path == CalibrationPath.GAS_FIT
        assert outcome.analysis.calibration_source == CalibrationSource.CLOUD
        assert outcome.analysis.calibration_gain_raw_per_ppm == pytest.approx(1.0)

    def test_later_fetch_applies_to_next_session(self):
        cloud = GasFitCoefficients(
            drift_raw_per_sec=0.0, gain_raw_per_ppm=1.0, tau_sec=22.0, dead_sec=0.0
        )

        class LateProvider:
            def __init__(self):
                self.answer = None

            def get_device_calibration(self, serial_prefix):
                return self.answer

        provider = LateProvider()
        cache = CalibrationCache(provider)
        session = SamplingSession(cache=cache)

        session.start(30, connected=True, serial_number=SERIAL)
        feed(session, gas_step_window())
        assert session.stop().analysis.calibration_source == CalibrationSource.LOCAL

        provider.answer = cloud
        cache.clear()
        session.start(30, connected=True, serial_number=SERIAL)
        feed(session, gas_step_window())
        assert session.stop().analysis.calibration_source == CalibrationSource.CLOUD
