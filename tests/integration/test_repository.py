"""
Tests for session and calibration persistence.

These tests verify:
- Session records round-trip through SQLite with their data points
- Replacement, listing order, deletion and cascade behavior
- Calibration documents feed the calibration cache
"""

from datetime import UTC, datetime

import pytest

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from breathco.analysis.analyzer import analyze_breath
from breathco.analysis.calibration import CalibrationCache
from breathco.analysis.stream import BreathSamplePoint
from breathco.database import models
from breathco.database.repository import CalibrationRepository, SessionRepository
from breathco.database.session import (
    cleanup_database,
    get_database_path,
    init_database,
    session_scope,
)
from breathco.session.records import build_session_record
from tests.helpers.synthetic_data import make_window

DAY_MS = 24 * 3600 * 1000
MAY_1_2024_MS = int(datetime(2024, 5, 1, 9, 0, tzinfo=UTC).timestamp() * 1000)

DOCUMENT = {
    "enabled": True,
    "a_drift_raw_per_s": -0.02,
    "G_raw_per_ppm": 0.71,
    "tau_s": 21.0,
    "dead_s": 1.5,
}


def make_record(session_id, start_ms=MAY_1_2024_MS, device_id="F2E4CB88-0001", peak=520.0):
    """Analyzed human-breath record starting at start_ms."""
    window = make_window(
        [500.0] * 8 + [peak, 510.0], [25.0] * 8 + [28.5, 28.5], start_ms=start_ms
    )
    points = [
        BreathSamplePoint(p.timestamp_ms, p.raw_co, p.temperature_c, None, 77)
        for p in window
    ]
    return build_session_record(
        analyze_breath(window),
        window,
        points,
        device_id=device_id,
        session_id=session_id,
        battery_percent=77,
    )


class TestSessionRepository:
    """Test storing and querying breath sessions."""

    def test_round_trip(self, initialized_db):
        """A saved record reads back unchanged."""
        repo = SessionRepository()
        record = make_record("session-a")

        repo.save(record)
        loaded = repo.get("session-a")

        assert loaded == record
        assert len(loaded.data_points) == 10
        assert loaded.data_points[8].co_raw == 520.0
        assert loaded.quality_flags == record.quality_flags

    def test_get_missing(self, initialized_db):
        assert SessionRepository().get("nope") is None

    def test_save_replaces_same_id(self, initialized_db):
        repo = SessionRepository()
        repo.save(make_record("session-a", peak=520.0))
        repo.save(make_record("session-a", peak=560.0))

        assert len(repo.list_sessions()) == 1
        assert repo.get("session-a").peak_co == 560.0
        assert repo.stats()["data_points"] == 10

    def test_list_newest_first_and_filter(self, initialized_db):
        repo = SessionRepository()
        repo.save(make_record("s1", MAY_1_2024_MS))
        repo.save(make_record("s2", MAY_1_2024_MS + DAY_MS, device_id="D1A07CD4"))
        repo.save(make_record("s3", MAY_1_2024_MS + 2 * DAY_MS))

        assert [r.session_id for r in repo.list_sessions()] == ["s3", "s2", "s1"]
        assert [r.session_id for r in repo.list_sessions(limit=2)] == ["s3", "s2"]
        assert [r.session_id for r in repo.list_sessions(device_id="D1A07CD4")] == ["s2"]

    def test_delete_cascades_to_data_points(self, initialized_db):
        repo = SessionRepository()
        repo.save(make_record("session-a"))

        assert repo.delete("session-a") is True
        assert repo.delete("session-a") is False

        with session_scope() as session:
            remaining = session.execute(
                text("SELECT COUNT(*) FROM breath_data_points")
            ).scalar()
        assert remaining == 0

    def test_ppm_series(self, initialized_db):
        repo = SessionRepository()
        repo.save(make_record("s1", MAY_1_2024_MS))
        repo.save(make_record("s2", MAY_1_2024_MS + DAY_MS))

        series = repo.ppm_series()
        assert len(series) == 2
        assert all(started.tzinfo is UTC for started, _ in series)

        since = repo.ppm_series(since="2024-05-02T00:00:00.000Z")
        assert [started.day for started, _ in since] == [2]

    def test_stats(self, initialized_db):
        repo = SessionRepository()
        assert repo.stats()["sessions"] == 0
        assert repo.stats()["first_session"] is None

        repo.save(make_record("s1", MAY_1_2024_MS))
        repo.save(make_record("s2", MAY_1_2024_MS + DAY_MS, device_id="D1A07CD4"))

        stats = repo.stats()
        assert stats["sessions"] == 2
        assert stats["data_points"] == 20
        assert stats["devices"] == 2
        assert stats["first_session"] == "2024-05-01T09:00:00.000Z"
        assert stats["last_session"] == "2024-05-02T09:00:00.000Z"
        assert get_database_path() == str(initialized_db)


class TestDatabaseLifecycle:
    """Test opening and closing the shared database."""

    def test_scope_requires_init(self):
        cleanup_database()
        with pytest.raises(RuntimeError, match="not initialized"):
            with session_scope():
                pass

    def test_second_init_keeps_open_database(self, initialized_db, tmp_path):
        other = tmp_path / "other.db"

        assert init_database(str(other)) == str(initialized_db)
        assert get_database_path() == str(initialized_db)
        assert not other.exists()

    def test_empty_path_rejected(self):
        cleanup_database()
        with pytest.raises(ValueError, match="Invalid database path"):
            init_database("")

    def test_creates_parent_directory(self, tmp_path):
        cleanup_database()
        path = tmp_path / "nested" / "breath.db"
        try:
            assert init_database(str(path)) == str(path)
            assert path.parent.is_dir()
        finally:
            cleanup_database()


class TestDatabaseConstraints:
    """Test schema-level integrity rules."""

    def test_foreign_keys_enabled(self, initialized_db):
        with session_scope() as session:
            assert session.execute(text("PRAGMA foreign_keys")).scalar() == 1

    def test_negative_ppm_rejected(self, initialized_db):
        record = make_record("session-a").model_dump()
        record.pop("timestamps")
        record.pop("data_points")
        record["estimated_ppm"] = -1.0

        with pytest.raises(IntegrityError):
            with session_scope() as session:
                session.add(models.BreathSessionRow(**record))

    def test_bad_serial_prefix_rejected(self, initialized_db):
        with pytest.raises(IntegrityError):
            with session_scope() as session:
                session.add(models.DeviceCalibrationRow(serial_prefix="SHORT"))


class TestCalibrationRepository:
    """Test calibration documents as a calibration provider."""

    def test_put_and_get(self, initialized_db):
        repo = CalibrationRepository()
        prefix = repo.put_document("f2e4-cb88-0001", DOCUMENT)

        assert prefix == "F2E4CB88"
        assert repo.get_document(prefix) == DOCUMENT
        coefficients = repo.get_device_calibration(prefix)
        assert coefficients.gain_raw_per_ppm == pytest.approx(0.71)
        assert coefficients.dead_sec == pytest.approx(1.5)

    def test_update_existing(self, initialized_db):
        repo = CalibrationRepository()
        repo.put_document("F2E4CB88", DOCUMENT)
        repo.put_document("F2E4CB88", {**DOCUMENT, "enabled": False})

        assert repo.get_document("F2E4CB88")["enabled"] is False
        assert repo.get_device_calibration("F2E4CB88") is None

    def test_incomplete_document(self, initialized_db):
        repo = CalibrationRepository()
        repo.put_document("F2E4CB88", {"G_raw_per_ppm": 0.7})
        assert repo.get_device_calibration("F2E4CB88") is None

    def test_invalid_serial(self, initialized_db):
        with pytest.raises(ValueError, match="8-character"):
            CalibrationRepository().put_document("abc", DOCUMENT)

    def test_missing(self, initialized_db):
        repo = CalibrationRepository()
        assert repo.get_document("00000000") is None
        assert repo.get_device_calibration("00000000") is None
        assert repo.delete("00000000") is False

    def test_delete(self, initialized_db):
        repo = CalibrationRepository()
        repo.put_document("F2E4CB88", DOCUMENT)
        assert repo.delete("f2e4cb88-xyz") is True
        assert repo.get_document("F2E4CB88") is None

    def test_cache_reads_from_repository(self, initialized_db):
        repo = CalibrationRepository()
        repo.put_document("F2E4CB88", DOCUMENT)
        cache = CalibrationCache(repo)

        assert cache.ensure_fetched("F2E4CB88-0001") is True
        assert cache.cached("F2E4CB88").tau_sec == pytest.approx(21.0)

        cache.ensure_fetched("D1A07CD4-0001")
        assert cache.is_resolved("D1A07CD4") is True
        assert cache.cached("D1A07CD4") is None
