"""
Persistence of breath sessions and device calibrations.

Each repository method runs in its own session_scope() transaction and
returns detached pydantic/value objects, never ORM rows.
"""

import logging

from collections.abc import Mapping
from datetime import datetime
from typing import Any

from sqlalchemy import func, select

from breathco.analysis.calibration import (
    normalize_serial_prefix,
    parse_calibration_document,
)
from breathco.analysis.types import GasFitCoefficients
from breathco.constants import DEFAULT_LIST_SESSIONS_LIMIT
from breathco.database.models import (
    BreathDataPointRow,
    BreathSessionRow,
    DeviceCalibrationRow,
)
from breathco.database.session import session_scope
from breathco.session.records import (
    BreathDataPointRecord,
    BreathSessionRecord,
    parse_timestamp,
)

logger = logging.getLogger(__name__)

_RECORD_COLUMNS = (
    "device_id",
    "user_id",
    "started_at",
    "duration_seconds",
    "estimated_ppm",
    "delta_r_comp",
    "temperature_rise_c",
    "baseline_co",
    "baseline_temperature",
    "baseline_voltage",
    "peak_co",
    "peak_temperature",
    "peak_voltage",
    "battery_percent",
    "quality_flags",
    "method",
    "calibration_mode",
    "calibration_source",
    "calibration_path",
    "calibration_slope_raw_per_ppm",
    "calibration_intercept",
    "calibration_gain_raw_per_ppm",
    "calibration_drift_raw_per_sec",
    "calibration_tau_sec",
    "calibration_dead_sec",
    "calibration_duration_bucket_sec",
)


def _row_to_record(row: BreathSessionRow) -> BreathSessionRecord:
    values = {column: getattr(row, column) for column in _RECORD_COLUMNS}
    timestamps = [row.started_at] + ([row.ended_at] if row.ended_at else [])
    return BreathSessionRecord(
        session_id=row.session_id,
        timestamps=timestamps,
        data_points=[
            BreathDataPointRecord(
                timestamp=p.timestamp,
                co_raw=p.co_raw,
                temperature_c=p.temperature_c,
                battery_percent=p.battery_percent,
                co_ppm=p.co_ppm,
            )
            for p in row.data_points
        ],
        **values,
    )


class SessionRepository:
    """
    Stores analyzed breath sessions.

    Example:
        >>> init_database("/tmp/breath.db")
        >>> repo = SessionRepository()
        >>> repo.save(outcome.record)
        >>> recent = repo.list_sessions(limit=10)
    """

    def save(self, record: BreathSessionRecord) -> None:
        """Insert a session, replacing any stored session with the same id."""
        with session_scope() as session:
            existing = session.get(BreathSessionRow, record.session_id)
            if existing is not None:
                logger.info(f"Replacing stored session {record.session_id}")
                session.delete(existing)
                session.flush()

            row = BreathSessionRow(
                session_id=record.session_id,
                ended_at=record.timestamps[-1] if len(record.timestamps) > 1 else None,
                **{column: getattr(record, column) for column in _RECORD_COLUMNS},
            )
            row.data_points = [
                BreathDataPointRow(
                    position=position,
                    timestamp=p.timestamp,
                    co_raw=p.co_raw,
                    temperature_c=p.temperature_c,
                    battery_percent=p.battery_percent,
                    co_ppm=p.co_ppm,
                )
                for position, p in enumerate(record.data_points)
            ]
            session.add(row)

        logger.info(
            f"Saved session {record.session_id} "
            f"({record.estimated_ppm:.2f} ppm, {len(record.data_points)} points)"
        )

    def get(self, session_id: str) -> BreathSessionRecord | None:
        with session_scope() as session:
            row = session.get(BreathSessionRow, session_id)
            return _row_to_record(row) if row is not None else None

    def list_sessions(
        self, device_id: str | None = None, limit: int = DEFAULT_LIST_SESSIONS_LIMIT
    ) -> list[BreathSessionRecord]:
        """Sessions newest first, optionally for one device."""
        with session_scope() as session:
            query = select(BreathSessionRow)
            if device_id:
                query = query.where(BreathSessionRow.device_id == device_id)
            query = query.order_by(BreathSessionRow.started_at.desc()).limit(limit)
            return [_row_to_record(row) for row in session.scalars(query)]

    def delete(self, session_id: str) -> bool:
        """Delete a session and its data points. Returns False if not found."""
        with session_scope() as session:
            row = session.get(BreathSessionRow, session_id)
            if row is None:
                return False
            session.delete(row)
        logger.info(f"Deleted session {session_id}")
        return True

    def ppm_series(self, since: str | None = None) -> list[tuple[datetime, float]]:
        """(started_at, estimated_ppm) pairs, optionally from an ISO timestamp on."""
        with session_scope() as session:
            query = select(BreathSessionRow.started_at, BreathSessionRow.estimated_ppm)
            if since is not None:
                query = query.where(BreathSessionRow.started_at >= since)
            rows = session.execute(query).all()

        series = []
        for started_at, ppm in rows:
            try:
                series.append((parse_timestamp(started_at), ppm))
            except ValueError:
                logger.warning(f"Skipping session with malformed start time: {started_at}")
        return series

    def stats(self) -> dict[str, Any]:
        """Row counts and session date range."""
        with session_scope() as session:
            session_count = session.scalar(select(func.count(BreathSessionRow.session_id)))
            point_count = session.scalar(select(func.count(BreathDataPointRow.id)))
            device_count = session.scalar(
                select(func.count(func.distinct(BreathSessionRow.device_id)))
            )
            first, last = session.execute(
                select(
                    func.min(BreathSessionRow.started_at),
                    func.max(BreathSessionRow.started_at),
                )
            ).one()
            calibration_count = session.scalar(
                select(func.count(DeviceCalibrationRow.serial_prefix))
            )
        return {
            "sessions": session_count or 0,
            "data_points": point_count or 0,
            "devices": device_count or 0,
            "calibrations": calibration_count or 0,
            "first_session": first,
            "last_session": last,
        }


class CalibrationRepository:
    """
    Per-device calibration documents keyed by normalized serial prefix.

    Serves as the CalibrationProvider of a CalibrationCache.
    """

    def get_document(self, serial_prefix: str) -> dict[str, Any] | None:
        with session_scope() as session:
            row = session.get(DeviceCalibrationRow, serial_prefix)
            return row.to_document() if row is not None else None

    def get_device_calibration(self, serial_prefix: str) -> GasFitCoefficients | None:
        """Coefficients for the prefix, or None when absent, disabled or incomplete."""
        return parse_calibration_document(self.get_document(serial_prefix))

    def put_document(self, serial: str, document: Mapping[str, Any]) -> str:
        """
        Store a calibration document for a device.

        Args:
            serial: Device serial or serial prefix
            document: Calibration document fields

        Returns:
            The normalized serial prefix used as key

        Raises:
            ValueError: If the serial does not normalize to eight characters
        """
        prefix = normalize_serial_prefix(serial)
        if prefix is None:
            raise ValueError(f"Serial {serial!r} does not yield an 8-character prefix")

        def _optional_float(key: str) -> float | None:
            value = document.get(key)
            return float(value) if value is not None else None

        with session_scope() as session:
            row = session.get(DeviceCalibrationRow, prefix)
            if row is None:
                row = DeviceCalibrationRow(serial_prefix=prefix)
                session.add(row)
            row.enabled = bool(document.get("enabled", True))
            row.a_drift_raw_per_s = _optional_float("a_drift_raw_per_s")
            row.g_raw_per_ppm = _optional_float("G_raw_per_ppm")
            row.tau_s = _optional_float("tau_s")
            row.dead_s = _optional_float("dead_s")

        logger.info(f"Stored calibration document for {prefix}")
        return prefix

    def delete(self, serial: str) -> bool:
        prefix = normalize_serial_prefix(serial)
        if prefix is None:
            return False
        with session_scope() as session:
            row = session.get(DeviceCalibrationRow, prefix)
            if row is None:
                return False
            session.delete(row)
        return True
