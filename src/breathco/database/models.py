"""
SQLAlchemy ORM models for the local breath database.

Tables:
- breath_sessions: one row per analyzed breath sample
- breath_data_points: per-sample series of a session
- device_calibrations: per-device gas-fit calibration documents
"""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from breathco.database.types import ValidatedJSON


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""

    pass


def utc_now() -> datetime:
    """Return current UTC timestamp for database defaults."""
    return datetime.now(UTC)


class BreathSessionRow(Base):
    """Analyzed breath sample."""

    __tablename__ = "breath_sessions"

    session_id: Mapped[str] = mapped_column(String, primary_key=True)
    device_id: Mapped[str] = mapped_column(String, index=True)
    user_id: Mapped[str] = mapped_column(String, default="")
    started_at: Mapped[str] = mapped_column(String, index=True)
    ended_at: Mapped[str | None] = mapped_column(String)
    duration_seconds: Mapped[int] = mapped_column(Integer)

    estimated_ppm: Mapped[float] = mapped_column(Float)
    delta_r_comp: Mapped[float] = mapped_column(Float)
    temperature_rise_c: Mapped[float] = mapped_column(Float)
    baseline_co: Mapped[float] = mapped_column(Float)
    baseline_temperature: Mapped[float] = mapped_column(Float)
    baseline_voltage: Mapped[float | None] = mapped_column(Float)
    peak_co: Mapped[float] = mapped_column(Float)
    peak_temperature: Mapped[float] = mapped_column(Float)
    peak_voltage: Mapped[float | None] = mapped_column(Float)
    battery_percent: Mapped[int | None] = mapped_column(Integer)

    quality_flags: Mapped[dict[str, Any]] = mapped_column(ValidatedJSON, default=dict)
    method: Mapped[str] = mapped_column(String)

    calibration_mode: Mapped[str] = mapped_column(String)
    calibration_source: Mapped[str] = mapped_column(String)
    calibration_path: Mapped[str] = mapped_column(String)
    calibration_slope_raw_per_ppm: Mapped[float | None] = mapped_column(Float)
    calibration_intercept: Mapped[float | None] = mapped_column(Float)
    calibration_gain_raw_per_ppm: Mapped[float | None] = mapped_column(Float)
    calibration_drift_raw_per_sec: Mapped[float | None] = mapped_column(Float)
    calibration_tau_sec: Mapped[float | None] = mapped_column(Float)
    calibration_dead_sec: Mapped[float | None] = mapped_column(Float)
    calibration_duration_bucket_sec: Mapped[int | None] = mapped_column(Integer)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

    data_points = relationship(
        "BreathDataPointRow",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="BreathDataPointRow.position",
    )

    __table_args__ = (
        CheckConstraint("length(device_id) > 0", name="chk_device_id"),
        CheckConstraint("estimated_ppm >= 0", name="chk_ppm"),
        CheckConstraint("duration_seconds >= 0", name="chk_duration"),
    )

    def __repr__(self) -> str:
        return f"<BreathSessionRow(session_id={self.session_id}, device_id={self.device_id}, ppm={self.estimated_ppm:.2f})>"


class BreathDataPointRow(Base):
    """One sample of a session's recorded series."""

    __tablename__ = "breath_data_points"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(
        ForeignKey("breath_sessions.session_id", ondelete="CASCADE")
    )
    position: Mapped[int] = mapped_column(Integer)
    timestamp: Mapped[str] = mapped_column(String)
    co_raw: Mapped[float | None] = mapped_column(Float)
    temperature_c: Mapped[float | None] = mapped_column(Float)
    battery_percent: Mapped[int | None] = mapped_column(Integer)
    co_ppm: Mapped[float | None] = mapped_column(Float)

    session = relationship("BreathSessionRow", back_populates="data_points")

    def __repr__(self) -> str:
        return f"<BreathDataPointRow(session_id={self.session_id}, position={self.position})>"


class DeviceCalibrationRow(Base):
    """Gas-fit calibration document for one device serial prefix."""

    __tablename__ = "device_calibrations"

    serial_prefix: Mapped[str] = mapped_column(String(8), primary_key=True)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    a_drift_raw_per_s: Mapped[float | None] = mapped_column(Float)
    g_raw_per_ppm: Mapped[float | None] = mapped_column(Float)
    tau_s: Mapped[float | None] = mapped_column(Float)
    dead_s: Mapped[float | None] = mapped_column(Float)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("length(serial_prefix) = 8", name="chk_serial_prefix"),
    )

    def to_document(self) -> dict[str, Any]:
        """Return the row in calibration document form."""
        return {
            "enabled": self.enabled,
            "a_drift_raw_per_s": self.a_drift_raw_per_s,
            "G_raw_per_ppm": self.g_raw_per_ppm,
            "tau_s": self.tau_s,
            "dead_s": self.dead_s,
        }

    def __repr__(self) -> str:
        return f"<DeviceCalibrationRow(serial_prefix={self.serial_prefix}, enabled={self.enabled})>"
