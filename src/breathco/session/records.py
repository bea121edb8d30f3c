"""
Persisted breath session records.

A record is the storage form of one completed sampling session: every
BreathAnalysis field, device and user identity, ISO-8601 UTC timestamps and
the per-sample series shown during sampling.
"""

from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

from breathco.analysis.stream import BreathSamplePoint
from breathco.analysis.types import BreathAnalysis, WindowPoint
from breathco.constants import AnalyzeConstants as AC
from breathco.constants import (
    ISO_TIMESTAMP_FORMAT,
    MILLISECONDS_PER_SECOND,
    SESSION_ID_FORMAT,
)


def format_timestamp(timestamp_ms: int) -> str:
    """Format epoch milliseconds as yyyy-MM-ddTHH:mm:ss.SSSZ (UTC)."""
    seconds, millis = divmod(timestamp_ms, MILLISECONDS_PER_SECOND)
    moment = datetime.fromtimestamp(seconds, UTC)
    return f"{moment.strftime(ISO_TIMESTAMP_FORMAT)}.{millis:03d}Z"


def parse_timestamp(value: str) -> datetime:
    """
    Parse a timestamp written by format_timestamp.

    Raises:
        ValueError: If the string is not in the record timestamp format
    """
    return datetime.strptime(value, f"{ISO_TIMESTAMP_FORMAT}.%fZ").replace(tzinfo=UTC)


def generate_session_id(now: datetime | None = None) -> str:
    """Session identifier of the form session-YYYY-MM-DD-HH-MM-SS."""
    return (now or datetime.now()).strftime(SESSION_ID_FORMAT)


class BreathDataPointRecord(BaseModel):
    """One stored sample of the session's display series."""

    timestamp: str = Field(description="ISO-8601 UTC timestamp")
    co_raw: float | None = Field(default=None, description="Raw CO reading")
    temperature_c: float | None = Field(default=None, description="Temperature (°C)")
    battery_percent: int | None = Field(default=None, description="Battery (%)")
    co_ppm: float | None = Field(default=None, description="Per-sample ppm (unused)")


class BreathSessionRecord(BaseModel):
    """Storage form of a completed breath sample."""

    session_id: str = Field(description="Session identifier")
    device_id: str = Field(min_length=1, description="Device serial number")
    user_id: str = Field(default="", description="Owning user")
    started_at: str = Field(description="First window sample (ISO-8601 UTC)")
    duration_seconds: int = Field(ge=0, description="Breath duration (s)")

    estimated_ppm: float = Field(ge=0, description="Estimated CO (ppm)")
    delta_r_comp: float
    temperature_rise_c: float
    baseline_co: float
    baseline_temperature: float
    baseline_voltage: float | None = None
    peak_co: float
    peak_temperature: float
    peak_voltage: float | None = None
    battery_percent: int | None = None

    quality_flags: dict[str, bool] = Field(default_factory=dict)
    method: str = AC.METHOD_TAG

    calibration_mode: str
    calibration_source: str
    calibration_path: str
    calibration_slope_raw_per_ppm: float | None = None
    calibration_intercept: float | None = None
    calibration_gain_raw_per_ppm: float | None = None
    calibration_drift_raw_per_sec: float | None = None
    calibration_tau_sec: float | None = None
    calibration_dead_sec: float | None = None
    calibration_duration_bucket_sec: int | None = None

    timestamps: list[str] = Field(default_factory=list, description="[start, end]")
    data_points: list[BreathDataPointRecord] = Field(default_factory=list)

    @property
    def started_at_datetime(self) -> datetime:
        return parse_timestamp(self.started_at)

    def summary(self) -> dict[str, Any]:
        """Compact view for listings."""
        return {
            "session_id": self.session_id,
            "device_id": self.device_id,
            "started_at": self.started_at,
            "estimated_ppm": round(self.estimated_ppm, 2),
            "calibration_path": self.calibration_path,
        }


def build_session_record(
    analysis: BreathAnalysis,
    window: Sequence[WindowPoint],
    points: Sequence[BreathSamplePoint],
    device_id: str,
    session_id: str | None = None,
    battery_percent: int | None = None,
    user_id: str = "",
) -> BreathSessionRecord:
    """
    Combine an analysis with its window and display series into a record.

    Args:
        analysis: Result of analyzing `window`
        window: Sorted analysis window (non-empty)
        points: Display points recorded during sampling
        device_id: Device serial
        session_id: Identifier; generated when empty
        battery_percent: Last reported battery level
        user_id: Owning user

    Returns:
        BreathSessionRecord
    """
    start = format_timestamp(window[0].timestamp_ms)
    end = format_timestamp(window[-1].timestamp_ms)

    return BreathSessionRecord(
        session_id=session_id or generate_session_id(),
        device_id=device_id,
        user_id=user_id,
        started_at=start,
        duration_seconds=analysis.breath_duration_sec,
        estimated_ppm=analysis.estimated_ppm,
        delta_r_comp=analysis.delta_r_comp,
        temperature_rise_c=analysis.temperature_rise_c,
        baseline_co=analysis.baseline_co,
        baseline_temperature=analysis.baseline_temperature,
        baseline_voltage=analysis.baseline_voltage,
        peak_co=analysis.peak_co,
        peak_temperature=analysis.peak_temperature,
        peak_voltage=analysis.peak_voltage,
        battery_percent=battery_percent,
        quality_flags=analysis.flags.as_record(),
        method=analysis.method,
        calibration_mode=analysis.calibration_mode,
        calibration_source=analysis.calibration_source.value,
        calibration_path=analysis.calibration_path.value,
        calibration_slope_raw_per_ppm=analysis.calibration_slope_raw_per_ppm,
        calibration_intercept=analysis.calibration_intercept,
        calibration_gain_raw_per_ppm=analysis.calibration_gain_raw_per_ppm,
        calibration_drift_raw_per_sec=analysis.calibration_drift_raw_per_sec,
        calibration_tau_sec=analysis.calibration_tau_sec,
        calibration_dead_sec=analysis.calibration_dead_sec,
        calibration_duration_bucket_sec=analysis.calibration_duration_bucket_sec,
        timestamps=[start, end],
        data_points=[
            BreathDataPointRecord(
                timestamp=format_timestamp(p.timestamp_ms),
                co_raw=p.co_raw,
                temperature_c=p.temperature_c,
                battery_percent=p.battery_percent,
            )
            for p in points
        ],
    )
