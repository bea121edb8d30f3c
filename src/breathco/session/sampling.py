"""
Fixed-duration breath sampling session.

SamplingSession coordinates one sample at a time: it gates the start on
device readiness, snapshots the serial number and cloud calibration, collects
sensor updates through a SampleStreamBuilder, counts the duration down and
finally analyzes the window. An abort (disconnect, lost network) ends the
session without analysis.
"""

import logging

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from breathco.analysis.analyzer import BreathAnalyzer
from breathco.analysis.calibration import CalibrationCache
from breathco.analysis.stream import (
    BreathSamplePoint,
    SampleStreamBuilder,
    session_voltage,
)
from breathco.analysis.types import BreathAnalysis, GasFitCoefficients, WindowPoint
from breathco.config import get_analyze_coefficients, get_default_sample_duration
from breathco.constants import SessionConstants as SC
from breathco.device.warmup import BaselinePreparationState
from breathco.session.records import (
    BreathSessionRecord,
    build_session_record,
    generate_session_id,
)

logger = logging.getLogger(__name__)

NOT_CONNECTED_MESSAGE = "Connect to your breath sensor first."
NOT_ENOUGH_ALIGNED_MESSAGE = (
    "Not enough temperature/CO data to estimate PPM. "
    "Keep the device connected and try again."
)
NOT_ENOUGH_SAMPLES_MESSAGE = "Not enough sample points captured to estimate PPM."


def format_summary(analysis: BreathAnalysis) -> str:
    """User-facing one-line result, e.g. "PPM: 4.78, dT: 3.50 (short)"."""
    message = (
        f"PPM: {analysis.estimated_ppm:.2f}, dT: {analysis.temperature_rise_c:.2f}"
    )
    if analysis.flags.short_duration:
        message += " (short)"
    if analysis.flags.small_temperature_rise:
        message += " (low dT)"
    if analysis.flags.unstable_baseline:
        message += " (unstable baseline)"
    return message


def is_sensor_suspicious(analysis: BreathAnalysis) -> bool:
    """Both baseline and peak below the sensor-health floor."""
    return (
        analysis.baseline_co < SC.SENSOR_SUSPICIOUS_RAW
        and analysis.peak_co < SC.SENSOR_SUSPICIOUS_RAW
    )


@dataclass(frozen=True)
class SessionOutcome:
    """How a sampling session ended and what it produced."""

    session_id: str
    analyzed: bool
    message: str | None = None
    analysis: BreathAnalysis | None = None
    record: BreathSessionRecord | None = None
    sensor_suspicious: bool = False
    window: list[WindowPoint] = field(default_factory=list)
    points: list[BreathSamplePoint] = field(default_factory=list)


class SamplingSession:
    """
    Coordinator for breath sampling on one connected device.

    Example:
        >>> session = SamplingSession(cache=CalibrationCache(repository))
        >>> session.start(15, connected=True, warmup=tracker.state)
        >>> session.record_temperature(ts, 24.0)
        >>> session.record_co(ts, 501.0)
        >>> outcome = session.stop()
    """

    def __init__(
        self,
        analyzer: BreathAnalyzer | None = None,
        cache: CalibrationCache | None = None,
        record_sink: Callable[[BreathSessionRecord], None] | None = None,
        default_duration_sec: int = SC.DEFAULT_SAMPLE_DURATION_SEC,
    ):
        """
        Initialize the coordinator.

        Args:
            analyzer: Analyzer used at the end of each session
            cache: Cloud calibration cache shared across sessions
            record_sink: Receives each persisted session record
            default_duration_sec: Duration used when start() is given none
        """
        self.analyzer = analyzer or BreathAnalyzer()
        self.cache = cache or CalibrationCache()
        self.record_sink = record_sink
        self.default_duration_sec = default_duration_sec
        self.builder = SampleStreamBuilder()

        self.is_sampling = False
        self.remaining_sec = 0
        self.session_id = ""
        self.serial_number: str | None = None
        self.battery_percent: int | None = None

        self._duration_sec: int | None = None
        self._session_serial: str | None = None
        self._session_cloud: GasFitCoefficients | None = None
        self._warmup_baseline_raw: float | None = None

    @classmethod
    def from_config(
        cls, config: dict[str, Any] | None = None, **kwargs: Any
    ) -> "SamplingSession":
        """Coordinator using the [analysis] and [sampling] settings."""
        return cls(
            analyzer=BreathAnalyzer(get_analyze_coefficients(config)),
            default_duration_sec=get_default_sample_duration(config),
            **kwargs,
        )

    def update_serial(self, serial_number: str | None) -> None:
        """Track the device serial and prefetch its cloud calibration."""
        if serial_number:
            self.serial_number = serial_number
        self.cache.ensure_fetched(serial_number)

    def start(
        self,
        duration_sec: int | None = None,
        connected: bool = False,
        warmup: BaselinePreparationState | None = None,
        serial_number: str | None = None,
    ) -> str:
        """
        Begin a sampling session.

        Args:
            duration_sec: Sampling duration (s), default_duration_sec if None
            connected: Whether the sensor is connected
            warmup: Current warm-up state of the connection
            serial_number: Device serial, if newly known

        Returns:
            The new session id

        Raises:
            RuntimeError: If the device is not ready or a session is running
        """
        warmup = warmup or BaselinePreparationState()
        if not connected:
            raise RuntimeError(NOT_CONNECTED_MESSAGE)
        if warmup.is_preparing_baseline:
            raise RuntimeError(
                f"Warmup in progress. Please wait {warmup.preparation_seconds_left}s."
            )
        if self.is_sampling:
            raise RuntimeError("A sampling session is already running.")
        if duration_sec is None:
            duration_sec = self.default_duration_sec
        if duration_sec <= 0:
            raise ValueError(f"Invalid sampling duration: {duration_sec}")

        if serial_number:
            self.update_serial(serial_number)

        self.session_id = generate_session_id()
        self._session_serial = self.serial_number
        self._session_cloud = self.cache.cached(self.serial_number)
        self._duration_sec = duration_sec
        self._warmup_baseline_raw = warmup.baseline_raw_value
        self.builder.reset(
            session_voltage(warmup.battery_voltage, warmup.baseline_raw_value)
        )
        self.is_sampling = True
        self.remaining_sec = duration_sec

        logger.info(
            f"Sampling started: {self.session_id}, {duration_sec}s, "
            f"serial={self._session_serial}, "
            f"cloud calibration={'yes' if self._session_cloud else 'no'}"
        )
        return self.session_id

    def record_temperature(self, timestamp_ms: int, temperature_c: float | None) -> None:
        if self.is_sampling:
            self.builder.record_temperature(timestamp_ms, temperature_c)

    def record_co(
        self,
        timestamp_ms: int,
        co_raw: float | None,
        live_temperature_c: float | None = None,
        battery_percent: int | None = None,
    ) -> BreathSamplePoint | None:
        """Record a CO update; ignored when no session is running."""
        if battery_percent is not None:
            self.battery_percent = battery_percent
        if not self.is_sampling:
            return None
        return self.builder.record_co(
            timestamp_ms, co_raw, live_temperature_c, self.battery_percent
        )

    def tick(self) -> SessionOutcome | None:
        """Advance the countdown one second; returns the outcome at zero."""
        if not self.is_sampling:
            return None
        self.remaining_sec = max(0, self.remaining_sec - 1)
        if self.remaining_sec == 0:
            return self.stop()
        return None

    def abort(self, reason: str) -> SessionOutcome | None:
        """End the session without analysis."""
        logger.warning(f"Sampling aborted: {reason}")
        return self.stop(analyze=False, reason=reason)

    def stop(self, analyze: bool = True, reason: str | None = None) -> SessionOutcome | None:
        """
        End the session, analyzing the collected window when requested.

        Returns:
            SessionOutcome, or None if no session was running
        """
        if not self.is_sampling:
            return None

        self.is_sampling = False
        self.remaining_sec = 0
        serial = self._session_serial
        cloud = self._session_cloud
        duration = self._duration_sec
        self._session_serial = None
        self._session_cloud = None
        self._duration_sec = None

        points = list(self.builder.points)
        if not analyze:
            return SessionOutcome(
                session_id=self.session_id, analyzed=False, message=reason, points=points
            )

        if len(self.builder.co_samples) < SC.MIN_CO_SAMPLES:
            logger.info(f"Only {len(self.builder.co_samples)} CO samples, not analyzing")
            return SessionOutcome(
                session_id=self.session_id,
                analyzed=False,
                message=NOT_ENOUGH_SAMPLES_MESSAGE,
                points=points,
            )

        window = self.builder.build_window()
        if len(window) < SC.MIN_WINDOW_POINTS:
            logger.info(f"Only {len(window)} aligned points, not analyzing")
            return SessionOutcome(
                session_id=self.session_id,
                analyzed=False,
                message=NOT_ENOUGH_ALIGNED_MESSAGE,
                window=window,
                points=points,
            )

        analysis = self.analyzer.analyze(
            window,
            serial_number=serial,
            warmup_baseline_raw=self._warmup_baseline_raw,
            cloud_coefficients=cloud,
            sample_duration_sec=duration,
        )
        suspicious = is_sensor_suspicious(analysis)
        if suspicious:
            logger.warning(
                f"Sensor may be damaged: baseline={analysis.baseline_co:.1f}, "
                f"peak={analysis.peak_co:.1f}"
            )

        record = None
        device_id = (serial or self.serial_number or "").strip()
        if device_id:
            record = build_session_record(
                analysis,
                window,
                points,
                device_id=device_id,
                session_id=self.session_id,
                battery_percent=self.battery_percent,
            )
            if self.record_sink is not None:
                self.record_sink(record)

        return SessionOutcome(
            session_id=self.session_id,
            analyzed=True,
            message=format_summary(analysis),
            analysis=analysis,
            record=record,
            sensor_suspicious=suspicious,
            window=window,
            points=points,
        )
