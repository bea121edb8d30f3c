"""
Assembly of breath windows from asynchronous sensor updates.

CO and temperature arrive on separate characteristics at their own rates.
The builder keeps each channel's timed samples and aligns every CO sample
with the temperature sample nearest to it in time.
"""

import logging

from collections.abc import Sequence
from dataclasses import dataclass

from breathco.analysis.types import WindowPoint
from breathco.device.battery import estimate_voltage_from_raw

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TimedSample:
    timestamp_ms: int
    value: float


@dataclass(frozen=True)
class BreathSamplePoint:
    """One recorded CO update as shown to the user and persisted."""

    timestamp_ms: int
    co_raw: float | None
    temperature_c: float | None
    voltage_v: float | None
    battery_percent: int | None


def nearest_sample_value(samples: Sequence[TimedSample], target_ms: int) -> float | None:
    """
    Value of the sample closest in time to target_ms.

    The earliest sample wins on ties. Returns None for an empty sequence.
    """
    if not samples:
        return None
    best = samples[0]
    best_delta = abs(best.timestamp_ms - target_ms)
    for candidate in samples[1:]:
        delta = abs(candidate.timestamp_ms - target_ms)
        if delta < best_delta:
            best = candidate
            best_delta = delta
    return best.value


def session_voltage(
    warmup_battery_voltage: float | None, warmup_baseline_raw: float | None
) -> float | None:
    """Fixed supply voltage for a session, from warm-up data if available."""
    if warmup_battery_voltage is not None:
        return warmup_battery_voltage
    if warmup_baseline_raw is not None:
        return estimate_voltage_from_raw(warmup_baseline_raw)
    return None


def dedupe_by_timestamp(window: Sequence[WindowPoint]) -> list[WindowPoint]:
    """Sort by timestamp and keep the first point seen for each timestamp."""
    seen: set[int] = set()
    result = []
    for point in sorted(window, key=lambda p: p.timestamp_ms):
        if point.timestamp_ms in seen:
            continue
        seen.add(point.timestamp_ms)
        result.append(point)
    return result


class SampleStreamBuilder:
    """
    Collects CO and temperature updates for one sampling session.

    Repeated updates carrying the same timestamp as the previous update on
    that channel are ignored.

    Example:
        >>> builder = SampleStreamBuilder(fixed_voltage=2.95)
        >>> builder.record_temperature(1000, 24.0)
        >>> builder.record_co(1010, 501.0)
        >>> window = builder.build_window()
    """

    def __init__(self, fixed_voltage: float | None = None):
        self.fixed_voltage = fixed_voltage
        self.co_samples: list[TimedSample] = []
        self.temperature_samples: list[TimedSample] = []
        self.points: list[BreathSamplePoint] = []
        self._last_co_ms: int | None = None
        self._last_temperature_ms: int | None = None

    def reset(self, fixed_voltage: float | None = None) -> None:
        """Clear all collected samples for a new session."""
        self.fixed_voltage = fixed_voltage
        self.co_samples = []
        self.temperature_samples = []
        self.points = []
        self._last_co_ms = None
        self._last_temperature_ms = None

    def record_temperature(self, timestamp_ms: int, temperature_c: float | None) -> bool:
        """Record a temperature update. Returns True if it was kept."""
        if temperature_c is None or timestamp_ms == self._last_temperature_ms:
            return False
        self.temperature_samples.append(TimedSample(timestamp_ms, temperature_c))
        self._last_temperature_ms = timestamp_ms
        return True

    def record_co(
        self,
        timestamp_ms: int,
        co_raw: float | None,
        live_temperature_c: float | None = None,
        battery_percent: int | None = None,
    ) -> BreathSamplePoint | None:
        """
        Record a CO update and its display point.

        The display point carries the nearest recorded temperature, or the
        live temperature when none has been recorded yet.

        Returns:
            The new BreathSamplePoint, or None if the update was ignored
        """
        if co_raw is None or timestamp_ms == self._last_co_ms:
            return None
        self.co_samples.append(TimedSample(timestamp_ms, co_raw))
        self._last_co_ms = timestamp_ms

        temperature = nearest_sample_value(self.temperature_samples, timestamp_ms)
        point = BreathSamplePoint(
            timestamp_ms=timestamp_ms,
            co_raw=co_raw,
            temperature_c=temperature if temperature is not None else live_temperature_c,
            voltage_v=self.fixed_voltage,
            battery_percent=battery_percent,
        )
        self.points.append(point)
        return point

    def build_window(self) -> list[WindowPoint]:
        """
        Align every CO sample with its nearest temperature.

        CO samples without any temperature are dropped. The window is sorted
        and free of duplicate timestamps.
        """
        window = []
        for sample in self.co_samples:
            temperature = nearest_sample_value(self.temperature_samples, sample.timestamp_ms)
            if temperature is None:
                continue
            window.append(
                WindowPoint(
                    timestamp_ms=sample.timestamp_ms,
                    raw_co=sample.value,
                    temperature_c=temperature,
                    voltage_v=self.fixed_voltage,
                )
            )
        deduped = dedupe_by_timestamp(window)
        if len(deduped) != len(window):
            logger.debug(f"Dropped {len(window) - len(deduped)} duplicate timestamps")
        return deduped
