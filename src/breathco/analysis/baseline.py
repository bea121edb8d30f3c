"""
Baseline estimation, breath-onset detection and peak location.

The baseline is taken from the part of the window preceding the detected
breath onset. Short or pathological windows fall back through a fixed chain
(trimmed mean -> two-point mean -> warm-up baseline -> first samples) so a
baseline is always produced.
"""

import logging
import math

from collections.abc import Sequence

import numpy as np

from breathco.analysis.types import (
    AnalyzeCoefficients,
    BaselineEstimate,
    PeakEstimate,
    WindowPoint,
)
from breathco.constants import BaselineConstants as BC

logger = logging.getLogger(__name__)


def sort_window(window: Sequence[WindowPoint]) -> list[WindowPoint]:
    """
    Return the window ordered by timestamp.

    Raises:
        ValueError: If the window is empty
    """
    if not window:
        raise ValueError("window must not be empty")
    return sorted(window, key=lambda p: p.timestamp_ms)


def trimmed_mean(values: Sequence[float]) -> float:
    """
    Mean after dropping the lowest and highest 10% (at least one each side).

    Lists shorter than five values are averaged untrimmed. If trimming would
    remove everything the untrimmed mean is returned.

    Args:
        values: Raw values

    Returns:
        Trimmed mean, NaN for an empty list
    """
    if len(values) == 0:
        return math.nan

    arr = np.sort(np.asarray(values, dtype=float))
    if len(arr) < BC.MIN_TRIMMED_POINTS:
        return float(np.mean(arr))

    trim = max(1, int(len(arr) * BC.TRIM_FRACTION))
    trimmed = arr[trim : len(arr) - trim]
    if len(trimmed) == 0:
        trimmed = arr
    return float(np.mean(trimmed))


def find_breath_start(
    temperatures: np.ndarray, rise_threshold_c: float
) -> tuple[int, float]:
    """
    Locate breath onset as the first temperature at or above baseline + rise.

    Args:
        temperatures: Temperatures of the sorted window (°C)
        rise_threshold_c: Rise above the initial baseline that marks onset

    Returns:
        Tuple of (breath_start_index, initial_temp_baseline). The index is 0
        when no sample crosses the threshold.
    """
    initial_baseline = float(
        np.mean(temperatures[: BC.INITIAL_TEMP_BASELINE_MAX_POINTS])
    )
    threshold = initial_baseline + rise_threshold_c

    crossings = np.flatnonzero(temperatures >= threshold)
    start_index = int(crossings[0]) if len(crossings) > 0 else 0
    return start_index, initial_baseline


def _baseline_raw(
    pre_breath_raw: np.ndarray,
    window_raw: np.ndarray,
    warmup_baseline_raw: float | None,
) -> float:
    if len(pre_breath_raw) >= BC.MIN_TRIMMED_POINTS:
        return trimmed_mean(pre_breath_raw)
    if len(pre_breath_raw) >= BC.MIN_AVERAGED_POINTS:
        return float(np.mean(pre_breath_raw[: BC.MIN_AVERAGED_POINTS]))
    if warmup_baseline_raw is not None:
        return float(warmup_baseline_raw)
    if len(window_raw) >= BC.MIN_AVERAGED_POINTS:
        return float(np.mean(window_raw[: BC.MIN_AVERAGED_POINTS]))
    return float(window_raw[0])


def first_finite_voltage(window: Sequence[WindowPoint]) -> float | None:
    """Return the first non-null finite voltage in the window, if any."""
    for point in window:
        if point.voltage_v is not None and math.isfinite(point.voltage_v):
            return point.voltage_v
    return None


def estimate_baseline(
    window: Sequence[WindowPoint],
    coefficients: AnalyzeCoefficients,
    warmup_baseline_raw: float | None = None,
) -> BaselineEstimate:
    """
    Estimate pre-breath baseline raw CO, temperature and voltage.

    Args:
        window: Window sorted by timestamp (non-empty)
        coefficients: Analysis coefficients (onset rise threshold)
        warmup_baseline_raw: Raw baseline captured during device warm-up

    Returns:
        BaselineEstimate with onset index and baseline triple
    """
    raw = np.array([p.raw_co for p in window], dtype=float)
    temps = np.array([p.temperature_c for p in window], dtype=float)

    start_index, initial_temp = find_breath_start(
        temps, coefficients.breath_start_temp_rise_c
    )
    pre_raw = raw[:start_index]
    pre_temps = temps[:start_index]

    baseline_co = _baseline_raw(pre_raw, raw, warmup_baseline_raw)
    if not math.isfinite(baseline_co):
        logger.debug("Non-finite baseline raw, using first sample")
        baseline_co = float(raw[0])

    if len(pre_temps) >= BC.MIN_TRIMMED_POINTS:
        baseline_temp = float(np.mean(pre_temps))
    else:
        baseline_temp = initial_temp
    if not math.isfinite(baseline_temp):
        baseline_temp = float(temps[0])

    logger.debug(
        f"Breath onset at index {start_index}/{len(window)}, "
        f"baseline raw={baseline_co:.2f}, temp={baseline_temp:.2f}"
    )

    return BaselineEstimate(
        breath_start_index=start_index,
        initial_temp_baseline=initial_temp,
        pre_breath_count=start_index,
        baseline_co=baseline_co,
        baseline_temperature=baseline_temp,
        baseline_voltage=first_finite_voltage(window),
    )


def detect_peak(
    window: Sequence[WindowPoint],
    breath_start_index: int,
    baseline_voltage: float | None,
) -> PeakEstimate:
    """
    Find the maximum raw CO sample at or after breath onset.

    Falls back to the whole window when the post-onset slice is empty. The
    first sample wins on ties. Voltage is constant per breath, so the peak
    voltage equals the baseline voltage.
    """
    offset = breath_start_index if breath_start_index < len(window) else 0
    candidates = np.array([p.raw_co for p in window[offset:]], dtype=float)
    index = offset + int(np.argmax(candidates))
    peak = window[index]
    return PeakEstimate(
        index=index,
        peak_co=peak.raw_co,
        peak_temperature=peak.temperature_c,
        peak_voltage=baseline_voltage,
    )
