"""
Exponential gas-response curve fitting.

The sensor's response to a step in CO concentration is modelled as a
first-order rise after a dead time:

    delta(t) = A * (1 - exp(-(t - start - dead) / tau))

With the gain, time constant and dead time known from calibration, only the
amplitude A is fitted, by single-parameter least squares against the fixed
basis function. The concentration is then A / gain.
"""

import logging
import math

from collections.abc import Sequence

import numpy as np

from scipy.ndimage import uniform_filter1d

from breathco.analysis.types import (
    CalibrationPath,
    CalibrationResult,
    CalibrationSource,
    GasFitCoefficients,
    WindowPoint,
)
from breathco.constants import MILLISECONDS_PER_SECOND
from breathco.constants import GasFitConstants as GFC

logger = logging.getLogger(__name__)

GAS_FIT_MODE = "gas_fit_20s"


def baseline_anchor(raw: np.ndarray, times: np.ndarray) -> tuple[float, float] | None:
    """
    Anchor the drift line on the first samples.

    Returns:
        Tuple of (b0, t0): the mean of the first two raw values and the
        midpoint of their times (first sample alone if only one exists),
        or None for empty or mismatched input
    """
    if len(raw) == 0 or len(raw) != len(times):
        return None
    seed = min(GFC.ANCHOR_SEED_POINTS, len(raw))
    b0 = float(np.mean(raw[:seed]))
    t0 = float((times[0] + times[1]) / 2.0) if seed >= 2 else float(times[0])
    return b0, t0


def drift_corrected_delta(
    raw: np.ndarray, times: np.ndarray, b0: float, t0: float, drift_raw_per_sec: float
) -> np.ndarray:
    """Subtract the linear drift baseline b0 + drift*(t - t0) from every sample."""
    return raw - (b0 + drift_raw_per_sec * (times - t0))


def smooth_delta(delta: np.ndarray) -> np.ndarray:
    """3-point centred moving average; the two end samples stay unsmoothed."""
    smoothed = delta.astype(float, copy=True)
    if len(delta) >= GFC.SMOOTHING_POINTS:
        smoothed = uniform_filter1d(smoothed, size=GFC.SMOOTHING_POINTS)
        smoothed[0] = delta[0]
        smoothed[-1] = delta[-1]
    return smoothed


def detect_response_onset(times: np.ndarray, delta: np.ndarray) -> int | None:
    """
    Find the first sample where the gas response starts rising.

    A sample qualifies when the derivative of the smoothed delta reaches
    0.1 raw/s and its unsmoothed delta is at least 1 raw unit. Steps with
    non-increasing time are ignored.

    Returns:
        Index of the onset sample, or None if the signal never rises
    """
    if len(times) != len(delta) or len(times) <= 1:
        return None

    smoothed = smooth_delta(delta)
    dt = np.diff(times)
    valid = dt > 0
    derivative = np.divide(
        np.diff(smoothed), dt, out=np.zeros(len(dt), dtype=float), where=valid
    )
    hits = np.flatnonzero(
        valid
        & (derivative >= GFC.DERIVATIVE_THRESHOLD_RAW_PER_SEC)
        & (delta[1:] >= GFC.MIN_DELTA_RAW)
    )
    if len(hits) == 0:
        return None
    return int(hits[0]) + 1


def fit_amplitude(
    times: np.ndarray,
    delta: np.ndarray,
    start_sec: float,
    tau_sec: float,
    dead_sec: float,
) -> float | None:
    """
    Least-squares amplitude of the exponential rise over the fit window.

    Uses samples with 0 <= t - start_sec <= 20 s. The basis is
    f = 1 - exp(-max(0, u - dead) / tau) and A = sum(delta*f) / sum(f^2).

    Returns:
        Fitted amplitude (raw units), or None when the basis is degenerate
    """
    if len(times) != len(delta) or len(times) == 0 or tau_sec <= 0.0:
        return None

    u = times - start_sec
    in_window = (u >= 0.0) & (u <= GFC.FIT_WINDOW_SEC)
    effective = np.maximum(0.0, u[in_window] - max(0.0, dead_sec))
    basis = np.where(effective > 0.0, 1.0 - np.exp(-effective / tau_sec), 0.0)

    denominator = float(np.sum(basis * basis))
    if denominator <= GFC.MIN_DENOMINATOR:
        return None

    amplitude = float(np.sum(delta[in_window] * basis)) / denominator
    if not math.isfinite(amplitude):
        return None
    return amplitude


class GasResponseFitter:
    """
    Fits the gas-response amplitude of a breath window.

    Example:
        >>> fitter = GasResponseFitter()
        >>> result = fitter.fit(window, coefficients, CalibrationSource.GLOBAL)
        >>> if result is not None:
        ...     print(f"{result.ppm:.1f} ppm")
    """

    def fit(
        self,
        window: Sequence[WindowPoint],
        coefficients: GasFitCoefficients,
        source: CalibrationSource,
    ) -> CalibrationResult | None:
        """
        Estimate ppm from a sorted window with the given kinetic coefficients.

        Args:
            window: Window sorted by timestamp
            coefficients: Resolved gas-fit coefficients
            source: Where the coefficients came from

        Returns:
            GAS_FIT CalibrationResult, or None if the fit is not applicable
        """
        if (
            len(window) < GFC.MIN_WINDOW_POINTS
            or coefficients.gain_raw_per_ppm <= 0.0
            or coefficients.tau_sec <= 0.0
        ):
            logger.debug(
                f"Gas fit not applicable: {len(window)} points, "
                f"gain={coefficients.gain_raw_per_ppm}, tau={coefficients.tau_sec}"
            )
            return None

        first_ms = window[0].timestamp_ms
        times = np.array(
            [(p.timestamp_ms - first_ms) / MILLISECONDS_PER_SECOND for p in window],
            dtype=float,
        )
        raw = np.array([p.raw_co for p in window], dtype=float)

        anchor = baseline_anchor(raw, times)
        if anchor is None:
            return None
        b0, t0 = anchor

        delta = drift_corrected_delta(raw, times, b0, t0, coefficients.drift_raw_per_sec)
        onset = detect_response_onset(times, delta)
        start_sec = float(times[onset]) if onset is not None else float(times[0])

        amplitude = fit_amplitude(
            times, delta, start_sec, coefficients.tau_sec, coefficients.dead_sec
        )
        if amplitude is None:
            logger.debug("Gas fit denominator degenerate, no result")
            return None

        ppm = max(0.0, amplitude / coefficients.gain_raw_per_ppm)
        logger.debug(
            f"Gas fit ({source.value}): onset={start_sec:.1f}s, "
            f"amplitude={amplitude:.3f} raw, ppm={ppm:.2f}"
        )

        return CalibrationResult(
            path=CalibrationPath.GAS_FIT,
            mode=GAS_FIT_MODE,
            source=source,
            ppm=ppm,
            gain_raw_per_ppm=coefficients.gain_raw_per_ppm,
            drift_raw_per_sec=coefficients.drift_raw_per_sec,
            tau_sec=coefficients.tau_sec,
            dead_sec=coefficients.dead_sec,
        )
