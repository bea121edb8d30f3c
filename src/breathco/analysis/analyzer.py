"""
Breath CO analysis engine.

This module orchestrates baseline estimation, peak detection, delta
compensation, calibration path selection and quality flagging to turn one
breath window into a BreathAnalysis.

Calibration paths are tried in order, first success wins:

1. HUMAN_BREATH - temperature rise above the human-path threshold
2. GAS_FIT - exponential gas-response fit with per-device kinetics
3. LEGACY_GAS_FALLBACK - nearest duration-bucket linear model (always succeeds)
"""

import logging

from collections.abc import Callable, Sequence
from dataclasses import dataclass

from breathco.analysis.baseline import detect_peak, estimate_baseline, sort_window
from breathco.analysis.calibration import (
    normalize_serial_prefix,
    resolve_gas_fit_coefficients,
)
from breathco.analysis.gas_fit import GasResponseFitter
from breathco.analysis.legacy import legacy_fallback
from breathco.analysis.quality import evaluate_flags
from breathco.analysis.types import (
    AnalyzeCoefficients,
    BreathAnalysis,
    CalibrationPath,
    CalibrationResult,
    CalibrationSource,
    GasFitCoefficients,
    WindowPoint,
)
from breathco.constants import MILLISECONDS_PER_SECOND

logger = logging.getLogger(__name__)

HUMAN_BREATH_MODE = "human_breath"
MIN_HUMAN_SLOPE = 1e-9


@dataclass(frozen=True)
class AnalysisContext:
    """Inputs shared by the calibration strategies for one window."""

    window: list[WindowPoint]
    coefficients: AnalyzeCoefficients
    delta_r_comp: float
    temperature_rise_c: float
    breath_duration_sec: int
    serial_prefix: str | None
    cloud_coefficients: GasFitCoefficients | None
    sample_duration_sec: int | None


CalibrationStrategy = Callable[[AnalysisContext], CalibrationResult | None]


def first_success(
    strategies: Sequence[CalibrationStrategy], context: AnalysisContext
) -> CalibrationResult | None:
    """Run strategies in order and return the first non-None result."""
    for strategy in strategies:
        result = strategy(context)
        if result is not None:
            return result
    return None


class BreathAnalyzer:
    """
    Converts a breath window into an estimated CO concentration.

    Stateless apart from its coefficients; safe to share between sessions.

    Example:
        >>> analyzer = BreathAnalyzer()
        >>> result = analyzer.analyze(window, serial_number="F2E4CB88-01")
        >>> print(f"{result.estimated_ppm:.2f} ppm via {result.calibration_path.value}")
    """

    def __init__(
        self,
        coefficients: AnalyzeCoefficients | None = None,
        fitter: GasResponseFitter | None = None,
    ):
        """
        Initialize the analyzer.

        Args:
            coefficients: Analysis coefficients (process defaults if None)
            fitter: Gas-response fitter (default instance if None)
        """
        self.coefficients = coefficients or AnalyzeCoefficients()
        self.fitter = fitter or GasResponseFitter()
        self.strategies: list[CalibrationStrategy] = [
            self._human_breath,
            self._gas_fit,
            self._legacy_fallback,
        ]

    def analyze(
        self,
        window: Sequence[WindowPoint],
        serial_number: str | None = None,
        warmup_baseline_raw: float | None = None,
        cloud_coefficients: GasFitCoefficients | None = None,
        sample_duration_sec: int | None = None,
        coefficients: AnalyzeCoefficients | None = None,
    ) -> BreathAnalysis:
        """
        Analyze one completed breath sample.

        Args:
            window: Synchronized samples (any order, at least one)
            serial_number: Device serial used for per-device calibration
            warmup_baseline_raw: Raw baseline captured during warm-up
            cloud_coefficients: Cloud calibration snapshotted at sampling start
            sample_duration_sec: Configured sampling duration for the legacy path
            coefficients: Per-call override of the analysis coefficients

        Returns:
            BreathAnalysis

        Raises:
            ValueError: If the window is empty
        """
        coeffs = coefficients or self.coefficients
        points = sort_window(window)

        baseline = estimate_baseline(points, coeffs, warmup_baseline_raw)
        peak = detect_peak(points, baseline.breath_start_index, baseline.baseline_voltage)

        temperature_rise = peak.peak_temperature - baseline.baseline_temperature
        delta_v = 0.0
        delta_r_comp = (
            (peak.peak_co - baseline.baseline_co)
            - coeffs.temperature_slope_raw_per_c * temperature_rise
            - coeffs.voltage_slope_raw_per_v * delta_v
        )

        start_ms = points[baseline.breath_start_index].timestamp_ms
        breath_duration_sec = (
            max(0, points[-1].timestamp_ms - start_ms) // MILLISECONDS_PER_SECOND
        )

        context = AnalysisContext(
            window=points,
            coefficients=coeffs,
            delta_r_comp=delta_r_comp,
            temperature_rise_c=temperature_rise,
            breath_duration_sec=breath_duration_sec,
            serial_prefix=normalize_serial_prefix(serial_number),
            cloud_coefficients=cloud_coefficients,
            sample_duration_sec=sample_duration_sec,
        )
        calibration = first_success(self.strategies, context)
        if calibration is None:
            # Unreachable with the legacy strategy last in the chain
            raise RuntimeError("No calibration strategy produced a result")

        pre_breath_raw = [p.raw_co for p in points[: baseline.breath_start_index]]
        flags = evaluate_flags(breath_duration_sec, temperature_rise, pre_breath_raw)

        logger.info(
            f"Breath analyzed: {calibration.ppm:.2f} ppm via {calibration.path.value} "
            f"({calibration.source.value}), dT={temperature_rise:.2f}C, "
            f"dR={delta_r_comp:.2f}"
        )

        return BreathAnalysis(
            estimated_ppm=calibration.ppm,
            delta_r_comp=delta_r_comp,
            breath_duration_sec=breath_duration_sec,
            temperature_rise_c=temperature_rise,
            baseline_co=baseline.baseline_co,
            baseline_temperature=baseline.baseline_temperature,
            baseline_voltage=baseline.baseline_voltage,
            peak_co=peak.peak_co,
            peak_temperature=peak.peak_temperature,
            peak_voltage=peak.peak_voltage,
            flags=flags,
            calibration_path=calibration.path,
            calibration_mode=calibration.mode,
            calibration_source=calibration.source,
            calibration_slope_raw_per_ppm=calibration.slope_raw_per_ppm,
            calibration_intercept=calibration.intercept,
            calibration_gain_raw_per_ppm=calibration.gain_raw_per_ppm,
            calibration_drift_raw_per_sec=calibration.drift_raw_per_sec,
            calibration_tau_sec=calibration.tau_sec,
            calibration_dead_sec=calibration.dead_sec,
            calibration_duration_bucket_sec=calibration.duration_bucket_sec,
        )

    # ========================================================================
    # Calibration Strategies
    # ========================================================================

    def _human_breath(self, context: AnalysisContext) -> CalibrationResult | None:
        coeffs = context.coefficients
        if not context.temperature_rise_c > coeffs.human_path_temp_rise_threshold_c:
            return None
        if abs(coeffs.human_slope_raw_per_ppm) <= MIN_HUMAN_SLOPE:
            logger.warning("Human-breath slope is ~0, skipping human path")
            return None

        ppm = max(
            0.0,
            (context.delta_r_comp - coeffs.human_intercept_raw)
            / coeffs.human_slope_raw_per_ppm,
        )
        return CalibrationResult(
            path=CalibrationPath.HUMAN_BREATH,
            mode=HUMAN_BREATH_MODE,
            source=CalibrationSource.HUMAN,
            ppm=ppm,
            slope_raw_per_ppm=coeffs.human_slope_raw_per_ppm,
            intercept=coeffs.human_intercept_raw,
        )

    def _gas_fit(self, context: AnalysisContext) -> CalibrationResult | None:
        gas_coeffs, source = resolve_gas_fit_coefficients(
            context.serial_prefix, context.cloud_coefficients
        )
        return self.fitter.fit(context.window, gas_coeffs, source)

    def _legacy_fallback(self, context: AnalysisContext) -> CalibrationResult | None:
        duration = (
            context.sample_duration_sec
            if context.sample_duration_sec is not None
            else context.breath_duration_sec
        )
        return legacy_fallback(context.delta_r_comp, duration)


def analyze_breath(
    window: Sequence[WindowPoint],
    serial_number: str | None = None,
    warmup_baseline_raw: float | None = None,
    cloud_coefficients: GasFitCoefficients | None = None,
    sample_duration_sec: int | None = None,
    coefficients: AnalyzeCoefficients | None = None,
) -> BreathAnalysis:
    """Analyze a breath window with a default BreathAnalyzer."""
    return BreathAnalyzer(coefficients).analyze(
        window,
        serial_number=serial_number,
        warmup_baseline_raw=warmup_baseline_raw,
        cloud_coefficients=cloud_coefficients,
        sample_duration_sec=sample_duration_sec,
    )
