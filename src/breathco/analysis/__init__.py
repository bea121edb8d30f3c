"""Breath CO analysis: window assembly, baseline, calibration paths, trends."""

from breathco.analysis.analyzer import BreathAnalyzer, analyze_breath
from breathco.analysis.calibration import (
    CalibrationCache,
    CalibrationProvider,
    normalize_serial_prefix,
    parse_calibration_document,
    resolve_gas_fit_coefficients,
)
from breathco.analysis.stream import SampleStreamBuilder, nearest_sample_value
from breathco.analysis.trends import TrendsResult, compute_trends
from breathco.analysis.types import (
    AnalyzeCoefficients,
    BreathAnalysis,
    BreathFlags,
    CalibrationPath,
    CalibrationSource,
    GasFitCoefficients,
    LegacyGasCoefficients,
    WindowPoint,
)

__all__ = [
    "AnalyzeCoefficients",
    "BreathAnalysis",
    "BreathAnalyzer",
    "BreathFlags",
    "CalibrationCache",
    "CalibrationPath",
    "CalibrationProvider",
    "CalibrationSource",
    "GasFitCoefficients",
    "LegacyGasCoefficients",
    "SampleStreamBuilder",
    "TrendsResult",
    "WindowPoint",
    "analyze_breath",
    "compute_trends",
    "nearest_sample_value",
    "normalize_serial_prefix",
    "parse_calibration_document",
    "resolve_gas_fit_coefficients",
]
