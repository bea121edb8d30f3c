"""Legacy duration-bucket calibration fallback."""

import logging

from collections.abc import Mapping

from breathco.analysis.types import (
    CalibrationPath,
    CalibrationResult,
    CalibrationSource,
    LegacyGasCoefficients,
)
from breathco.constants import LEGACY_GAS_BY_DURATION_SEC
from breathco.constants import LegacyConstants as LC

logger = logging.getLogger(__name__)

LEGACY_MODE = "calibration_gas"

LEGACY_COEFFICIENTS: Mapping[int, LegacyGasCoefficients] = {
    duration: LegacyGasCoefficients(slope=slope, intercept=intercept)
    for duration, (slope, intercept) in LEGACY_GAS_BY_DURATION_SEC.items()
}

SAFE_COEFFICIENTS = LegacyGasCoefficients(
    slope=LC.SAFE_SLOPE, intercept=LC.SAFE_INTERCEPT
)


def nearest_duration_bucket(
    duration_sec: float,
    table: Mapping[int, LegacyGasCoefficients] = LEGACY_COEFFICIENTS,
) -> int:
    """
    Pick the canonical duration closest to the sample duration.

    The shorter bucket wins on ties. An empty table yields the 30 s default.
    """
    if not table:
        return LC.DEFAULT_BUCKET_SEC
    return min(sorted(table), key=lambda bucket: abs(bucket - duration_sec))


def legacy_fallback(
    delta_r_comp: float,
    duration_sec: float,
    table: Mapping[int, LegacyGasCoefficients] = LEGACY_COEFFICIENTS,
) -> CalibrationResult:
    """
    Estimate ppm with the linear model of the nearest duration bucket.

    Always produces a result: a slope of (numerically) zero is replaced by
    the safe default pair.

    Args:
        delta_r_comp: Compensated raw delta
        duration_sec: Requested or measured sample duration (s)
        table: Duration -> coefficients table

    Returns:
        LEGACY_GAS_FALLBACK CalibrationResult
    """
    bucket = nearest_duration_bucket(duration_sec, table)
    coefficients = table.get(bucket, SAFE_COEFFICIENTS)

    effective = coefficients
    if abs(coefficients.slope) <= LC.MIN_SLOPE:
        logger.warning(f"Legacy slope for {bucket}s bucket is ~0, using safe default")
        effective = SAFE_COEFFICIENTS

    ppm = max(0.0, (delta_r_comp - effective.intercept) / effective.slope)
    logger.debug(f"Legacy fallback: bucket={bucket}s, ppm={ppm:.2f}")

    return CalibrationResult(
        path=CalibrationPath.LEGACY_GAS_FALLBACK,
        mode=LEGACY_MODE,
        source=CalibrationSource.LEGACY_DURATION_BUCKET,
        ppm=ppm,
        slope_raw_per_ppm=coefficients.slope,
        intercept=coefficients.intercept,
        duration_bucket_sec=bucket,
    )
