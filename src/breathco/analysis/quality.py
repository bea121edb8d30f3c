"""Data-quality flags for a breath sample."""

from collections.abc import Sequence

import numpy as np

from breathco.analysis.types import BreathFlags
from breathco.constants import QualityConstants as QC


def sample_stddev(values: Sequence[float]) -> float:
    """Sample standard deviation (n - 1); 0.0 for fewer than two values."""
    if len(values) <= 1:
        return 0.0
    return float(np.std(np.asarray(values, dtype=float), ddof=1))


def unstable_baseline_threshold(pre_breath_mean: float) -> float:
    """Stddev limit: 5 raw units or 2% of the baseline, whichever is larger."""
    return max(
        QC.PRE_BREATH_STDDEV_MIN_ABS_RAW,
        QC.PRE_BREATH_STDDEV_REL * max(1.0, pre_breath_mean),
    )


def evaluate_flags(
    breath_duration_sec: int,
    temperature_rise_c: float,
    pre_breath_raw: Sequence[float],
) -> BreathFlags:
    """
    Compute short-duration, small-rise and unstable-baseline flags.

    Args:
        breath_duration_sec: Seconds from breath onset to window end
        temperature_rise_c: Peak minus baseline temperature
        pre_breath_raw: Raw CO samples preceding breath onset

    Returns:
        BreathFlags
    """
    unstable = False
    if len(pre_breath_raw) >= QC.MIN_PRE_BREATH_POINTS:
        mean = float(np.mean(np.asarray(pre_breath_raw, dtype=float)))
        unstable = sample_stddev(pre_breath_raw) > unstable_baseline_threshold(mean)

    return BreathFlags(
        short_duration=breath_duration_sec < QC.SHORT_DURATION_SEC,
        small_temperature_rise=temperature_rise_c < QC.SMALL_TEMPERATURE_RISE_C,
        unstable_baseline=unstable,
    )
