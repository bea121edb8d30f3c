"""
Constants and calibration tables for breath CO analysis.

Values mirror the firmware/hardware characterisation of the breath sensor
(CR2032 coin cell, resistive CO element, NTC temperature channel).
"""

from pathlib import Path
from typing import Final

# ============================================================================
# Analysis Algorithm Constants
# ============================================================================


class AnalyzeConstants:
    """Defaults for the breath analysis coefficients (analyzer.py)."""

    TEMPERATURE_SLOPE_RAW_PER_C = 0.80
    VOLTAGE_SLOPE_RAW_PER_V = 150.3  # kept for record compatibility; delta V is 0

    HUMAN_SLOPE_RAW_PER_PPM = 3.6
    HUMAN_INTERCEPT_RAW = 0.0

    BREATH_START_TEMP_RISE_C = 0.8
    HUMAN_PATH_TEMP_RISE_THRESHOLD_C = 2.0

    RAW_CO_MAX = 65535  # uint16 ADC range

    METHOD_TAG = "AnalyzeBreath_v2"


class BaselineConstants:
    """Constants for baseline and breath-onset estimation (baseline.py)."""

    INITIAL_TEMP_BASELINE_MAX_POINTS = 10
    MIN_TRIMMED_POINTS = 5
    MIN_AVERAGED_POINTS = 2
    TRIM_FRACTION = 0.1


class GasFitConstants:
    """Constants for the exponential gas-response fit (gas_fit.py)."""

    MIN_WINDOW_POINTS = 6
    FIT_WINDOW_SEC = 20.0
    DERIVATIVE_THRESHOLD_RAW_PER_SEC = 0.1
    MIN_DELTA_RAW = 1.0
    ANCHOR_SEED_POINTS = 2
    SMOOTHING_POINTS = 3
    MIN_DENOMINATOR = 1e-9


class QualityConstants:
    """Constants for data-quality flags (quality.py)."""

    SHORT_DURATION_SEC = 5
    SMALL_TEMPERATURE_RISE_C = 1.0
    MIN_PRE_BREATH_POINTS = 5
    PRE_BREATH_STDDEV_MIN_ABS_RAW = 5.0
    PRE_BREATH_STDDEV_REL = 0.02


class LegacyConstants:
    """Constants for the legacy duration-bucket fallback (legacy.py)."""

    DEFAULT_BUCKET_SEC = 30
    SAFE_SLOPE = 0.98
    SAFE_INTERCEPT = -1.8
    MIN_SLOPE = 1e-9


class SessionConstants:
    """Constants for the sampling session coordinator (session/sampling.py)."""

    MIN_CO_SAMPLES = 5
    MIN_WINDOW_POINTS = 5
    SENSOR_SUSPICIOUS_RAW = 200.0
    DEFAULT_SAMPLE_DURATION_SEC = 15


class WarmupConstants:
    """Constants for the per-connection warm-up lifecycle (device/warmup.py)."""

    WARMUP_DELAY_SECONDS = 20
    BASELINE_CAPTURE_DELAY_SECONDS = 7
    VOLTAGE_OFFSET_RAW = 4.67
    VOLTAGE_SCALE_RAW_PER_V = 150.30
    CELL_CAPACITY_MAH = 220.0


class BatteryConstants:
    """Constants for battery runtime estimates (device/battery.py)."""

    TYPICAL_RUNTIME_HOURS = 170.0
    RUNTIME_EFFECTIVENESS = 0.8
    LOW_BATTERY_PERCENT = 10


class TrendConstants:
    """Constants for breath CO trends (analysis/trends.py)."""

    TREND_DAYS = 7
    SMOKE_FREE_THRESHOLD_PPM = 3.0


# ============================================================================
# Calibration Tables
# ============================================================================

SERIAL_PREFIX_LENGTH: Final = 8

GLOBAL_GAS_FIT: Final = {
    "drift_raw_per_sec": 0.0,
    "gain_raw_per_ppm": 0.695,
    "tau_sec": 22.0,
    "dead_sec": 0.0,
}

# Per-device kinetic fits keyed by normalized serial prefix:
# (drift raw/s, gain raw/ppm, tau s, dead s)
PER_DEVICE_GAS_FIT: Final[dict[str, tuple[float, float, float, float]]] = {
    "6C8A4BC7": (-0.0227256, 0.798849, 34.25, 5.5),
    "D1A07CD4": (-0.0637795, 0.653858, 14.5, 1.4),
    "D92EC0CB": (-0.0401157, 0.724937, 19.5, 4.0),
    "F2E4CB88": (-0.0314408, 0.697511, 19.5, 3.3),
    "F685F16F": (-0.0333294, 0.692745, 24.5, 5.6),
}

# Linear chamber calibration keyed by sample duration: (slope, intercept)
LEGACY_GAS_BY_DURATION_SEC: Final[dict[int, tuple[float, float]]] = {
    5: (0.0406375, -0.0770252),
    10: (0.126693, -0.475432),
    15: (0.176892, -0.0411687),
    20: (0.241434, -0.339973),
    30: (0.305976, -0.638778),
    40: (0.349004, -0.837981),
    50: (0.370518, -0.937583),
    60: (0.370518, -0.937583),
}

# CR2032 discharge curve: (voltage, state-of-charge percent), highest first
CR2032_DISCHARGE_CURVE: Final[tuple[tuple[float, int], ...]] = (
    (3.00, 100),
    (2.95, 95),
    (2.90, 88),
    (2.85, 78),
    (2.80, 66),
    (2.75, 52),
    (2.70, 38),
    (2.65, 26),
    (2.60, 16),
    (2.55, 9),
    (2.50, 4),
    (2.45, 2),
    (2.40, 0),
)

# Display tiers: (minimum percent, tier)
BATTERY_BUCKETS: Final[tuple[tuple[int, int], ...]] = (
    (88, 100),
    (63, 75),
    (38, 50),
    (13, 25),
)

# ============================================================================
# Persistence Formats
# ============================================================================

ISO_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S"
SESSION_ID_FORMAT = "session-%Y-%m-%d-%H-%M-%S"
CSV_FILE_SUFFIX = "_BreathSample.csv"
CSV_FALLBACK_PREFIX = "BreathSample"

# ============================================================================
# Default Settings
# ============================================================================

DEFAULT_APP_DIR = Path.home() / ".breathco"
DEFAULT_DATABASE_PATH = str(DEFAULT_APP_DIR / "breathco.db")

# Logging configuration
DEFAULT_LOG_DIR = DEFAULT_APP_DIR / "logs"
DEFAULT_LOG_FILE = "breathco.log"
DEFAULT_LOG_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
DEFAULT_LOG_BACKUP_COUNT = 5

# CLI display defaults
DEFAULT_LIST_SESSIONS_LIMIT = 50

MILLISECONDS_PER_SECOND = 1000
