"""Breath analysis type definitions."""

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from breathco.constants import AnalyzeConstants as AC

# ============================================================================
# Input Types
# ============================================================================


class WindowPoint(BaseModel):
    """
    One synchronized sample of a breath window.

    Attributes:
        timestamp_ms: Monotonic timestamp (milliseconds)
        raw_co: CO sensor reading (ADC units, uint16 range)
        temperature_c: Temperature (°C) aligned to the CO reading
        voltage_v: Supply voltage, constant within one breath window

    Non-finite values and raw readings outside the uint16 range are rejected.
    """

    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    timestamp_ms: int = Field(description="Sample timestamp (ms)")
    raw_co: float = Field(ge=0, le=AC.RAW_CO_MAX, description="Raw CO reading (ADC units)")
    temperature_c: float = Field(description="Temperature (°C)")
    voltage_v: float | None = Field(default=None, description="Supply voltage (V)")


class AnalyzeCoefficients(BaseModel):
    """
    Tunable constants of the breath analysis.

    Process-wide defaults come from AnalyzeConstants; a caller may pass an
    overridden instance per analysis call.
    """

    model_config = ConfigDict(frozen=True)

    temperature_slope_raw_per_c: float = Field(
        default=AC.TEMPERATURE_SLOPE_RAW_PER_C,
        description="Temperature compensation slope (raw/°C)",
    )
    voltage_slope_raw_per_v: float = Field(
        default=AC.VOLTAGE_SLOPE_RAW_PER_V,
        description="Voltage compensation slope (raw/V)",
    )
    human_slope_raw_per_ppm: float = Field(
        default=AC.HUMAN_SLOPE_RAW_PER_PPM,
        description="Human-breath response slope (raw/ppm)",
    )
    human_intercept_raw: float = Field(
        default=AC.HUMAN_INTERCEPT_RAW, description="Human-breath intercept (raw)"
    )
    breath_start_temp_rise_c: float = Field(
        default=AC.BREATH_START_TEMP_RISE_C,
        description="Temperature rise marking breath onset (°C)",
    )
    human_path_temp_rise_threshold_c: float = Field(
        default=AC.HUMAN_PATH_TEMP_RISE_THRESHOLD_C,
        description="Temperature rise selecting the human-breath path (°C)",
    )


class GasFitCoefficients(BaseModel):
    """
    Per-device kinetic model of the sensor's gas step response.

    Attributes:
        drift_raw_per_sec: Linear baseline creep (raw/s)
        gain_raw_per_ppm: Response amplitude per ppm (raw/ppm)
        tau_sec: First-order time constant (s)
        dead_sec: Dead time before the response begins (s)
    """

    model_config = ConfigDict(frozen=True)

    drift_raw_per_sec: float = Field(description="Baseline drift (raw/s)")
    gain_raw_per_ppm: float = Field(description="Response gain (raw/ppm)")
    tau_sec: float = Field(description="Exponential time constant (s)")
    dead_sec: float = Field(description="Dead time (s)")


class LegacyGasCoefficients(BaseModel):
    """Linear chamber calibration for one canonical sample duration."""

    model_config = ConfigDict(frozen=True)

    slope: float = Field(description="Slope (raw/ppm)")
    intercept: float = Field(description="Intercept (raw)")


# ============================================================================
# Output Types
# ============================================================================


class CalibrationPath(str, Enum):
    """ppm estimation strategy taken for a breath sample."""

    HUMAN_BREATH = "HUMAN_BREATH"
    GAS_FIT = "GAS_FIT"
    LEGACY_GAS_FALLBACK = "LEGACY_GAS_FALLBACK"


class CalibrationSource(str, Enum):
    """Provenance of the coefficients used for the ppm estimate."""

    HUMAN = "human"
    CLOUD = "cloud"
    LOCAL = "local"
    GLOBAL = "global"
    LEGACY_DURATION_BUCKET = "legacy_duration_bucket"


class BreathFlags(BaseModel):
    """Data-quality flags for a breath sample."""

    model_config = ConfigDict(frozen=True)

    short_duration: bool = Field(description="Breath shorter than 5 s")
    small_temperature_rise: bool = Field(description="Temperature rise below 1 °C")
    unstable_baseline: bool = Field(description="Noisy pre-breath baseline")

    def as_record(self) -> dict[str, bool]:
        """Return flags keyed the way session records store them."""
        return {
            "shortDuration": self.short_duration,
            "smallTemperatureRise": self.small_temperature_rise,
            "unstableBaseline": self.unstable_baseline,
        }


class BreathAnalysis(BaseModel):
    """
    Result of analyzing one completed breath sample.

    Constructed once per sampling session and never modified afterwards.
    Calibration fields that do not apply to the chosen path are None.
    """

    model_config = ConfigDict(frozen=True)

    estimated_ppm: float = Field(ge=0, description="Estimated CO (ppm)")
    delta_r_comp: float = Field(description="Compensated raw delta (raw)")
    breath_duration_sec: int = Field(ge=0, description="Breath duration (s)")
    temperature_rise_c: float = Field(description="Peak minus baseline temp (°C)")

    baseline_co: float = Field(description="Baseline raw CO")
    baseline_temperature: float = Field(description="Baseline temperature (°C)")
    baseline_voltage: float | None = Field(description="Baseline voltage (V)")
    peak_co: float = Field(description="Peak raw CO")
    peak_temperature: float = Field(description="Temperature at peak (°C)")
    peak_voltage: float | None = Field(description="Voltage at peak (V)")

    flags: BreathFlags = Field(description="Data-quality flags")
    method: str = Field(default=AC.METHOD_TAG, description="Algorithm revision tag")

    calibration_path: CalibrationPath = Field(description="Strategy taken")
    calibration_mode: str = Field(description="Calibration mode label")
    calibration_source: CalibrationSource = Field(description="Coefficient source")
    calibration_slope_raw_per_ppm: float | None = None
    calibration_intercept: float | None = None
    calibration_gain_raw_per_ppm: float | None = None
    calibration_drift_raw_per_sec: float | None = None
    calibration_tau_sec: float | None = None
    calibration_dead_sec: float | None = None
    calibration_duration_bucket_sec: int | None = None


# ============================================================================
# Intermediate Results
# ============================================================================


@dataclass(frozen=True)
class BaselineEstimate:
    """Pre-breath baseline and onset location for a sorted window."""

    breath_start_index: int
    initial_temp_baseline: float
    pre_breath_count: int
    baseline_co: float
    baseline_temperature: float
    baseline_voltage: float | None


@dataclass(frozen=True)
class PeakEstimate:
    """Peak CO sample located at or after breath onset."""

    index: int
    peak_co: float
    peak_temperature: float
    peak_voltage: float | None


@dataclass(frozen=True)
class CalibrationResult:
    """ppm estimate produced by one calibration strategy."""

    path: CalibrationPath
    mode: str
    source: CalibrationSource
    ppm: float
    slope_raw_per_ppm: float | None = None
    intercept: float | None = None
    gain_raw_per_ppm: float | None = None
    drift_raw_per_sec: float | None = None
    tau_sec: float | None = None
    dead_sec: float | None = None
    duration_bucket_sec: int | None = None
