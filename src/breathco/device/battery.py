"""
Coin-cell battery state estimation.

Converts a warm-up raw baseline into a supply voltage, the voltage into a
CR2032 state of charge, and a reported percentage into a runtime estimate.
"""

from pydantic import BaseModel, Field

from breathco.constants import BATTERY_BUCKETS, CR2032_DISCHARGE_CURVE
from breathco.constants import BatteryConstants as BTC
from breathco.constants import WarmupConstants as WC


class BatteryEstimate(BaseModel):
    """Remaining runtime and display tier for a reported battery percentage."""

    percent: int = Field(ge=0, le=100, description="Battery percent (clamped)")
    hours_remaining: float = Field(ge=0, description="Estimated runtime left (h)")
    bucket_percent: int = Field(description="Display tier (0/25/50/75/100)")


def estimate_voltage_from_raw(raw: float) -> float:
    """Supply voltage from a raw CO baseline: (raw + 4.67) / 150.30."""
    return (raw + WC.VOLTAGE_OFFSET_RAW) / WC.VOLTAGE_SCALE_RAW_PER_V


def estimate_battery_percent(voltage: float) -> int:
    """
    CR2032 state of charge by linear interpolation of the discharge curve.

    Voltages at or above the top of the curve read 100, at or below the
    bottom read 0. Interpolated values are truncated toward zero.

    Args:
        voltage: Cell voltage (V)

    Returns:
        Integer percent 0-100
    """
    top_voltage, top_percent = CR2032_DISCHARGE_CURVE[0]
    bottom_voltage, bottom_percent = CR2032_DISCHARGE_CURVE[-1]
    if voltage >= top_voltage:
        return top_percent
    if voltage <= bottom_voltage:
        return bottom_percent

    for (v_high, p_high), (v_low, p_low) in zip(
        CR2032_DISCHARGE_CURVE, CR2032_DISCHARGE_CURVE[1:]
    ):
        if v_low <= voltage <= v_high:
            ratio = (voltage - v_low) / (v_high - v_low)
            return max(0, min(100, int(p_low + (p_high - p_low) * ratio)))
    return 0


def battery_percent_from_raw(raw: float) -> int:
    """State of charge for a raw warm-up baseline."""
    return estimate_battery_percent(estimate_voltage_from_raw(raw))


def battery_capacity_mah(percent: int) -> float:
    """Remaining capacity of a 220 mAh cell at the given percent."""
    return WC.CELL_CAPACITY_MAH * (percent / 100.0)


def battery_bucket(percent: int) -> int:
    """Map a percentage to its 0/25/50/75/100 display tier."""
    for minimum, tier in BATTERY_BUCKETS:
        if percent >= minimum:
            return tier
    return 0


def estimate_runtime(percent: int | None) -> BatteryEstimate | None:
    """
    Estimate remaining runtime from a reported battery percentage.

    Assumes 170 h typical runtime at 80% effectiveness.

    Returns:
        BatteryEstimate, or None when no percentage is known
    """
    if percent is None:
        return None
    p = max(0, min(100, percent))
    hours = BTC.TYPICAL_RUNTIME_HOURS * BTC.RUNTIME_EFFECTIVENESS * (p / 100.0)
    return BatteryEstimate(percent=p, hours_remaining=hours, bucket_percent=battery_bucket(p))
