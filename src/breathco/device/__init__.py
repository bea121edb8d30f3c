"""Breath-sensor device utilities: payload decoding, battery, warm-up."""

from breathco.device.battery import (
    BatteryEstimate,
    battery_percent_from_raw,
    estimate_battery_percent,
    estimate_runtime,
    estimate_voltage_from_raw,
)
from breathco.device.warmup import BaselinePreparationState, WarmupTracker

__all__ = [
    "BaselinePreparationState",
    "BatteryEstimate",
    "WarmupTracker",
    "battery_percent_from_raw",
    "estimate_battery_percent",
    "estimate_runtime",
    "estimate_voltage_from_raw",
]
