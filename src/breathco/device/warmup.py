"""
Per-connection sensor warm-up lifecycle.

After a device connects the sensor needs a warm-up period before readings
are trustworthy. WarmupTracker counts it down one second per tick, then
waits a further capture delay and snapshots the live raw CO reading as the
warm-up baseline, from which the supply voltage and battery state are
derived.

The tracker is clock-agnostic: the connection layer calls tick() once per
second.
"""

import logging

from dataclasses import dataclass, replace

from breathco.constants import WarmupConstants as WC
from breathco.device.battery import (
    battery_capacity_mah,
    estimate_battery_percent,
    estimate_voltage_from_raw,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BaselinePreparationState:
    """Snapshot of the warm-up lifecycle; replaced, never mutated."""

    is_preparing_baseline: bool = False
    preparation_seconds_left: int = 0
    is_warmup_complete: bool = False
    baseline_raw_value: float | None = None
    baseline_temperature_c: float | None = None
    raw_battery_adc: float | None = None
    battery_voltage: float | None = None
    battery_capacity_mah: float | None = None
    calculated_battery_percent: int | None = None


class WarmupTracker:
    """
    Drives BaselinePreparationState through connect, countdown and capture.

    Example:
        >>> tracker = WarmupTracker()
        >>> tracker.on_connect()
        >>> tracker.update_live(co_raw=412.0, temperature_c=24.1)
        >>> for _ in range(27):
        ...     state = tracker.tick()
        >>> state.baseline_raw_value
        412.0
    """

    def __init__(
        self,
        warmup_seconds: int = WC.WARMUP_DELAY_SECONDS,
        capture_delay_seconds: int = WC.BASELINE_CAPTURE_DELAY_SECONDS,
    ):
        self.warmup_seconds = warmup_seconds
        self.capture_delay_seconds = capture_delay_seconds
        self.state = BaselinePreparationState()
        self._capture_countdown: int | None = None
        self._live_raw: float | None = None
        self._live_temperature: float | None = None

    def on_connect(self) -> BaselinePreparationState:
        """Start the warm-up countdown for a fresh connection."""
        self._capture_countdown = None
        self.state = replace(
            self.state,
            is_preparing_baseline=True,
            preparation_seconds_left=self.warmup_seconds,
            is_warmup_complete=False,
        )
        logger.info(f"Warm-up started ({self.warmup_seconds}s)")
        return self.state

    def on_disconnect(self) -> BaselinePreparationState:
        """Drop all warm-up progress and captured values."""
        self._capture_countdown = None
        self._live_raw = None
        self._live_temperature = None
        self.state = BaselinePreparationState()
        return self.state

    def update_live(
        self, co_raw: float | None = None, temperature_c: float | None = None
    ) -> None:
        """Record the latest live sensor readings."""
        if co_raw is not None:
            self._live_raw = co_raw
        if temperature_c is not None:
            self._live_temperature = temperature_c

    def tick(self) -> BaselinePreparationState:
        """Advance the lifecycle by one second."""
        if self.state.is_preparing_baseline:
            remaining = self.state.preparation_seconds_left - 1
            if remaining > 0:
                self.state = replace(self.state, preparation_seconds_left=remaining)
            else:
                self.state = replace(
                    self.state,
                    is_preparing_baseline=False,
                    preparation_seconds_left=0,
                    is_warmup_complete=True,
                )
                self._capture_countdown = self.capture_delay_seconds
                logger.info("Warm-up complete")
                if self._capture_countdown <= 0:
                    self._capture_countdown = None
                    self.capture_baseline()
        elif self._capture_countdown is not None:
            self._capture_countdown -= 1
            if self._capture_countdown <= 0:
                self._capture_countdown = None
                self.capture_baseline()
        return self.state

    def capture_baseline(self) -> BaselinePreparationState:
        """Snapshot the live raw reading as the warm-up baseline."""
        raw = self._live_raw
        if raw is None:
            logger.warning("No live CO reading at baseline capture, skipping")
            return self.state

        voltage = estimate_voltage_from_raw(raw)
        percent = estimate_battery_percent(voltage)
        self.state = replace(
            self.state,
            baseline_raw_value=raw,
            baseline_temperature_c=self._live_temperature,
            raw_battery_adc=raw,
            battery_voltage=voltage,
            battery_capacity_mah=battery_capacity_mah(percent),
            calculated_battery_percent=percent,
        )
        logger.info(
            f"Warm-up baseline captured: raw={raw:.1f}, "
            f"voltage={voltage:.3f}V, battery={percent}%"
        )
        return self.state
