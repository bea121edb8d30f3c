"""
Per-device gas-fit calibration lookup.

Coefficients resolve with precedence cloud > per-device table > global
default. Cloud documents are fetched through a CalibrationProvider and held
in a CalibrationCache owned by the sampling coordinator.
"""

import logging
import threading

from collections.abc import Mapping
from typing import Any, Protocol

from breathco.analysis.types import CalibrationSource, GasFitCoefficients
from breathco.constants import GLOBAL_GAS_FIT, PER_DEVICE_GAS_FIT, SERIAL_PREFIX_LENGTH

logger = logging.getLogger(__name__)

GLOBAL_COEFFICIENTS = GasFitCoefficients(**GLOBAL_GAS_FIT)

LOCAL_COEFFICIENTS: Mapping[str, GasFitCoefficients] = {
    prefix: GasFitCoefficients(
        drift_raw_per_sec=drift,
        gain_raw_per_ppm=gain,
        tau_sec=tau,
        dead_sec=dead,
    )
    for prefix, (drift, gain, tau, dead) in PER_DEVICE_GAS_FIT.items()
}

REQUIRED_DOCUMENT_FIELDS = ("a_drift_raw_per_s", "G_raw_per_ppm", "tau_s", "dead_s")


def normalize_serial_prefix(serial: str | None) -> str | None:
    """
    Build the calibration lookup key for a device serial.

    Keeps alphanumeric characters, uppercases them and takes the first
    eight. Returns None when the result is not exactly eight characters.
    """
    if serial is None:
        return None
    cleaned = "".join(ch for ch in serial if ch.isalnum()).upper()
    prefix = cleaned[:SERIAL_PREFIX_LENGTH]
    return prefix if len(prefix) == SERIAL_PREFIX_LENGTH else None


def resolve_gas_fit_coefficients(
    serial_prefix: str | None,
    cloud: GasFitCoefficients | None = None,
) -> tuple[GasFitCoefficients, CalibrationSource]:
    """
    Pick gas-fit coefficients for a device.

    Args:
        serial_prefix: Normalized 8-character serial prefix (or None)
        cloud: Coefficients from the cloud calibration document, if any

    Returns:
        Tuple of (coefficients, source)
    """
    if cloud is not None:
        return cloud, CalibrationSource.CLOUD
    if serial_prefix is not None and serial_prefix in LOCAL_COEFFICIENTS:
        return LOCAL_COEFFICIENTS[serial_prefix], CalibrationSource.LOCAL
    return GLOBAL_COEFFICIENTS, CalibrationSource.GLOBAL


def parse_calibration_document(
    document: Mapping[str, Any] | None,
) -> GasFitCoefficients | None:
    """
    Convert a calibration document into coefficients.

    A document that is disabled, or missing any of the four kinetic fields,
    yields None. `enabled` defaults to true when absent.
    """
    if not document:
        return None
    if not bool(document.get("enabled", True)):
        return None

    values = [document.get(field) for field in REQUIRED_DOCUMENT_FIELDS]
    if any(v is None for v in values):
        return None

    try:
        drift, gain, tau, dead = (float(v) for v in values)
    except (TypeError, ValueError):
        logger.warning(f"Malformed calibration document: {dict(document)}")
        return None

    return GasFitCoefficients(
        drift_raw_per_sec=drift,
        gain_raw_per_ppm=gain,
        tau_sec=tau,
        dead_sec=dead,
    )


class CalibrationProvider(Protocol):
    """Source of per-device calibration (cloud document store)."""

    def get_device_calibration(self, serial_prefix: str) -> GasFitCoefficients | None:
        """Return coefficients for the prefix, or None if none are configured."""
        ...


class CalibrationCache:
    """
    Cache of resolved cloud calibrations keyed by serial prefix.

    A fetch for a prefix happens at most once at a time: the in-flight check
    and insert run under one lock, the provider call runs outside it.
    Successful lookups are cached, including "no calibration" (None).
    Provider failures are logged and leave the prefix uncached.

    Example:
        >>> cache = CalibrationCache(provider)
        >>> cache.ensure_fetched("f2e4-cb88-0001")
        >>> coeffs = cache.cached("f2e4-cb88-0001")
    """

    def __init__(self, provider: CalibrationProvider | None = None):
        self.provider = provider
        self._entries: dict[str, GasFitCoefficients | None] = {}
        self._in_flight: set[str] = set()
        self._lock = threading.Lock()

    def ensure_fetched(self, serial: str | None) -> bool:
        """
        Fetch calibration for a serial unless cached or already in flight.

        Args:
            serial: Device serial as reported by the sensor

        Returns:
            True if a fetch was performed by this call
        """
        prefix = normalize_serial_prefix(serial)
        if prefix is None or self.provider is None:
            return False

        with self._lock:
            if prefix in self._entries or prefix in self._in_flight:
                return False
            self._in_flight.add(prefix)

        try:
            coefficients = self.provider.get_device_calibration(prefix)
        except Exception as e:
            logger.warning(f"Calibration lookup failed for {prefix}: {e}")
            return True
        else:
            with self._lock:
                self._entries[prefix] = coefficients
            logger.info(
                f"Calibration for {prefix}: "
                f"{'cloud coefficients' if coefficients else 'none configured'}"
            )
            return True
        finally:
            with self._lock:
                self._in_flight.discard(prefix)

    def cached(self, serial: str | None) -> GasFitCoefficients | None:
        """Return cached cloud coefficients for a serial, if resolved."""
        prefix = normalize_serial_prefix(serial)
        if prefix is None:
            return None
        with self._lock:
            return self._entries.get(prefix)

    def is_resolved(self, serial: str | None) -> bool:
        """Whether a lookup for this serial has completed successfully."""
        prefix = normalize_serial_prefix(serial)
        if prefix is None:
            return False
        with self._lock:
            return prefix in self._entries

    def clear(self) -> None:
        """Drop all cached entries."""
        with self._lock:
            self._entries.clear()
