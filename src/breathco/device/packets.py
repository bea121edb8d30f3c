"""
Decoding of breath-sensor characteristic payloads.

Only value-level decoding lives here; transport framing belongs to the
Bluetooth layer that hands these byte strings over.
"""

import logging
import struct

from breathco.constants import BatteryConstants as BTC

logger = logging.getLogger(__name__)

TEMPERATURE_SCALE = 100.0


def decode_temperature(payload: bytes | None) -> float | None:
    """Little-endian int16 centi-degrees to °C; None for short payloads."""
    if payload is None or len(payload) < 2:
        return None
    (centi,) = struct.unpack_from("<h", payload)
    return centi / TEMPERATURE_SCALE


def decode_co_raw(payload: bytes | None) -> float | None:
    """Big-endian uint16 raw ADC count; None for short payloads."""
    if payload is None or len(payload) < 2:
        return None
    (raw,) = struct.unpack_from(">H", payload)
    return float(raw)


def decode_battery_level(payload: bytes | None) -> int | None:
    """First byte of the battery level characteristic, clamped to 0..100."""
    if not payload:
        return None
    level = max(0, min(100, payload[0]))
    if level <= BTC.LOW_BATTERY_PERCENT:
        logger.warning(f"Low battery level reported by device: {level}%")
    return level


def decode_text(payload: bytes | None) -> str | None:
    """UTF-8 string characteristic (serial number, firmware revision)."""
    if payload is None:
        return None
    try:
        return payload.decode("utf-8").strip()
    except UnicodeDecodeError:
        logger.debug(f"Undecodable text payload: {payload!r}")
        return None
