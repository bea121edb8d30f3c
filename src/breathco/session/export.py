"""
CSV export of sampled breath data and CSV import of analysis windows.

Export layout:

    DeviceSerial,<serial>
    Index,Temperature,Humidity,CO
    1,24.00,0,501.00
    ...

Windows for offline analysis are read from CSV files with the header
timestamp_ms,co_raw,temperature_c and an optional voltage_v column.
"""

import csv
import logging

from collections.abc import Sequence
from pathlib import Path
from typing import TextIO

from breathco.analysis.stream import BreathSamplePoint
from breathco.analysis.types import WindowPoint
from breathco.constants import CSV_FALLBACK_PREFIX, CSV_FILE_SUFFIX, SERIAL_PREFIX_LENGTH

logger = logging.getLogger(__name__)

EXPORT_HEADER = ["Index", "Temperature", "Humidity", "CO"]
WINDOW_COLUMNS = ("timestamp_ms", "co_raw", "temperature_c")
WINDOW_VOLTAGE_COLUMN = "voltage_v"


def _format_value(value: float | None) -> str:
    return f"{value:.2f}" if value is not None else "0"


def export_file_name(serial: str | None) -> str:
    """<8-char serial prefix>_BreathSample.csv, or a generic name."""
    cleaned = "".join(ch for ch in (serial or "") if ch.isalnum()).upper()
    prefix = (
        cleaned[:SERIAL_PREFIX_LENGTH]
        if len(cleaned) >= SERIAL_PREFIX_LENGTH
        else CSV_FALLBACK_PREFIX
    )
    return f"{prefix}{CSV_FILE_SUFFIX}"


def write_samples_csv(
    stream: TextIO, points: Sequence[BreathSamplePoint], serial: str | None
) -> None:
    """Write the sample series to an open text stream."""
    writer = csv.writer(stream, lineterminator="\n")
    writer.writerow(["DeviceSerial", serial or ""])
    writer.writerow(EXPORT_HEADER)
    for index, point in enumerate(points, start=1):
        writer.writerow(
            [
                index,
                _format_value(point.temperature_c),
                _format_value(None),
                _format_value(point.co_raw),
            ]
        )


def export_samples_csv(
    points: Sequence[BreathSamplePoint], serial: str | None, directory: Path
) -> Path:
    """
    Export the sample series into `directory`.

    Returns:
        Path of the written file
    """
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / export_file_name(serial)
    with open(path, "w", encoding="utf-8", newline="") as f:
        write_samples_csv(f, points, serial)
    logger.info(f"Exported {len(points)} samples to {path}")
    return path


def read_window_csv(path: Path) -> list[WindowPoint]:
    """
    Load an analysis window from CSV.

    Raises:
        ValueError: If required columns are missing or a value is malformed
    """
    with open(path, encoding="utf-8", newline="") as f:
        reader = csv.DictReader(f)
        fields = reader.fieldnames or []
        missing = [c for c in WINDOW_COLUMNS if c not in fields]
        if missing:
            raise ValueError(f"{path}: missing columns {', '.join(missing)}")

        window = []
        for line_number, row in enumerate(reader, start=2):
            try:
                voltage = row.get(WINDOW_VOLTAGE_COLUMN) or None
                window.append(
                    WindowPoint(
                        timestamp_ms=int(row["timestamp_ms"]),
                        raw_co=float(row["co_raw"]),
                        temperature_c=float(row["temperature_c"]),
                        voltage_v=float(voltage) if voltage is not None else None,
                    )
                )
            except (TypeError, ValueError) as e:
                raise ValueError(f"{path}:{line_number}: invalid row: {e}") from e

    logger.debug(f"Read {len(window)} window points from {path}")
    return window
