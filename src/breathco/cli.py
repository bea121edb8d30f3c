"""
Command-line interface for breathco.

Provides commands for analyzing breath windows, inspecting stored sessions
and trends, managing device calibrations, configuration and the database.
"""

import json
import logging
import os

from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version
from pathlib import Path

import click

from breathco.analysis.analyzer import BreathAnalyzer
from breathco.analysis.calibration import (
    CalibrationCache,
    normalize_serial_prefix,
    resolve_gas_fit_coefficients,
)
from breathco.analysis.stream import BreathSamplePoint
from breathco.analysis.trends import compute_trends
from breathco.analysis.types import BreathAnalysis
from breathco.config import (
    get_analyze_coefficients,
    get_config_path,
    get_database_path,
    load_config,
    parse_config_value,
    set_config_value,
    unset_config_value,
)
from breathco.constants import DEFAULT_LIST_SESSIONS_LIMIT
from breathco.database.repository import CalibrationRepository, SessionRepository
from breathco.database.session import init_database
from breathco.device.battery import (
    battery_percent_from_raw,
    estimate_battery_percent,
    estimate_runtime,
    estimate_voltage_from_raw,
)
from breathco.logging_config import setup_logging
from breathco.session.export import read_window_csv
from breathco.session.records import build_session_record
from breathco.session.sampling import format_summary, is_sensor_suspicious

logger = logging.getLogger(__name__)

try:
    __version__ = get_version("breathco")
except PackageNotFoundError:
    __version__ = "dev"


def _init_db(db: str | None) -> str:
    """Initialize the database from --db or configuration; return its path."""
    db_path = str(Path(db)) if db else get_database_path()
    try:
        init_database(db_path)
    except (PermissionError, ValueError) as e:
        raise click.ClickException(str(e)) from e
    return db_path


def version_callback(ctx: click.Context, param: click.Parameter, value: bool) -> None:
    """Show version."""
    if not value or ctx.resilient_parsing:
        return
    click.echo(f"breathco, version {__version__}")
    ctx.exit()


@click.group()
@click.option(
    "--version",
    is_flag=True,
    callback=version_callback,
    expose_value=False,
    is_eager=True,
    help="Show version",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
def cli(verbose: bool) -> None:
    """breathco: breath CO analysis tool"""
    setup_logging(verbose=verbose, console_format="%(levelname)s: %(message)s")


# ============================================================================
# Analysis
# ============================================================================


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--serial", help="Device serial number (selects calibration)")
@click.option(
    "--warmup-baseline", type=float, help="Raw CO baseline captured during warm-up"
)
@click.option("--duration", type=int, help="Configured sampling duration (s)")
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON")
@click.option("--save", is_flag=True, help="Store the result as a session")
@click.option("--db", type=click.Path(), help="Database path")
def analyze(
    file: Path,
    serial: str | None,
    warmup_baseline: float | None,
    duration: int | None,
    as_json: bool,
    save: bool,
    db: str | None,
) -> None:
    """
    Analyze a breath window from CSV.

    FILE needs the columns timestamp_ms, co_raw and temperature_c, and may
    carry voltage_v.
    """
    try:
        window = read_window_csv(file)
    except ValueError as e:
        raise click.ClickException(str(e)) from e
    if not window:
        raise click.ClickException(f"{file} contains no samples")
    if save and not (serial and serial.strip()):
        raise click.ClickException("--save requires --serial")

    cloud = None
    if serial and (db or save):
        _init_db(db)
        cache = CalibrationCache(CalibrationRepository())
        cache.ensure_fetched(serial)
        cloud = cache.cached(serial)

    analyzer = BreathAnalyzer(get_analyze_coefficients())
    result = analyzer.analyze(
        window,
        serial_number=serial,
        warmup_baseline_raw=warmup_baseline,
        cloud_coefficients=cloud,
        sample_duration_sec=duration,
    )

    if as_json:
        click.echo(result.model_dump_json(indent=2))
    else:
        _display_analysis(result)

    if save:
        ordered = sorted(window, key=lambda p: p.timestamp_ms)
        points = [
            BreathSamplePoint(
                timestamp_ms=p.timestamp_ms,
                co_raw=p.raw_co,
                temperature_c=p.temperature_c,
                voltage_v=p.voltage_v,
                battery_percent=None,
            )
            for p in ordered
        ]
        record = build_session_record(result, ordered, points, device_id=serial.strip())
        SessionRepository().save(record)
        if not as_json:
            click.echo(f"✓ Saved session {record.session_id}")


def _display_analysis(result: BreathAnalysis) -> None:
    click.echo(f"✓ {format_summary(result)}\n")
    click.echo("=" * 50)
    click.echo(f"Estimated CO:      {result.estimated_ppm:.2f} ppm")
    click.echo(f"Calibration path:  {result.calibration_path.value}")
    click.echo(f"  Mode / source:   {result.calibration_mode} / {result.calibration_source.value}")
    if result.calibration_gain_raw_per_ppm is not None:
        click.echo(
            f"  Gain {result.calibration_gain_raw_per_ppm:.4f} raw/ppm, "
            f"tau {result.calibration_tau_sec:.1f}s, dead {result.calibration_dead_sec:.1f}s, "
            f"drift {result.calibration_drift_raw_per_sec:.4f} raw/s"
        )
    if result.calibration_duration_bucket_sec is not None:
        click.echo(f"  Duration bucket: {result.calibration_duration_bucket_sec}s")
    click.echo(f"Delta R (comp):    {result.delta_r_comp:.2f}")
    click.echo(f"Temperature rise:  {result.temperature_rise_c:.2f} °C")
    click.echo(f"Breath duration:   {result.breath_duration_sec}s")
    click.echo(
        f"Baseline / peak:   {result.baseline_co:.1f} / {result.peak_co:.1f} raw"
    )
    click.echo("=" * 50)

    if is_sensor_suspicious(result):
        click.echo(
            "⚠ Baseline and peak readings are very low; the sensor may be damaged.",
            err=True,
        )


@cli.command()
@click.option("--voltage", type=float, help="Cell voltage (V)")
@click.option("--raw", type=float, help="Raw warm-up CO baseline")
@click.option("--percent", type=int, help="Battery percent reported by the device")
def battery(voltage: float | None, raw: float | None, percent: int | None) -> None:
    """Estimate coin-cell state of charge and remaining runtime."""
    given = [v for v in (voltage, raw, percent) if v is not None]
    if len(given) != 1:
        raise click.ClickException("Specify exactly one of --voltage, --raw, --percent")

    if raw is not None:
        voltage = estimate_voltage_from_raw(raw)
        click.echo(f"Voltage: {voltage:.3f} V (from raw {raw:.1f})")
        percent = battery_percent_from_raw(raw)
    elif voltage is not None:
        percent = estimate_battery_percent(voltage)

    estimate = estimate_runtime(percent)
    if estimate is None:
        raise click.ClickException("Could not determine battery percent")
    click.echo(f"Battery: {estimate.percent}% (display {estimate.bucket_percent}%)")
    click.echo(f"Estimated runtime left: {estimate.hours_remaining:.1f} h")


# ============================================================================
# Sessions and trends
# ============================================================================


@cli.group()
def sessions() -> None:
    """Stored breath session commands."""
    pass


@sessions.command("list")
@click.option("--device", "device_id", help="Only sessions for this device serial")
@click.option(
    "--limit",
    type=int,
    default=DEFAULT_LIST_SESSIONS_LIMIT,
    help="Max sessions to show",
)
@click.option("--db", type=click.Path(), help="Database path")
def list_sessions(device_id: str | None, limit: int, db: str | None) -> None:
    """List stored sessions (newest first)."""
    _init_db(db)
    records = SessionRepository().list_sessions(device_id=device_id, limit=limit)

    if not records:
        click.echo("No sessions found")
        return

    click.echo(
        f"\n{'Started (UTC)':<25} {'Session':<28} {'Device':<16} {'PPM':>7}  {'Path':<20}"
    )
    click.echo("=" * 100)
    for record in records:
        click.echo(
            f"{record.started_at:<25} {record.session_id:<28} {record.device_id:<16} "
            f"{record.estimated_ppm:>7.2f}  {record.calibration_path:<20}"
        )


@sessions.command("delete")
@click.argument("session_id")
@click.option("--db", type=click.Path(), help="Database path")
def delete_session(session_id: str, db: str | None) -> None:
    """Delete a stored session."""
    _init_db(db)
    if not SessionRepository().delete(session_id):
        raise click.ClickException(f"Session '{session_id}' not found")
    click.echo(f"✓ Deleted session {session_id}")


@cli.command()
@click.option("--db", type=click.Path(), help="Database path")
def trends(db: str | None) -> None:
    """Show 7-day daily medians and the smoke-free streak."""
    _init_db(db)
    result = compute_trends(SessionRepository().ppm_series())

    click.echo("\nDaily median CO (last 7 days)")
    click.echo("=" * 40)
    for entry in result.daily:
        value = f"{entry.median_ppm:.2f} ppm" if entry.measured else "-"
        click.echo(f"{entry.day.isoformat():<12} {value:>12}")
    click.echo("=" * 40)
    click.echo(f"Measured days:      {result.measured_days}")
    click.echo(f"Smoke-free streak:  {result.smoke_free_streak_days} day(s)")


# ============================================================================
# Calibration
# ============================================================================


@cli.group()
def calibration() -> None:
    """Per-device gas-fit calibration commands."""
    pass


@calibration.command("set")
@click.argument("serial")
@click.option("--drift", type=float, required=True, help="Baseline drift (raw/s)")
@click.option("--gain", type=float, required=True, help="Response gain (raw/ppm)")
@click.option("--tau", type=float, required=True, help="Time constant (s)")
@click.option("--dead", type=float, required=True, help="Dead time (s)")
@click.option("--disabled", is_flag=True, help="Store the document as disabled")
@click.option("--db", type=click.Path(), help="Database path")
def calibration_set(
    serial: str,
    drift: float,
    gain: float,
    tau: float,
    dead: float,
    disabled: bool,
    db: str | None,
) -> None:
    """Store calibration for a device serial (or 8-character prefix)."""
    _init_db(db)
    document = {
        "enabled": not disabled,
        "a_drift_raw_per_s": drift,
        "G_raw_per_ppm": gain,
        "tau_s": tau,
        "dead_s": dead,
    }
    try:
        prefix = CalibrationRepository().put_document(serial, document)
    except ValueError as e:
        raise click.ClickException(str(e)) from e
    click.echo(f"✓ Calibration stored for {prefix}{' (disabled)' if disabled else ''}")


@calibration.command("show")
@click.argument("serial")
@click.option("--db", type=click.Path(), help="Database path")
def calibration_show(serial: str, db: str | None) -> None:
    """Show which gas-fit coefficients a device would use."""
    prefix = normalize_serial_prefix(serial)
    cloud = None
    if prefix is not None:
        _init_db(db)
        cloud = CalibrationRepository().get_device_calibration(prefix)
    else:
        click.echo(f"Serial {serial!r} has no valid 8-character prefix", err=True)

    coefficients, source = resolve_gas_fit_coefficients(prefix, cloud)
    click.echo(f"Prefix: {prefix or '-'}")
    click.echo(f"Source: {source.value}")
    click.echo(f"  drift: {coefficients.drift_raw_per_sec} raw/s")
    click.echo(f"  gain:  {coefficients.gain_raw_per_ppm} raw/ppm")
    click.echo(f"  tau:   {coefficients.tau_sec} s")
    click.echo(f"  dead:  {coefficients.dead_sec} s")


# ============================================================================
# Configuration and database
# ============================================================================


@cli.group()
def config() -> None:
    """Configuration management commands."""
    pass


@config.command("show")
def show_config_cmd() -> None:
    """Show all configuration settings."""
    config_path = get_config_path()
    if not config_path.exists():
        click.echo(f"No config file: {config_path}")
        return

    click.echo(f"Config file: {config_path}\n")
    config_data = load_config()
    if not config_data:
        click.echo("Configuration is empty.")
        return

    click.echo("Settings:")
    for section, values in config_data.items():
        click.echo(f"  [{section}]")
        if isinstance(values, dict):
            for key, value in values.items():
                click.echo(f"    {key} = {json.dumps(value)}")


@config.command("set")
@click.argument("section")
@click.argument("key")
@click.argument("value")
def set_config_cmd(section: str, key: str, value: str) -> None:
    """Set a configuration value (VALUE is parsed as TOML)."""
    try:
        set_config_value(section, key, parse_config_value(value))
    except ValueError as e:
        raise click.ClickException(str(e)) from e
    click.echo(f"✓ [{section}] {key} = {value}")
    click.echo(f"  Config: {get_config_path()}")


@config.command("unset")
@click.argument("section")
@click.argument("key")
def unset_config_cmd(section: str, key: str) -> None:
    """Remove a configuration value."""
    if unset_config_value(section, key):
        click.echo(f"✓ Removed [{section}] {key}")
    else:
        click.echo(f"[{section}] {key} was not configured.")


@cli.group()
def db() -> None:
    """Database management commands."""
    pass


@db.command()
@click.option("--db", type=click.Path(), help="Database path")
def init(db: str | None) -> None:
    """Initialize database (creates tables if needed)."""
    db_path = _init_db(db)
    click.echo(f"✓ Database initialized at {db_path}")


@db.command()
@click.option("--db", type=click.Path(), help="Database path")
def stats(db: str | None) -> None:
    """Show database statistics."""
    db_path = _init_db(db)
    counts = SessionRepository().stats()
    size_bytes = os.path.getsize(db_path) if os.path.exists(db_path) else 0

    click.echo("\n📊 Database Statistics")
    click.echo(f"{'=' * 50}")
    click.echo(f"Database: {db_path}")
    click.echo(f"Size: {size_bytes / (1024 * 1024):.1f} MB")
    click.echo(f"\nDevices: {counts['devices']}")
    click.echo(f"Sessions: {counts['sessions']}")
    click.echo(f"Data points: {counts['data_points']}")
    click.echo(f"Calibrations: {counts['calibrations']}")
    if counts["first_session"] and counts["last_session"]:
        click.echo(
            f"\nDate range: {counts['first_session'][:10]} to {counts['last_session'][:10]}"
        )
    click.echo(f"{'=' * 50}\n")


def main() -> None:
    """Main CLI entry point."""
    cli()


if __name__ == "__main__":
    main()
