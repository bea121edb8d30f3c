"""Configuration management for breathco."""

import logging
import os
import tomllib

from pathlib import Path
from typing import Any

import tomli_w

from pydantic import ValidationError

from breathco.analysis.types import AnalyzeCoefficients
from breathco.constants import DEFAULT_APP_DIR, DEFAULT_DATABASE_PATH
from breathco.constants import SessionConstants as SC

logger = logging.getLogger(__name__)

KNOWN_SECTIONS = ("analysis", "database", "sampling", "logging")


def get_config_path() -> Path:
    """
    Get the path to the configuration file.

    Returns:
        Path to ~/.breathco/config.toml
    """
    return DEFAULT_APP_DIR / "config.toml"


def load_config() -> dict[str, Any]:
    """
    Load configuration from TOML file.

    Returns:
        Configuration dictionary. Returns empty dict if file doesn't exist
        or is corrupted.
    """
    config_path = get_config_path()

    if not config_path.exists():
        return {}

    try:
        with open(config_path, "rb") as f:
            return tomllib.load(f)
    except Exception as e:
        logger.warning(f"Failed to load config from {config_path}: {e}")
        logger.warning("Treating config as empty. Fix or delete the file to resolve.")
        return {}


def save_config(config: dict[str, Any]) -> None:
    """
    Save configuration to TOML file using atomic write (temp file + rename).

    Raises:
        PermissionError: If directory cannot be created or file cannot be written
    """
    config_path = get_config_path()

    config_dir = config_path.parent
    try:
        os.makedirs(config_dir, exist_ok=True)
    except PermissionError as e:
        raise PermissionError(
            f"Cannot create config directory {config_dir}: {e}"
        ) from e

    temp_path = config_path.with_suffix(".toml.tmp")

    try:
        with open(temp_path, "wb") as f:
            tomli_w.dump(config, f)

        os.replace(temp_path, config_path)

    except Exception:
        if temp_path.exists():
            temp_path.unlink()
        raise


def _section(config: dict[str, Any], name: str) -> dict[str, Any]:
    section = config.get(name, {})
    return section if isinstance(section, dict) else {}


def get_analyze_coefficients(config: dict[str, Any] | None = None) -> AnalyzeCoefficients:
    """
    Build analysis coefficients from the [analysis] table.

    Unknown keys are ignored with a warning; invalid values fall back to the
    defaults.
    """
    overrides = _section(config if config is not None else load_config(), "analysis")
    known = AnalyzeCoefficients.model_fields
    for key in overrides:
        if key not in known:
            logger.warning(f"Ignoring unknown [analysis] setting: {key}")

    try:
        return AnalyzeCoefficients(**{k: v for k, v in overrides.items() if k in known})
    except ValidationError as e:
        logger.warning(f"Invalid [analysis] settings, using defaults: {e}")
        return AnalyzeCoefficients()


def get_database_path(config: dict[str, Any] | None = None) -> str:
    """Database path from [database] path, else the default."""
    path = _section(config if config is not None else load_config(), "database").get("path")
    return str(Path(path).expanduser()) if path else DEFAULT_DATABASE_PATH


def get_default_sample_duration(config: dict[str, Any] | None = None) -> int:
    """Sampling duration (s) from [sampling] default_duration_sec."""
    sampling = _section(config if config is not None else load_config(), "sampling")
    value = sampling.get("default_duration_sec", SC.DEFAULT_SAMPLE_DURATION_SEC)
    if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
        logger.warning(f"Invalid default_duration_sec {value!r}, using default")
        return SC.DEFAULT_SAMPLE_DURATION_SEC
    return value


def parse_config_value(raw: str) -> Any:
    """Interpret a command-line value as TOML (falls back to a plain string)."""
    try:
        return tomllib.loads(f"value = {raw}")["value"]
    except tomllib.TOMLDecodeError:
        return raw


def set_config_value(section: str, key: str, value: Any) -> None:
    """
    Set `key` in `[section]` and save.

    Raises:
        ValueError: If the section is not a known configuration table
    """
    if section not in KNOWN_SECTIONS:
        raise ValueError(
            f"Unknown config section '{section}'. "
            f"Expected one of: {', '.join(KNOWN_SECTIONS)}"
        )

    config = load_config()
    config.setdefault(section, {})[key] = value
    save_config(config)


def unset_config_value(section: str, key: str) -> bool:
    """
    Remove `key` from `[section]`.

    Empty sections are removed; an empty config deletes the file.

    Returns:
        True if the key existed
    """
    config = load_config()

    if section not in config or key not in config[section]:
        return False

    del config[section][key]
    if not config[section]:
        del config[section]

    if not config:
        config_path = get_config_path()
        if config_path.exists():
            config_path.unlink()
    else:
        save_config(config)
    return True
