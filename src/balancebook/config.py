"""Engine configuration loaded from ``balancebook.yaml``, with defaults."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from balancebook.logging.events import EventType, emit_info

CONFIG_FILENAME = "balancebook.yaml"

DEFAULT_CONFIG: dict[str, Any] = {
    "max_depth": 64,
    "allow_infinity": False,
    "settings_sheet": "Settings",
    "settings_key_column": None,  # default: first column
    "settings_value_column": None,  # default: "Value" column, else second column
    "log_dir": None,
}


class ConfigError(Exception):
    """Invalid or unreadable configuration file."""


class EngineConfig(BaseModel):
    """Options that shape formula evaluation.

    Attributes:
        max_depth: Maximum formula-chaining depth (same-row chains, PREV,
            Settings and REF lookups that hit formulas).
        allow_infinity: Return infinite top-level results instead of a
            math error.  NaN is always an error.
        settings_sheet: Name of the workbook-wide key/value sheet.
        settings_key_column: Key column name in the settings sheet.
        settings_value_column: Value column name in the settings sheet.
        log_dir: Directory for NDJSON event logs, or None to disable.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_depth: int = Field(default=64, ge=1)
    allow_infinity: bool = False
    settings_sheet: str = "Settings"
    settings_key_column: str | None = None
    settings_value_column: str | None = None
    log_dir: str | None = None


def _flatten_settings_block(user_config: dict[str, Any]) -> dict[str, Any]:
    """Flatten a nested ``settings:`` block into flat config keys.

    Supports::

        settings:
          sheet: Settings
          key_column: Key
          value_column: Value
    """
    block = user_config.pop("settings", None)
    if not isinstance(block, dict):
        return user_config

    mapping = {
        "sheet": "settings_sheet",
        "key_column": "settings_key_column",
        "value_column": "settings_value_column",
    }
    for short_key, flat_key in mapping.items():
        if short_key in block:
            user_config[flat_key] = block[short_key]
    return user_config


def load_engine_config(path: Path | str | None = None) -> EngineConfig:
    """Load engine configuration, merging a YAML file over the defaults.

    Args:
        path: A config file, or a directory containing ``balancebook.yaml``.
            None (or a directory without the file) yields the defaults.

    Returns:
        The validated configuration.

    Raises:
        ConfigError: If the file cannot be parsed or fails validation.
    """
    config = dict(DEFAULT_CONFIG)
    if path is not None:
        config_path = Path(path)
        if config_path.is_dir():
            config_path = config_path / CONFIG_FILENAME
        if config_path.exists():
            try:
                user_config = yaml.safe_load(config_path.read_text()) or {}
            except yaml.YAMLError as exc:
                raise ConfigError(f"Cannot parse {config_path}: {exc}") from exc
            if not isinstance(user_config, dict):
                raise ConfigError(f"{config_path} must contain a mapping")
            config.update(_flatten_settings_block(user_config))
            emit_info(EventType.config_loaded, f"Loaded {config_path}", {"path": str(config_path)})

    try:
        return EngineConfig(**config)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc
