"""
Audit configuration: config files and command-line overrides.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

import yaml

from .models import DEFAULT_MIN_DAYS, PolicyConfig
from .resolvers import DEFAULT_REGISTRY
from .time_utils import parse_date


logger = logging.getLogger(__name__)

CONFIG_FILENAMES = (".paranoidrc.json", ".paranoidrc.yml", ".paranoidrc.yaml")
REGISTRY_ENV = "PARANOID_REGISTRY"

# Config file key -> PolicyConfig field
CONFIG_KEYS = {
    "allow": "allow",
    "deny": "deny",
    "allowFrom": "allow_from",
    "include": "include",
    "exclude": "exclude",
    "minDays": "min_days",
    "production": "production",
    "excludeDev": "exclude_dev",
    "json": "json",
    "unsafe": "unsafe",
    "audit": "audit",
}
_BOOLEAN_KEYS = ("production", "excludeDev", "json", "unsafe", "audit")


class ConfigError(ValueError):
    """Raised for unreadable or invalid configuration."""


def registry_url() -> str:
    return os.environ.get(REGISTRY_ENV, DEFAULT_REGISTRY)


def find_config_file(project_dir: Path, explicit: Optional[str] = None) -> Optional[Path]:
    """Locate the config file: the explicit path, or the first rc file in the project."""
    if explicit is not None:
        path = Path(explicit).resolve()
        if not path.is_file():
            raise ConfigError(f"Cannot find specified config file: {explicit}")
        return path

    for filename in CONFIG_FILENAMES:
        candidate = Path(project_dir) / filename
        if candidate.is_file():
            return candidate
    return None


def read_config_file(path: Path) -> Dict[str, Any]:
    """Load a JSON or YAML config file."""
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            if path.suffix == ".json":
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
    except (OSError, json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain an object")

    unknown = sorted(set(data) - set(CONFIG_KEYS))
    if unknown:
        logger.warning("Ignoring unknown config option(s): %s", ", ".join(unknown))
    return {key: value for key, value in data.items() if key in CONFIG_KEYS}


def drop_options(values: Mapping[str, Any], ignored: Iterable[str]) -> Dict[str, Any]:
    ignored = {option.strip() for option in ignored if option.strip()}
    return {key: value for key, value in values.items() if key not in ignored}


def split_list(value: str) -> List[str]:
    return [item.strip() for item in value.strip().split(",") if item.strip()]


def parse_package_specs(value: str) -> Dict[str, str]:
    """Parse ``name@range,other@range``; scoped names keep their leading ``@``."""
    specs: Dict[str, str] = {}
    for item in split_list(value):
        index = item.rfind("@")
        if index <= 0:
            raise ConfigError(f"Expected <package>@<spec>, got {item!r}")
        specs[item[:index].strip()] = item[index + 1:].strip()
    return specs


def _require_mapping(key: str, value: Any) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise ConfigError(f"Option {key!r} must be an object")
    return value


def _require_strings(key: str, value: Any) -> List[str]:
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ConfigError(f"Option {key!r} must be a list of strings")
    return list(value)


def _parse_dates(key: str, value: Any) -> Dict[str, datetime]:
    dates: Dict[str, datetime] = {}
    for name, raw in _require_mapping(key, value).items():
        try:
            dates[name] = parse_date(raw)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid date for {name!r} in {key!r}: {raw!r}") from e
    return dates


def build_policy(*layers: Optional[Mapping[str, Any]]) -> PolicyConfig:
    """Merge config layers (later ones win) into a PolicyConfig.

    Each layer uses the config file keys; None values are ignored.
    """
    merged: Dict[str, Any] = {}
    for layer in layers:
        for key, value in (layer or {}).items():
            if value is not None:
                merged[key] = value

    fields: Dict[str, Any] = {}
    for key, value in merged.items():
        if key not in CONFIG_KEYS:
            raise ConfigError(f"Unknown option {key!r}")
        if key in ("allow", "deny"):
            specs = _require_mapping(key, value)
            fields[CONFIG_KEYS[key]] = {str(name): str(spec) for name, spec in specs.items()}
        elif key == "allowFrom":
            fields["allow_from"] = _parse_dates(key, value)
        elif key in ("include", "exclude"):
            fields[key] = _require_strings(key, value)
        elif key == "minDays":
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigError("Option 'minDays' must be an integer")
            fields["min_days"] = value
        elif key in _BOOLEAN_KEYS:
            if not isinstance(value, bool):
                raise ConfigError(f"Option {key!r} must be a boolean")
            fields[CONFIG_KEYS[key]] = value

    fields.setdefault("min_days", DEFAULT_MIN_DAYS)
    return PolicyConfig(**fields)


def load_policy(
    project_dir: Path,
    overrides: Optional[Mapping[str, Any]] = None,
    config_path: Optional[str] = None,
    ignore_config: bool = False,
    ignore_options: Iterable[str] = (),
) -> PolicyConfig:
    """Read the project config file (unless ignored) and apply ``overrides`` on top."""
    file_values: Dict[str, Any] = {}
    if not ignore_config:
        path = find_config_file(project_dir, config_path)
        if path is not None:
            logger.debug("Using config file %s", path)
            file_values = drop_options(read_config_file(path), ignore_options)
    return build_policy(file_values, overrides)
