"""Tool configuration: YAML file, then environment, then explicit overrides.

Example ``bqv.yaml``::

    project: my-gcp-project
    base_dir: views
    param_file: .params
    location: EU
    max_workers: 4
"""

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from bqv_core.errors import ConfigError

ENV_PREFIX = "BQV_"


@dataclass(frozen=True)
class Settings:
    project: str = ""
    base_dir: str = "."
    param_file: str = ".params"
    location: str = ""
    backend: str = "bigquery"
    max_workers: int = 1


def default_config_path(cwd: Optional[Path] = None, home: Optional[Path] = None) -> Optional[Path]:
    candidates = [
        (cwd or Path.cwd()) / "bqv.yaml",
        (home or Path.home()) / ".bqv.yaml",
    ]
    for candidate in candidates:
        if candidate.is_file():
            return candidate
    return None


def load_config(path: Optional[str]) -> Dict[str, Any]:
    if not path:
        return {}
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {path}")
    with config_path.open("r", encoding="utf-8") as handle:
        try:
            data = yaml.safe_load(handle)
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse config file {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError("Config YAML must parse to an object/map at root.")
    return data


def get_env_var(name: str, environ: Optional[Mapping[str, str]] = None) -> Optional[str]:
    env = os.environ if environ is None else environ
    value = env.get(f"{ENV_PREFIX}{name.upper()}")
    return value or None


def resolve_settings(
    config: Optional[Mapping[str, Any]] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Merge config file values, ``BQV_*`` environment variables and overrides.

    Later sources win; ``None`` in *overrides* means "not given".
    """
    values: Dict[str, Any] = {}
    known = {f.name for f in fields(Settings)}
    for key, value in (config or {}).items():
        if key in known and value is not None:
            values[key] = value
    for key in known:
        env_value = get_env_var(key, environ)
        if env_value is not None:
            values[key] = env_value
    for key, value in (overrides or {}).items():
        if key in known and value is not None:
            values[key] = value

    if "max_workers" in values:
        try:
            values["max_workers"] = int(values["max_workers"])
        except (TypeError, ValueError) as e:
            raise ConfigError(f"max_workers must be an integer: {values['max_workers']}") from e
    for key in ("project", "base_dir", "param_file", "location", "backend"):
        if key in values:
            values[key] = str(values[key])
    return Settings(**values)
