"""
Configuration Loader (``materials_config.loader``).

Responsibility
--------------
Reads the packaged ``defaults.yaml``, overlays an optional site file and
environment overrides, and parses the result into the typed
``materials_config.schema.AppConfig``.

Invariants enforced
-------------------
* Overlay order is defaults, then file, then environment.
* Every parsed object is a frozen dataclass from ``schema.py``.
* ``compute_checksum`` is deterministic for identical effective config.

Failure modes
-------------
* Missing overlay file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Out-of-range values  -> ``ConfigurationError``.
"""

from __future__ import annotations

import hashlib
import json
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from materials_config.schema import AppConfig
from materials_kernel.exceptions import ConfigurationError

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

CONFIG_PATH_ENV = "MATERIALS_CONFIG"

# environment variable -> (section, key)
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "DATABASE_URL": ("database", "url"),
    "MATERIALS_STORAGE_ROOT": ("storage", "root"),
    "MATERIALS_SIGNING_KEY": ("storage", "signing_key"),
    "MATERIALS_ATOMIC_WRITES": ("ledger", "atomic_writes"),
}

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file; an empty file yields an empty dict."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(str(path), "top level must be a mapping")
    return data


def deep_merge(base: Mapping[str, Any], overlay: Mapping[str, Any]) -> dict[str, Any]:
    """Recursively merge ``overlay`` into a copy of ``base``."""
    merged: dict[str, Any] = dict(base)
    for key, value in overlay.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _parse_bool(name: str, raw: str) -> bool:
    lowered = raw.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ConfigurationError(name, f"expected a boolean, got {raw!r}")


def apply_env_overrides(
    data: Mapping[str, Any],
    environ: Mapping[str, str],
) -> dict[str, Any]:
    result = deep_merge(data, {})
    for env_name, (section, key) in ENV_OVERRIDES.items():
        raw = environ.get(env_name)
        if raw is None or raw == "":
            continue
        value: Any = raw
        if key == "atomic_writes":
            value = _parse_bool(env_name, raw)
        result[section] = deep_merge(result.get(section) or {}, {key: value})
    return result


def load_config_dict(
    path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    environ = os.environ if environ is None else environ
    data = load_yaml_file(DEFAULTS_PATH)
    overlay_path = path or environ.get(CONFIG_PATH_ENV)
    if overlay_path:
        data = deep_merge(data, load_yaml_file(Path(overlay_path)))
    return apply_env_overrides(data, environ)


def load_config(
    path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> AppConfig:
    return AppConfig.from_dict(load_config_dict(path, environ))


def compute_checksum(data: Mapping[str, Any]) -> str:
    """SHA-256 of the canonical JSON form of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
