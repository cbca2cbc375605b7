"""
materials_config -- single public entrypoint for ledger configuration.

Responsibility:
    ``get_active_config()`` assembles and caches the effective AppConfig.
    Services receive the config (or one of its sections) by injection and
    never read files or environment variables themselves.

Audit relevance:
    Every assembly emits a ``MATERIALS_CONFIG_TRACE`` log entry carrying
    the checksum of the effective configuration (signing key excluded).
"""

from __future__ import annotations

import threading
from collections.abc import Mapping
from pathlib import Path

from materials_config.loader import compute_checksum, load_config
from materials_config.schema import (
    AppConfig,
    DatabaseConfig,
    LedgerConfig,
    StorageConfig,
    ThresholdConfig,
)
from materials_kernel.logging_config import get_logger

logger = get_logger("config")

_active: AppConfig | None = None
_lock = threading.Lock()


def config_checksum(config: AppConfig) -> str:
    data = config.to_dict()
    data["storage"].pop("signing_key", None)
    return compute_checksum(data)


def get_active_config(
    path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> AppConfig:
    """Load the configuration once and return the cached instance afterwards."""
    global _active
    with _lock:
        if _active is None:
            _active = load_config(path, environ)
            logger.info(
                "MATERIALS_CONFIG_TRACE",
                extra={
                    "trace_type": "MATERIALS_CONFIG_TRACE",
                    "checksum": config_checksum(_active),
                    "database_dialect": _active.database.url.split(":", 1)[0],
                    "atomic_writes": _active.ledger.atomic_writes,
                },
            )
        return _active


def reset_active_config() -> None:
    """Drop the cached configuration. FOR TESTING ONLY."""
    global _active
    with _lock:
        _active = None


__all__ = [
    "AppConfig",
    "DatabaseConfig",
    "LedgerConfig",
    "StorageConfig",
    "ThresholdConfig",
    "config_checksum",
    "get_active_config",
    "load_config",
    "reset_active_config",
]
