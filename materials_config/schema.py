"""
Configuration schema (``materials_config.schema``).

Frozen dataclasses for every configurable value of the ledger.  Each
section validates itself in ``__post_init__`` and raises
ConfigurationError naming the offending key.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Self

from materials_kernel.domain.dtos import (
    LowStockThresholds,
    MaterialKind,
    PeriodKind,
    TransactionType,
)
from materials_kernel.exceptions import ConfigurationError


def _decimal(value: Any, key: str) -> Decimal:
    try:
        return value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation:
        raise ConfigurationError(key, f"not a number: {value!r}") from None


def _positive(value: Any, key: str) -> Decimal:
    result = _decimal(value, key)
    if result <= 0:
        raise ConfigurationError(key, f"must be positive, got {result}")
    return result


@dataclass(frozen=True)
class DatabaseConfig:
    url: str = "sqlite:///materials.db"
    echo: bool = False
    pool_size: int = 5

    def __post_init__(self):
        if not self.url:
            raise ConfigurationError("database.url", "is required")
        if self.pool_size <= 0:
            raise ConfigurationError("database.pool_size", "must be positive")


DEFAULT_FOLDERS: dict[str, dict[str, str]] = {
    "steel": {"incoming": "bills", "outgoing": "issue-slips"},
    "cement": {"incoming": "cement-bills", "outgoing": "cement-issue-slips"},
    "diesel": {"incoming": "bills", "outgoing": "issue-slips"},
}


@dataclass(frozen=True)
class StorageConfig:
    root: str = "./uploads"
    base_url: str = "/files"
    signing_key: str = "change-me"
    max_upload_bytes: int = 10 * 1024 * 1024
    signed_url_ttl_seconds: int = 3600
    folders: dict[str, dict[str, str]] = field(
        default_factory=lambda: {k: dict(v) for k, v in DEFAULT_FOLDERS.items()}
    )

    def __post_init__(self):
        if self.max_upload_bytes <= 0:
            raise ConfigurationError("storage.max_upload_bytes", "must be positive")
        if self.signed_url_ttl_seconds <= 0:
            raise ConfigurationError("storage.signed_url_ttl_seconds", "must be positive")
        if not self.signing_key:
            raise ConfigurationError("storage.signing_key", "is required")
        for kind in MaterialKind:
            entry = self.folders.get(kind.value, {})
            for direction in TransactionType:
                if not entry.get(direction.value):
                    raise ConfigurationError(
                        f"storage.folders.{kind.value}.{direction.value}",
                        "is required",
                    )

    def folder_for(self, kind: MaterialKind, direction: TransactionType) -> str:
        return self.folders[MaterialKind(kind).value][TransactionType(direction).value]


@dataclass(frozen=True)
class LedgerConfig:
    standard_rod_length: Decimal = Decimal("12")
    tally_tolerance: Decimal = Decimal("0.001")
    wastage_warning: Decimal = Decimal("0.01")
    atomic_writes: bool = False
    default_period: str = PeriodKind.LAST_30_DAYS.value
    recent_activity_limit: int = 10
    per_material_recent_limit: int = 5
    max_alerts: int = 5

    def __post_init__(self):
        object.__setattr__(
            self, "standard_rod_length",
            _positive(self.standard_rod_length, "ledger.standard_rod_length"),
        )
        object.__setattr__(
            self, "tally_tolerance",
            _decimal(self.tally_tolerance, "ledger.tally_tolerance"),
        )
        object.__setattr__(
            self, "wastage_warning",
            _decimal(self.wastage_warning, "ledger.wastage_warning"),
        )
        if self.tally_tolerance < 0:
            raise ConfigurationError("ledger.tally_tolerance", "cannot be negative")
        if self.wastage_warning < 0:
            raise ConfigurationError("ledger.wastage_warning", "cannot be negative")
        try:
            PeriodKind(self.default_period)
        except ValueError:
            raise ConfigurationError(
                "ledger.default_period", f"unknown period {self.default_period!r}",
            ) from None
        for key in ("recent_activity_limit", "per_material_recent_limit", "max_alerts"):
            if getattr(self, key) <= 0:
                raise ConfigurationError(f"ledger.{key}", "must be positive")


@dataclass(frozen=True)
class ThresholdConfig:
    """Default low-stock thresholds for new sites and the HIGH severity ratios."""

    steel: int = 50
    cement: int = 10
    diesel: Decimal = Decimal("100")
    high_ratio: dict[str, Decimal] = field(
        default_factory=lambda: {
            "steel": Decimal("0.4"),
            "cement": Decimal("0.5"),
            "diesel": Decimal("0.5"),
        }
    )

    def __post_init__(self):
        object.__setattr__(self, "diesel", _decimal(self.diesel, "thresholds.diesel"))
        if self.steel < 0 or self.cement < 0 or self.diesel < 0:
            raise ConfigurationError("thresholds", "cannot be negative")
        ratios = {}
        for kind in MaterialKind:
            raw = self.high_ratio.get(kind.value, Decimal("0.5"))
            ratio = _decimal(raw, f"thresholds.high_ratio.{kind.value}")
            if not Decimal("0") < ratio <= Decimal("1"):
                raise ConfigurationError(
                    f"thresholds.high_ratio.{kind.value}", "must be in (0, 1]",
                )
            ratios[kind.value] = ratio
        object.__setattr__(self, "high_ratio", ratios)

    def defaults(self) -> LowStockThresholds:
        return LowStockThresholds(steel=self.steel, cement=self.cement, diesel=self.diesel)

    def ratio_for(self, kind: MaterialKind) -> Decimal:
        return self.high_ratio[MaterialKind(kind).value]


@dataclass(frozen=True)
class AppConfig:
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    thresholds: ThresholdConfig = field(default_factory=ThresholdConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Build from a nested dict such as parsed YAML.  Unknown keys are rejected."""
        sections = {
            "database": DatabaseConfig,
            "storage": StorageConfig,
            "ledger": LedgerConfig,
            "thresholds": ThresholdConfig,
        }
        unknown = set(data) - set(sections)
        if unknown:
            raise ConfigurationError(", ".join(sorted(unknown)), "unknown section")
        kwargs = {}
        for name, section_cls in sections.items():
            values = data.get(name) or {}
            try:
                kwargs[name] = section_cls(**values)
            except TypeError as exc:
                raise ConfigurationError(name, str(exc)) from exc
        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
