"""
Module: materials_engines.stock_alerts
Responsibility:
    Classify inventory levels against a site's low-stock threshold.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Stock is judged per variant: steel rows for one diameter are summed
      across rod lengths before the comparison, the same total the stock
      summary shows for that diameter.
    - Steel and cement compare the piece/bag count, diesel the volume.
    - A variant strictly below ``threshold * high_ratio`` is HIGH severity,
      any other variant strictly below ``threshold`` is MEDIUM.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from enum import Enum
from typing import Iterable

from materials_engines.tracer import traced_engine
from materials_kernel.db.types import to_decimal
from materials_kernel.domain.dtos import InventoryLevel, MaterialKind


class Severity(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"


@dataclass(frozen=True)
class LowStockAlert:
    kind: MaterialKind
    variant: str | None
    length: Decimal | None
    current: Decimal
    threshold: Decimal
    severity: Severity

    @property
    def label(self) -> str:
        if self.kind is MaterialKind.STEEL:
            return f"{self.variant}mm TMT"
        if self.kind is MaterialKind.CEMENT:
            return str(self.variant)
        return "Diesel"


def stock_measure(kind: MaterialKind, units: int, weight: Decimal) -> Decimal:
    """The quantity compared with a threshold: volume for diesel, else the count."""
    if kind is MaterialKind.DIESEL:
        return weight
    return Decimal(units)


def is_below(kind: MaterialKind, units: int, weight: Decimal, threshold) -> bool:
    return stock_measure(kind, units, weight) < to_decimal(threshold, "threshold")


def variant_totals(levels: Iterable[InventoryLevel]) -> list[InventoryLevel]:
    """
    Sum levels per (kind, variant) in first-seen order.

    A variant stocked at a single rod length keeps that length; a variant
    spread over several lengths gets ``length=None``.
    """
    merged: dict[tuple[MaterialKind, str | None], InventoryLevel] = {}
    for level in levels:
        key = (level.kind, level.variant)
        seen = merged.get(key)
        if seen is None:
            merged[key] = level
            continue
        merged[key] = replace(
            seen,
            length=seen.length if seen.length == level.length else None,
            quantity_units=seen.quantity_units + level.quantity_units,
            total_weight=seen.total_weight + level.total_weight,
        )
    return list(merged.values())


@traced_engine("stock_alerts.classify", "1.0", fingerprint_fields=("threshold", "high_ratio"))
def classify_low_stock(
    levels: Iterable[InventoryLevel],
    threshold,
    high_ratio=Decimal("0.5"),
) -> list[LowStockAlert]:
    """Alerts for every variant whose total is below ``threshold``, most severe first."""
    limit = to_decimal(threshold, "threshold")
    high_limit = limit * to_decimal(high_ratio, "high_ratio")
    alerts: list[LowStockAlert] = []
    for total in variant_totals(levels):
        current = stock_measure(total.kind, total.quantity_units, total.total_weight)
        if current >= limit:
            continue
        alerts.append(
            LowStockAlert(
                kind=total.kind,
                variant=total.variant,
                length=total.length,
                current=current,
                threshold=limit,
                severity=Severity.HIGH if current < high_limit else Severity.MEDIUM,
            )
        )
    alerts.sort(key=lambda a: (a.severity is not Severity.HIGH, a.current))
    return alerts
