"""
Module: materials_engines.summary
Responsibility:
    Grouped aggregation of ledger transactions: generic summarize_by, the
    supplier/contractor/variant breakdowns, and the per-variant stock
    summary with opening and closing balances.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - A transaction whose group key is missing or blank is left out of that
      grouping; it is not an error.
    - Groups keep first-appearance order.
    - Opening balance is derived as max(0, closing - incoming + outgoing),
      per units and per weight.  This is exact only when the transactions
      cover the whole history; with a narrower period it is an
      approximation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable, Iterable

from materials_engines.stock_alerts import is_below
from materials_engines.tracer import traced_engine
from materials_kernel.domain.dtos import (
    ZERO,
    InventoryLevel,
    LedgerTransaction,
    MaterialKind,
    TransactionType,
)

KeyFn = Callable[[LedgerTransaction], "str | None"]


@dataclass(frozen=True)
class GroupSummary:
    incoming_units: int = 0
    incoming_weight: Decimal = ZERO
    outgoing_units: int = 0
    outgoing_weight: Decimal = ZERO
    members: tuple[LedgerTransaction, ...] = ()

    @property
    def net_units(self) -> int:
        return self.incoming_units - self.outgoing_units

    @property
    def net_weight(self) -> Decimal:
        return self.incoming_weight - self.outgoing_weight

    @property
    def count(self) -> int:
        return len(self.members)

    def add(self, tx: LedgerTransaction) -> GroupSummary:
        if tx.is_incoming:
            return GroupSummary(
                incoming_units=self.incoming_units + tx.quantity_units,
                incoming_weight=self.incoming_weight + tx.weight,
                outgoing_units=self.outgoing_units,
                outgoing_weight=self.outgoing_weight,
                members=self.members + (tx,),
            )
        return GroupSummary(
            incoming_units=self.incoming_units,
            incoming_weight=self.incoming_weight,
            outgoing_units=self.outgoing_units + tx.quantity_units,
            outgoing_weight=self.outgoing_weight + tx.weight,
            members=self.members + (tx,),
        )


@dataclass(frozen=True)
class PartySummary:
    """Totals for one supplier or contractor, broken down by variant."""

    party: str
    total: GroupSummary
    by_variant: dict[str, GroupSummary] = field(default_factory=dict)


@dataclass(frozen=True)
class StockSummaryRow:
    variant: str
    opening_units: int
    opening_weight: Decimal
    incoming_units: int
    incoming_weight: Decimal
    outgoing_units: int
    outgoing_weight: Decimal
    closing_units: int
    closing_weight: Decimal
    low_stock: bool = False
    members: tuple[LedgerTransaction, ...] = ()


def _clean_key(value) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def summarize_by(
    transactions: Iterable[LedgerTransaction],
    key_fn: KeyFn,
) -> dict[str, GroupSummary]:
    """Group transactions by ``key_fn`` and total units and weight per direction."""
    groups: dict[str, GroupSummary] = {}
    for tx in transactions:
        key = _clean_key(key_fn(tx))
        if key is None:
            continue
        groups[key] = groups.get(key, GroupSummary()).add(tx)
    return groups


def variant_key(tx: LedgerTransaction) -> str | None:
    return tx.variant


def stock_key(tx: LedgerTransaction) -> str:
    """Variant, or the material name for diesel which has none."""
    return tx.variant or tx.kind.value


def _party_summary(
    transactions: Iterable[LedgerTransaction],
    direction: TransactionType,
    party_fn: KeyFn,
) -> dict[str, PartySummary]:
    selected = [tx for tx in transactions if tx.type is direction]
    totals = summarize_by(selected, party_fn)
    result: dict[str, PartySummary] = {}
    for party, total in totals.items():
        result[party] = PartySummary(
            party=party,
            total=total,
            by_variant=summarize_by(total.members, stock_key),
        )
    return result


@traced_engine("summary.supplier", "1.0")
def supplier_summary(
    transactions: Iterable[LedgerTransaction],
) -> dict[str, PartySummary]:
    """Incoming transactions grouped by supplier, then by variant."""
    return _party_summary(
        transactions, TransactionType.INCOMING, lambda tx: tx.imported_from,
    )


@traced_engine("summary.contractor", "1.0")
def contractor_summary(
    transactions: Iterable[LedgerTransaction],
) -> dict[str, PartySummary]:
    """Outgoing transactions grouped by recipient, then by variant."""
    return _party_summary(
        transactions, TransactionType.OUTGOING, lambda tx: tx.recipient,
    )


def variant_summary(
    transactions: Iterable[LedgerTransaction],
) -> dict[str, GroupSummary]:
    return summarize_by(transactions, variant_key)


def _level_key(level: InventoryLevel) -> str:
    return level.variant or level.kind.value


@traced_engine("summary.stock", "1.0")
def stock_summary(
    transactions: Iterable[LedgerTransaction],
    levels: Iterable[InventoryLevel],
    variants: Iterable[str] = (),
    low_stock_threshold=None,
) -> dict[str, StockSummaryRow]:
    """
    Opening/incoming/outgoing/closing per variant.

    Rows are produced for every name in ``variants`` followed by any other
    variant that has a level or a transaction.  Closing balances sum the
    current levels across rod lengths.  ``low_stock`` judges that closing total
    with the same comparison ``classify_low_stock`` applies.
    """
    levels = list(levels)
    grouped = summarize_by(transactions, stock_key)

    closing: dict[str, tuple[int, Decimal]] = {}
    kind: MaterialKind | None = None
    for level in levels:
        kind = level.kind
        units, weight = closing.get(_level_key(level), (0, ZERO))
        closing[_level_key(level)] = (
            units + level.quantity_units,
            weight + level.total_weight,
        )
    if kind is None:
        for group in grouped.values():
            kind = group.members[0].kind
            break

    ordered: list[str] = []
    for name in list(variants) + list(closing) + list(grouped):
        if name not in ordered:
            ordered.append(name)

    rows: dict[str, StockSummaryRow] = {}
    for name in ordered:
        group = grouped.get(name, GroupSummary())
        closing_units, closing_weight = closing.get(name, (0, ZERO))
        opening_units = max(
            closing_units - group.incoming_units + group.outgoing_units, 0,
        )
        opening_weight = max(
            closing_weight - group.incoming_weight + group.outgoing_weight, ZERO,
        )
        rows[name] = StockSummaryRow(
            variant=name,
            opening_units=opening_units,
            opening_weight=opening_weight,
            incoming_units=group.incoming_units,
            incoming_weight=group.incoming_weight,
            outgoing_units=group.outgoing_units,
            outgoing_weight=group.outgoing_weight,
            closing_units=closing_units,
            closing_weight=closing_weight,
            low_stock=(
                kind is not None
                and name in closing
                and low_stock_threshold is not None
                and is_below(kind, closing_units, closing_weight, low_stock_threshold)
            ),
            members=group.members,
        )
    return rows


def totals(levels: Iterable[InventoryLevel]) -> tuple[int, Decimal, int]:
    """(units, weight, variant count with stock) across levels."""
    units = 0
    weight = ZERO
    variants: set[str] = set()
    for level in levels:
        units += level.quantity_units
        weight += level.total_weight
        if not level.is_empty:
            variants.add(_level_key(level))
    return units, weight, len(variants)
