"""
Module: materials_engines.ledger
Responsibility:
    Unit conversion for incoming and outgoing shipments, and inventory level
    mutation from ledger transactions (apply, reverse, replay, reconcile).

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Callers persist the new
    level and the transaction row themselves.

Invariants enforced:
    - For a fixed site+variant, quantity_units equals the sum of incoming
      minus the sum of outgoing units over non-deleted transactions, as long
      as no clamp fired.
    - Levels never go negative.  A clamp returns LevelChange.clamped=True
      and logs ``inventory_level_clamped``; it is never silent.
    - Steel wastage (input weight minus stocked weight) is always >= 0 and
      always reported.
    - Diesel amounts are stored verbatim; a "kg" unit is recorded but not
      converted to litres.

Failure modes:
    - InvalidInputError for missing fields, non-positive amounts,
      fractional piece/bag counts, bad units or lengths.
    - UnknownVariantError for unknown steel diameters.
    - InsufficientStockError when an outgoing request exceeds the level.

Usage:
    engine = LedgerEngine()
    conversion = engine.convert_incoming(
        MaterialKind.STEEL, "12", Decimal("5"), WeightUnit.TONNES,
    )
    conversion.quantity_units  # 469
    conversion.wastage         # Decimal("0.002336")
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from materials_engines.specs import (
    KG_PER_TONNE,
    STANDARD_ROD_LENGTH,
    cement_bag_kg,
    normalize_cement_variant,
    normalize_steel_variant,
    resolve_length,
    steel_kg_per_metre,
)
from materials_engines.tracer import traced_engine
from materials_kernel.db.types import to_decimal
from materials_kernel.domain.dtos import (
    ZERO,
    InventoryLevel,
    LedgerTransaction,
    MaterialKind,
    TransactionType,
    WeightUnit,
)
from materials_kernel.exceptions import InsufficientStockError, InvalidInputError
from materials_kernel.logging_config import get_logger

logger = get_logger("engines.ledger")


@dataclass(frozen=True)
class Conversion:
    """
    Result of converting a user-entered amount into ledger quantities.

    ``input_weight`` and ``wastage`` are only set for steel incoming.
    ``unit_weight_kg`` is the per-piece or per-bag weight (None for diesel).
    """

    kind: MaterialKind
    type: TransactionType
    variant: str | None
    quantity_units: int
    weight: Decimal
    length: Decimal | None = None
    weight_unit: WeightUnit | None = None
    input_weight: Decimal | None = None
    wastage: Decimal | None = None
    unit_weight_kg: Decimal | None = None


@dataclass(frozen=True)
class LevelChange:
    """Before/after pair for one level mutation."""

    before: InventoryLevel
    after: InventoryLevel
    clamped: bool = False
    unit_shortfall: int = 0
    weight_shortfall: Decimal = ZERO


@dataclass(frozen=True)
class ReconciliationResult:
    """Stored level compared with the level replayed from the ledger."""

    stored: InventoryLevel
    expected_units: int
    expected_weight: Decimal
    unit_difference: int
    weight_difference: Decimal
    tolerance: Decimal

    @property
    def is_consistent(self) -> bool:
        return (
            self.unit_difference == 0
            and abs(self.weight_difference) <= self.tolerance
        )


def _positive_amount(value, field: str) -> Decimal:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise InvalidInputError(field, "is required")
    try:
        amount = to_decimal(value, field)
    except ValueError as exc:
        raise InvalidInputError(field, str(exc)) from exc
    if amount <= 0:
        raise InvalidInputError(field, f"must be greater than 0, got {amount}")
    return amount


def _positive_count(value, field: str) -> int:
    amount = _positive_amount(value, field)
    if amount != amount.to_integral_value():
        raise InvalidInputError(field, f"must be a whole number, got {amount}")
    return int(amount)


def _coerce_unit(unit, allowed: tuple[WeightUnit, ...], default: WeightUnit) -> WeightUnit:
    if unit is None or unit == "":
        return default
    try:
        resolved = WeightUnit(unit)
    except ValueError:
        raise InvalidInputError("unit", f"unsupported unit {unit!r}") from None
    if resolved not in allowed:
        raise InvalidInputError(
            "unit",
            f"{resolved.value} not accepted, expected one of "
            f"{', '.join(u.value for u in allowed)}",
        )
    return resolved


class LedgerEngine:
    """
    Conversion and level arithmetic for steel, cement and diesel.

    Contract:
        Stateless apart from the configured standard rod length.  Every
        method returns new frozen values; inputs are never mutated.
    """

    def __init__(self, standard_length: Decimal = STANDARD_ROD_LENGTH):
        self._standard_length = resolve_length(standard_length)

    @property
    def standard_length(self) -> Decimal:
        return self._standard_length

    def resolve_length(self, length) -> Decimal:
        return resolve_length(length, self._standard_length)

    # -----------------------------------------------------------------
    # Conversion
    # -----------------------------------------------------------------

    @traced_engine(
        "ledger.convert_incoming", "1.0",
        fingerprint_fields=("kind", "variant", "input_amount", "input_unit", "length"),
    )
    def convert_incoming(
        self,
        kind: MaterialKind,
        variant,
        input_amount,
        input_unit=None,
        length=None,
    ) -> Conversion:
        """
        Convert a received amount into stocked quantity and weight.

        Steel: the amount is a weight in tonnes or kg; pieces are the floor
        of weight over piece weight, and the remainder is reported as
        wastage.  Cement: the amount is a bag count.  Diesel: the amount is
        stored as given.
        """
        kind = MaterialKind(kind)

        if kind is MaterialKind.STEEL:
            diameter = normalize_steel_variant(variant)
            rod_length = self.resolve_length(length)
            unit = _coerce_unit(
                input_unit, (WeightUnit.TONNES, WeightUnit.KG), WeightUnit.TONNES,
            )
            amount = _positive_amount(input_amount, "input_amount")
            piece_kg = steel_kg_per_metre(diameter) * rod_length
            input_kg = amount * KG_PER_TONNE if unit is WeightUnit.TONNES else amount
            pieces = int(input_kg // piece_kg)
            weight = pieces * piece_kg / KG_PER_TONNE
            input_weight = input_kg / KG_PER_TONNE
            wastage = input_weight - weight
            if pieces == 0:
                logger.warning(
                    "steel_input_below_one_piece",
                    extra={
                        "variant": diameter,
                        "input_kg": input_kg,
                        "piece_kg": piece_kg,
                    },
                )
            return Conversion(
                kind=kind,
                type=TransactionType.INCOMING,
                variant=diameter,
                quantity_units=pieces,
                weight=weight,
                length=rod_length,
                weight_unit=unit,
                input_weight=input_weight,
                wastage=wastage,
                unit_weight_kg=piece_kg,
            )

        if kind is MaterialKind.CEMENT:
            grade = normalize_cement_variant(variant)
            bags = _positive_count(input_amount, "input_amount")
            bag_kg = cement_bag_kg(grade)
            return Conversion(
                kind=kind,
                type=TransactionType.INCOMING,
                variant=grade,
                quantity_units=bags,
                weight=bags * bag_kg / KG_PER_TONNE,
                unit_weight_kg=bag_kg,
            )

        unit = _coerce_unit(
            input_unit, (WeightUnit.LITRES, WeightUnit.KG), WeightUnit.LITRES,
        )
        amount = _positive_amount(input_amount, "input_amount")
        # kg is recorded as entered, not converted to litres
        return Conversion(
            kind=kind,
            type=TransactionType.INCOMING,
            variant=None,
            quantity_units=0,
            weight=amount,
            weight_unit=unit,
        )

    @traced_engine(
        "ledger.convert_outgoing", "1.0",
        fingerprint_fields=("kind", "variant", "quantity", "length"),
    )
    def convert_outgoing(
        self,
        kind: MaterialKind,
        variant,
        quantity,
        current_level: InventoryLevel | None,
        length=None,
        unit=None,
    ) -> Conversion:
        """
        Convert a dispatch request and check it against the current level.

        Steel and cement take a piece/bag count; diesel takes the amount
        directly.  Raises InsufficientStockError without touching anything
        when the request exceeds the level.
        """
        kind = MaterialKind(kind)

        if kind is MaterialKind.DIESEL:
            resolved_unit = _coerce_unit(
                unit, (WeightUnit.LITRES, WeightUnit.KG), WeightUnit.LITRES,
            )
            amount = _positive_amount(quantity, "quantity")
            available = current_level.total_weight if current_level else ZERO
            if amount > available:
                raise InsufficientStockError(kind.value, None, available, amount)
            return Conversion(
                kind=kind,
                type=TransactionType.OUTGOING,
                variant=None,
                quantity_units=0,
                weight=amount,
                weight_unit=resolved_unit,
            )

        if kind is MaterialKind.STEEL:
            key = normalize_steel_variant(variant)
            rod_length = self.resolve_length(length)
            unit_kg = steel_kg_per_metre(key) * rod_length
        else:
            key = normalize_cement_variant(variant)
            rod_length = None
            unit_kg = cement_bag_kg(key)

        count = _positive_count(quantity, "quantity")
        available_units = current_level.quantity_units if current_level else 0
        if count > available_units:
            raise InsufficientStockError(kind.value, key, available_units, count)

        return Conversion(
            kind=kind,
            type=TransactionType.OUTGOING,
            variant=key,
            quantity_units=count,
            weight=count * unit_kg / KG_PER_TONNE,
            length=rod_length,
            unit_weight_kg=unit_kg,
        )

    # -----------------------------------------------------------------
    # Level mutation
    # -----------------------------------------------------------------

    @traced_engine("ledger.apply_transaction", "1.0")
    def apply_transaction(
        self,
        level: InventoryLevel,
        tx: LedgerTransaction,
    ) -> LevelChange:
        """Add an incoming transaction to the level, or subtract an outgoing one."""
        sign = 1 if tx.is_incoming else -1
        return self._shift(level, tx, sign, operation="apply")

    @traced_engine("ledger.reverse_transaction", "1.0")
    def reverse_transaction(
        self,
        level: InventoryLevel,
        tx: LedgerTransaction,
    ) -> LevelChange:
        """Undo a transaction's effect: deleting an incoming subtracts, an outgoing adds back."""
        sign = -1 if tx.is_incoming else 1
        return self._shift(level, tx, sign, operation="reverse")

    def _shift(
        self,
        level: InventoryLevel,
        tx: LedgerTransaction,
        sign: int,
        operation: str,
    ) -> LevelChange:
        raw_units = level.quantity_units + sign * tx.quantity_units
        raw_weight = level.total_weight + sign * tx.weight

        units = max(raw_units, 0)
        weight = max(raw_weight, ZERO)
        clamped = raw_units < 0 or raw_weight < ZERO

        after = level.with_values(units, weight)
        change = LevelChange(
            before=level,
            after=after,
            clamped=clamped,
            unit_shortfall=units - raw_units,
            weight_shortfall=weight - raw_weight,
        )

        if clamped:
            logger.warning(
                "inventory_level_clamped",
                extra={
                    "operation": operation,
                    "transaction_id": str(tx.id),
                    "transaction_type": tx.type.value,
                    "variant": level.variant,
                    "units_before": level.quantity_units,
                    "weight_before": level.total_weight,
                    "units_requested": tx.quantity_units,
                    "weight_requested": tx.weight,
                    "unit_shortfall": change.unit_shortfall,
                    "weight_shortfall": change.weight_shortfall,
                },
            )
        return change

    # -----------------------------------------------------------------
    # Replay / reconciliation
    # -----------------------------------------------------------------

    @traced_engine("ledger.replay", "1.0", fingerprint_fields=("kind", "variant", "length"))
    def replay(
        self,
        transactions: Iterable[LedgerTransaction],
        kind: MaterialKind,
        variant: str | None = None,
        length: Decimal | None = None,
    ) -> tuple[int, Decimal]:
        """
        Unclamped (units, weight) implied by the ledger for one level key.

        Steel rows match on variant and length, cement on variant, and
        every diesel row matches.
        """
        kind = MaterialKind(kind)
        units = 0
        weight = ZERO
        for tx in transactions:
            if tx.kind is not kind:
                continue
            if kind is not MaterialKind.DIESEL and tx.variant != variant:
                continue
            if kind is MaterialKind.STEEL and self.resolve_length(tx.length) != self.resolve_length(length):
                continue
            sign = 1 if tx.is_incoming else -1
            units += sign * tx.quantity_units
            weight += sign * tx.weight
        return units, weight

    def reconcile(
        self,
        level: InventoryLevel,
        transactions: Iterable[LedgerTransaction],
        tolerance: Decimal = Decimal("0.001"),
    ) -> ReconciliationResult:
        """Compare a stored level with the ledger replay for its key."""
        expected_units, expected_weight = self.replay(
            transactions, level.kind, level.variant, level.length,
        )
        result = ReconciliationResult(
            stored=level,
            expected_units=expected_units,
            expected_weight=expected_weight,
            unit_difference=level.quantity_units - expected_units,
            weight_difference=level.total_weight - expected_weight,
            tolerance=tolerance,
        )
        if not result.is_consistent:
            logger.warning(
                "ledger_level_divergence",
                extra={
                    "variant": level.variant,
                    "length": level.length,
                    "stored_units": level.quantity_units,
                    "expected_units": expected_units,
                    "stored_weight": level.total_weight,
                    "expected_weight": expected_weight,
                },
            )
        return result
