"""
Module: materials_engines.tally
Responsibility:
    Detect drift between a stored steel level's weight and the weight
    implied by its piece count (pieces x kg/m x length / 1000).

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Each level is checked at its own rod length; a level without a length
      uses the standard length.
    - Differences at or below the tolerance (tonnes) are not reported.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from materials_engines.specs import (
    KG_PER_TONNE,
    STANDARD_ROD_LENGTH,
    resolve_length,
    steel_kg_per_metre,
)
from materials_engines.tracer import traced_engine
from materials_kernel.domain.dtos import InventoryLevel, MaterialKind
from materials_kernel.logging_config import get_logger

logger = get_logger("engines.tally")

DEFAULT_TALLY_TOLERANCE = Decimal("0.001")


@dataclass(frozen=True)
class TallyDiscrepancy:
    variant: str
    length: Decimal
    pieces: int
    stored_weight: Decimal
    expected_weight: Decimal

    @property
    def difference(self) -> Decimal:
        return self.stored_weight - self.expected_weight


def expected_weight(level: InventoryLevel, default_length: Decimal = STANDARD_ROD_LENGTH) -> Decimal:
    length = resolve_length(level.length, default_length)
    return level.quantity_units * steel_kg_per_metre(level.variant) * length / KG_PER_TONNE


@traced_engine("tally.verify", "1.0", fingerprint_fields=("tolerance",))
def verify_tally(
    levels: Iterable[InventoryLevel],
    tolerance: Decimal = DEFAULT_TALLY_TOLERANCE,
    default_length: Decimal = STANDARD_ROD_LENGTH,
) -> list[TallyDiscrepancy]:
    """Return a discrepancy for every steel level out of tally."""
    discrepancies: list[TallyDiscrepancy] = []
    for level in levels:
        if level.kind is not MaterialKind.STEEL:
            continue
        expected = expected_weight(level, default_length)
        if abs(level.total_weight - expected) <= tolerance:
            continue
        discrepancy = TallyDiscrepancy(
            variant=level.variant,
            length=resolve_length(level.length, default_length),
            pieces=level.quantity_units,
            stored_weight=level.total_weight,
            expected_weight=expected,
        )
        logger.warning(
            "tally_discrepancy",
            extra={
                "variant": discrepancy.variant,
                "length": discrepancy.length,
                "pieces": discrepancy.pieces,
                "stored_weight": discrepancy.stored_weight,
                "expected_weight": discrepancy.expected_weight,
            },
        )
        discrepancies.append(discrepancy)
    return discrepancies
