"""
Module: materials_engines.specs
Responsibility:
    Static unit-weight tables for each material kind and the lookups that
    resolve a variant key to a unit weight.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - A lookup is never silently absent.  Unknown steel diameters are
      rejected; unknown cement grades fall back to DEFAULT_BAG_KG with a
      logged warning.
    - All weights are Decimal kilograms.

Failure modes:
    - UnknownVariantError for a steel diameter outside STEEL_KG_PER_METRE.
    - InvalidInputError for a missing variant or a non-positive rod length.
"""

from __future__ import annotations

from decimal import Decimal

from materials_kernel.db.types import to_decimal
from materials_kernel.domain.dtos import MaterialKind
from materials_kernel.exceptions import InvalidInputError, UnknownVariantError
from materials_kernel.logging_config import get_logger

logger = get_logger("engines.specs")

# IS 1786 nominal mass per metre of TMT bar, keyed by diameter (mm)
STEEL_KG_PER_METRE: dict[int, Decimal] = {
    6: Decimal("0.222"),
    8: Decimal("0.395"),
    10: Decimal("0.617"),
    12: Decimal("0.888"),
    14: Decimal("1.208"),
    16: Decimal("1.578"),
    18: Decimal("2.000"),
    20: Decimal("2.469"),
    22: Decimal("2.984"),
    25: Decimal("3.853"),
    28: Decimal("4.834"),
    32: Decimal("6.313"),
    36: Decimal("7.990"),
    40: Decimal("9.864"),
}

STANDARD_ROD_LENGTH = Decimal("12")

DEFAULT_BAG_KG = Decimal("50")

CEMENT_KG_PER_BAG: dict[str, Decimal] = {
    "OPC 43 Grade": DEFAULT_BAG_KG,
    "OPC 53 Grade": DEFAULT_BAG_KG,
    "PPC": DEFAULT_BAG_KG,
    "Slag Cement": DEFAULT_BAG_KG,
    "White Cement": DEFAULT_BAG_KG,
    "Other": DEFAULT_BAG_KG,
}

KG_PER_TONNE = Decimal("1000")


def normalize_steel_variant(variant) -> str:
    """
    Canonical steel variant key: the diameter as a plain integer string.

    Accepts ``12``, ``"12"`` and ``"12mm"``.
    """
    if variant is None or str(variant).strip() == "":
        raise InvalidInputError("variant", "steel diameter is required")
    text = str(variant).strip().lower().removesuffix("mm").strip()
    try:
        diameter = int(text)
    except ValueError:
        raise UnknownVariantError(MaterialKind.STEEL.value, str(variant)) from None
    if diameter not in STEEL_KG_PER_METRE:
        raise UnknownVariantError(MaterialKind.STEEL.value, str(variant))
    return str(diameter)


def steel_kg_per_metre(variant) -> Decimal:
    return STEEL_KG_PER_METRE[int(normalize_steel_variant(variant))]


def resolve_length(length, default: Decimal = STANDARD_ROD_LENGTH) -> Decimal:
    """Rod length in metres; None or blank means the standard length."""
    if length is None or (isinstance(length, str) and not length.strip()):
        return default
    try:
        value = to_decimal(length, "length")
    except ValueError as exc:
        raise InvalidInputError("length", str(exc)) from exc
    if value <= 0:
        raise InvalidInputError("length", f"must be greater than 0, got {value}")
    return value


def steel_piece_kg(variant, length=None) -> Decimal:
    """Weight of a single rod in kilograms."""
    return steel_kg_per_metre(variant) * resolve_length(length)


def normalize_cement_variant(variant) -> str:
    if variant is None or str(variant).strip() == "":
        raise InvalidInputError("variant", "cement type is required")
    return str(variant).strip()


def cement_bag_kg(variant) -> Decimal:
    """Weight of one bag in kilograms, DEFAULT_BAG_KG for unknown grades."""
    grade = normalize_cement_variant(variant)
    bag_kg = CEMENT_KG_PER_BAG.get(grade)
    if bag_kg is None:
        logger.warning(
            "cement_grade_defaulted",
            extra={"variant": grade, "bag_kg": DEFAULT_BAG_KG},
        )
        return DEFAULT_BAG_KG
    return bag_kg


def variants_for(kind: MaterialKind) -> tuple[str, ...]:
    """Known variant keys in display order (empty for diesel)."""
    if kind is MaterialKind.STEEL:
        return tuple(str(d) for d in STEEL_KG_PER_METRE)
    if kind is MaterialKind.CEMENT:
        return tuple(CEMENT_KG_PER_BAG)
    return ()


def normalize_variant(kind: MaterialKind, variant) -> str | None:
    """Canonical variant key for any material kind (None for diesel)."""
    if kind is MaterialKind.STEEL:
        return normalize_steel_variant(variant)
    if kind is MaterialKind.CEMENT:
        return normalize_cement_variant(variant)
    return None
