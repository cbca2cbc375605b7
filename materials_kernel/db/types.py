"""
Module: materials_kernel.db.types
Responsibility: Decimal coercion for weights and volumes entered by users,
    so engines never see a float.  Column precision itself comes from
    ``Base.type_annotation_map`` (Decimal -> Numeric(38, 9)).
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    selectors/ and engines.  MUST NOT import from any of those layers.

Invariants enforced:
    No floats anywhere.  Weights (tonnes) and diesel volumes (litres) are
    Decimal.
"""

from decimal import Decimal, InvalidOperation


def to_decimal(value, field: str = "value") -> Decimal:
    """
    Coerce user input to Decimal without passing through float.

    Floats are converted via ``str()`` so that ``0.1`` becomes
    ``Decimal("0.1")`` rather than its binary expansion.

    Raises:
        ValueError: If the value is not numeric or is not finite.
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise ValueError(f"{field} must be numeric, got bool")
    elif isinstance(value, (int, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation as exc:
            raise ValueError(f"{field} is not a number: {value!r}") from exc
    elif isinstance(value, float):
        result = Decimal(str(value))
    else:
        raise ValueError(f"{field} must be numeric, got {type(value).__name__}")
    if not result.is_finite():
        raise ValueError(f"{field} must be finite, got {value!r}")
    return result
