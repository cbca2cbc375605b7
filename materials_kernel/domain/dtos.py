"""
DTOs -- Pure domain data transfer objects for the materials ledger.

Responsibility:
    Defines the immutable records that flow between engines, selectors and
    services: InventoryLevel, LedgerTransaction, Attachment, PeriodFilter and
    SiteRecord, plus the material/transaction enums.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Selectors convert ORM
    rows into these DTOs; engines accept and return only these DTOs.

Invariants enforced:
    - Quantities are non-negative ints and weights non-negative Decimals.
    - Transactions are frozen; a ledger entry is never mutated after creation.
    - Steel and cement always carry a variant; diesel never does.

Failure modes:
    - ValueError from __post_init__ on negative quantities or weights.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid4


class MaterialKind(str, Enum):
    STEEL = "steel"
    CEMENT = "cement"
    DIESEL = "diesel"

    @property
    def unit_label(self) -> str:
        """Label for quantity_units (diesel has no unit count)."""
        return {
            MaterialKind.STEEL: "pieces",
            MaterialKind.CEMENT: "bags",
            MaterialKind.DIESEL: "",
        }[self]


class TransactionType(str, Enum):
    INCOMING = "incoming"
    OUTGOING = "outgoing"


class WeightUnit(str, Enum):
    TONNES = "tonnes"
    KG = "kg"
    LITRES = "litres"


class PeriodKind(str, Enum):
    LAST_7_DAYS = "last7days"
    LAST_30_DAYS = "last30days"
    LAST_90_DAYS = "last90days"
    LAST_YEAR = "lastYear"
    CUSTOM = "custom"


class SiteStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


ZERO = Decimal("0")

# Brand recorded on every steel level row
STEEL_BRAND = "Standard"


@dataclass(frozen=True)
class Attachment:
    """Stored bill or issue-slip reference."""

    path: str
    original_name: str


@dataclass(frozen=True)
class InventoryLevel:
    """
    Current stock for one (site, material, variant[, length]).

    ``length`` is only meaningful for steel (rod length in metres).  For
    diesel ``variant`` is None and ``quantity_units`` stays 0.
    """

    kind: MaterialKind
    variant: str | None = None
    length: Decimal | None = None
    quantity_units: int = 0
    total_weight: Decimal = ZERO
    site_id: UUID | None = None

    def __post_init__(self) -> None:
        if self.quantity_units < 0:
            raise ValueError(
                f"quantity_units cannot be negative: {self.quantity_units}"
            )
        if self.total_weight < ZERO:
            raise ValueError(f"total_weight cannot be negative: {self.total_weight}")

    @classmethod
    def empty(
        cls,
        kind: MaterialKind,
        variant: str | None = None,
        length: Decimal | None = None,
        site_id: UUID | None = None,
    ) -> InventoryLevel:
        return cls(kind=kind, variant=variant, length=length, site_id=site_id)

    @property
    def is_empty(self) -> bool:
        return self.quantity_units == 0 and self.total_weight == ZERO

    @property
    def weight_per_unit(self) -> Decimal:
        """Average weight of one piece/bag in tonnes, 0 when empty."""
        if self.quantity_units == 0:
            return ZERO
        return self.total_weight / self.quantity_units

    def with_values(self, quantity_units: int, total_weight: Decimal) -> InventoryLevel:
        return replace(self, quantity_units=quantity_units, total_weight=total_weight)


@dataclass(frozen=True)
class LedgerTransaction:
    """
    Immutable ledger entry.

    ``timestamp`` is normally an aware datetime.  Rows imported from other
    systems may carry an ISO string or nothing; the period filter handles
    both.  ``counterparty`` is the supplier for incoming and the recipient
    (contractor) for outgoing transactions.
    """

    kind: MaterialKind
    type: TransactionType
    variant: str | None
    quantity_units: int
    weight: Decimal
    timestamp: datetime | str | None
    counterparty: str | None = None
    length: Decimal | None = None
    input_weight: Decimal | None = None
    weight_unit: WeightUnit | None = None
    wastage: Decimal | None = None
    attachment: Attachment | None = None
    sequence: int = 0
    site_id: UUID | None = None
    id: UUID = field(default_factory=uuid4)

    def __post_init__(self) -> None:
        if self.quantity_units < 0:
            raise ValueError(
                f"quantity_units cannot be negative: {self.quantity_units}"
            )
        if self.weight < ZERO:
            raise ValueError(f"weight cannot be negative: {self.weight}")

    @property
    def is_incoming(self) -> bool:
        return self.type is TransactionType.INCOMING

    @property
    def imported_from(self) -> str | None:
        return self.counterparty if self.is_incoming else None

    @property
    def recipient(self) -> str | None:
        return None if self.is_incoming else self.counterparty


@dataclass(frozen=True)
class PeriodFilter:
    """
    Date-range predicate for reporting views.  Never persisted.

    ``kind`` None means "all time".  ``start``/``end`` are only read for
    CUSTOM and are calendar dates (UTC).
    """

    kind: PeriodKind | None = PeriodKind.LAST_30_DAYS
    start: date | None = None
    end: date | None = None

    @classmethod
    def of(cls, kind: str | PeriodKind | None, start=None, end=None) -> PeriodFilter:
        """Build from loose input such as ``"last7days"``."""
        if kind is None or kind == "" or kind == "all":
            return cls(kind=None)
        return cls(kind=PeriodKind(kind), start=start, end=end)


@dataclass(frozen=True)
class LowStockThresholds:
    steel: int = 50
    cement: int = 10
    diesel: Decimal = Decimal("100")

    def for_kind(self, kind: MaterialKind):
        return getattr(self, kind.value)


@dataclass(frozen=True)
class SiteRecord:
    """Read-side view of a construction site."""

    id: UUID
    site_name: str
    site_code: str
    location: str | None = None
    manager_name: str | None = None
    notes: str | None = None
    status: SiteStatus = SiteStatus.ACTIVE
    thresholds: LowStockThresholds = field(default_factory=LowStockThresholds)
    created_at: datetime | None = None
