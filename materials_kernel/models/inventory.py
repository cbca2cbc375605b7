"""
Module: materials_kernel.models.inventory
Responsibility: ORM models for the current inventory level of each material
    at each site.
Architecture position: Kernel > Models.  Inherits TrackedBase.  Selectors
    convert rows to InventoryLevel DTOs; LedgerWriter is the only writer.

Invariants enforced:
    - Steel levels are unique per (site_id, diameter, length, brand).
    - Cement levels are unique per (site_id, cement_type).
    - Diesel has one row per site.
    - Rows are never deleted; an exhausted level stays at zero.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from materials_kernel.db.base import TrackedBase
from materials_kernel.domain.dtos import ZERO, InventoryLevel, MaterialKind


class SteelInventory(TrackedBase):
    """Steel stock for one diameter/length/brand at a site."""

    __tablename__ = "steel_inventory"

    __table_args__ = (
        UniqueConstraint(
            "site_id", "diameter", "length", "brand",
            name="uq_steel_inventory_key",
        ),
        Index("idx_steel_inventory_site", "site_id"),
    )

    site_id: Mapped[UUID] = mapped_column(ForeignKey("sites.id"))
    diameter: Mapped[int] = mapped_column(Integer)
    length: Mapped[Decimal] = mapped_column()
    brand: Mapped[str] = mapped_column(String(100))
    pieces: Mapped[int] = mapped_column(Integer, default=0)
    weight_per_piece: Mapped[Decimal] = mapped_column(default=ZERO)
    total_weight: Mapped[Decimal] = mapped_column(default=ZERO)

    def to_dto(self) -> InventoryLevel:
        return InventoryLevel(
            kind=MaterialKind.STEEL,
            variant=str(self.diameter),
            length=self.length,
            quantity_units=self.pieces,
            total_weight=self.total_weight,
            site_id=self.site_id,
        )

    def assign(self, level: InventoryLevel) -> None:
        self.pieces = level.quantity_units
        self.total_weight = level.total_weight
        self.weight_per_piece = level.weight_per_unit


class CementInventory(TrackedBase):
    """Cement stock for one grade at a site."""

    __tablename__ = "cement_inventory"

    __table_args__ = (
        UniqueConstraint("site_id", "cement_type", name="uq_cement_inventory_key"),
        Index("idx_cement_inventory_site", "site_id"),
    )

    site_id: Mapped[UUID] = mapped_column(ForeignKey("sites.id"))
    cement_type: Mapped[str] = mapped_column(String(100))
    bags: Mapped[int] = mapped_column(Integer, default=0)
    total_weight: Mapped[Decimal] = mapped_column(default=ZERO)

    def to_dto(self) -> InventoryLevel:
        return InventoryLevel(
            kind=MaterialKind.CEMENT,
            variant=self.cement_type,
            quantity_units=self.bags,
            total_weight=self.total_weight,
            site_id=self.site_id,
        )

    def assign(self, level: InventoryLevel) -> None:
        self.bags = level.quantity_units
        self.total_weight = level.total_weight


class DieselInventory(TrackedBase):
    """Diesel volume at a site (litres)."""

    __tablename__ = "diesel_inventory"

    __table_args__ = (
        UniqueConstraint("site_id", name="uq_diesel_inventory_site"),
    )

    site_id: Mapped[UUID] = mapped_column(ForeignKey("sites.id"))
    total_weight: Mapped[Decimal] = mapped_column(default=ZERO)

    def to_dto(self) -> InventoryLevel:
        return InventoryLevel(
            kind=MaterialKind.DIESEL,
            total_weight=self.total_weight,
            site_id=self.site_id,
        )

    def assign(self, level: InventoryLevel) -> None:
        self.total_weight = level.total_weight


INVENTORY_MODELS: dict[MaterialKind, type[TrackedBase]] = {
    MaterialKind.STEEL: SteelInventory,
    MaterialKind.CEMENT: CementInventory,
    MaterialKind.DIESEL: DieselInventory,
}
