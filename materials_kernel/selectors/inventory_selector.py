"""
Module: materials_kernel.selectors.inventory_selector
Responsibility: Read access to inventory levels and ledger rows, always
    scoped to one site.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Every query filters on site_id; there is no cross-site read.
    - Ledger rows come back ordered by (timestamp, sequence).
    - A missing level is returned as an empty InventoryLevel, matching
      the "created implicitly on first incoming" lifecycle.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from materials_kernel.domain.dtos import (
    STEEL_BRAND,
    InventoryLevel,
    LedgerTransaction,
    MaterialKind,
)
from materials_kernel.models.inventory import (
    INVENTORY_MODELS,
    CementInventory,
    DieselInventory,
    SteelInventory,
)
from materials_kernel.models.transaction import TRANSACTION_MODELS
from materials_kernel.selectors.base import BaseSelector


class InventorySelector(BaseSelector):
    """Current inventory levels for a site."""

    def levels(self, site_id: UUID, kind: MaterialKind) -> list[InventoryLevel]:
        model = INVENTORY_MODELS[MaterialKind(kind)]
        stmt = select(model).where(model.site_id == site_id)
        if model is SteelInventory:
            stmt = stmt.order_by(SteelInventory.diameter, SteelInventory.length)
        elif model is CementInventory:
            stmt = stmt.order_by(CementInventory.cement_type)
        return [row.to_dto() for row in self.session.scalars(stmt)]

    def find_row(
        self,
        site_id: UUID,
        kind: MaterialKind,
        variant: str | None = None,
        length: Decimal | None = None,
    ):
        """ORM row for one level key, or None.  For writer use within a session."""
        kind = MaterialKind(kind)
        if kind is MaterialKind.STEEL:
            stmt = select(SteelInventory).where(
                SteelInventory.site_id == site_id,
                SteelInventory.diameter == int(variant),
                SteelInventory.length == length,
                SteelInventory.brand == STEEL_BRAND,
            )
        elif kind is MaterialKind.CEMENT:
            stmt = select(CementInventory).where(
                CementInventory.site_id == site_id,
                CementInventory.cement_type == variant,
            )
        else:
            stmt = select(DieselInventory).where(DieselInventory.site_id == site_id)
        return self.session.scalars(stmt).one_or_none()

    def level(
        self,
        site_id: UUID,
        kind: MaterialKind,
        variant: str | None = None,
        length: Decimal | None = None,
    ) -> InventoryLevel:
        row = self.find_row(site_id, kind, variant, length)
        if row is None:
            return InventoryLevel.empty(
                MaterialKind(kind), variant=variant, length=length, site_id=site_id,
            )
        return row.to_dto()


class TransactionSelector(BaseSelector):
    """Ledger rows for a site."""

    def for_site(self, site_id: UUID, kind: MaterialKind) -> list[LedgerTransaction]:
        model = TRANSACTION_MODELS[MaterialKind(kind)]
        stmt = (
            select(model)
            .where(model.site_id == site_id)
            .order_by(model.timestamp, model.sequence)
        )
        return [row.to_dto() for row in self.session.scalars(stmt)]

    def recent(
        self, site_id: UUID, kind: MaterialKind, limit: int,
    ) -> list[LedgerTransaction]:
        model = TRANSACTION_MODELS[MaterialKind(kind)]
        stmt = (
            select(model)
            .where(model.site_id == site_id)
            .order_by(model.timestamp.desc(), model.sequence.desc())
            .limit(limit)
        )
        return [row.to_dto() for row in self.session.scalars(stmt)]

    def get(self, kind: MaterialKind, transaction_id: UUID) -> LedgerTransaction | None:
        model = TRANSACTION_MODELS[MaterialKind(kind)]
        row = self.session.get(model, transaction_id)
        return row.to_dto() if row is not None else None
