"""
Module: materials_kernel.models.transaction
Responsibility: ORM models for the three per-material transaction ledgers.
Architecture position: Kernel > Models.  Inherits TrackedBase.  Rows are
    append-only; the only removal path is LedgerWriter.delete_transaction.

Invariants enforced:
    - ``sequence`` is unique per table and strictly increasing in insertion
      order; it breaks timestamp ties.
    - Incoming rows carry ``imported_from`` and a bill attachment; outgoing
      rows carry ``recipient`` and an issue-slip attachment.
    - All weights use Decimal (Numeric(38,9)).
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID

from sqlalchemy import BigInteger, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from materials_kernel.db.base import TrackedBase
from materials_kernel.domain.dtos import (
    Attachment,
    LedgerTransaction,
    MaterialKind,
    TransactionType,
    WeightUnit,
)


class LedgerRowBase(TrackedBase):
    """Columns shared by the steel, cement and diesel ledgers."""

    __abstract__ = True

    kind: ClassVar[MaterialKind]

    site_id: Mapped[UUID] = mapped_column()
    sequence: Mapped[int] = mapped_column(BigInteger, unique=True)
    type: Mapped[str] = mapped_column(String(20))
    weight: Mapped[Decimal] = mapped_column()
    weight_unit: Mapped[str | None] = mapped_column(String(20), nullable=True)
    imported_from: Mapped[str | None] = mapped_column(String(200), nullable=True)
    recipient: Mapped[str | None] = mapped_column(String(200), nullable=True)
    bill_file_name: Mapped[str | None] = mapped_column(String(500), nullable=True)
    bill_file_original_name: Mapped[str | None] = mapped_column(String(500), nullable=True)
    issue_slip_file_name: Mapped[str | None] = mapped_column(String(500), nullable=True)
    issue_slip_file_original_name: Mapped[str | None] = mapped_column(String(500), nullable=True)
    timestamp: Mapped[datetime] = mapped_column()

    # Material-specific hooks

    def _variant(self) -> str | None:
        return None

    def _units(self) -> int:
        return 0

    def _extra_fields(self) -> dict:
        return {}

    def _assign_specific(self, tx: LedgerTransaction) -> None:
        pass

    def to_dto(self) -> LedgerTransaction:
        tx_type = TransactionType(self.type)
        if tx_type is TransactionType.INCOMING:
            counterparty = self.imported_from
            path, original = self.bill_file_name, self.bill_file_original_name
        else:
            counterparty = self.recipient
            path, original = self.issue_slip_file_name, self.issue_slip_file_original_name
        attachment = None
        if path:
            attachment = Attachment(path=path, original_name=original or path)
        return LedgerTransaction(
            id=self.id,
            site_id=self.site_id,
            kind=self.kind,
            type=tx_type,
            variant=self._variant(),
            quantity_units=self._units(),
            weight=self.weight,
            timestamp=self.timestamp,
            counterparty=counterparty,
            weight_unit=WeightUnit(self.weight_unit) if self.weight_unit else None,
            attachment=attachment,
            sequence=self.sequence,
            **self._extra_fields(),
        )

    @classmethod
    def from_dto(cls, tx: LedgerTransaction, sequence: int, created_by_id: UUID | None = None):
        row = cls(
            id=tx.id,
            site_id=tx.site_id,
            sequence=sequence,
            type=tx.type.value,
            weight=tx.weight,
            weight_unit=tx.weight_unit.value if tx.weight_unit else None,
            timestamp=tx.timestamp,
            created_by_id=created_by_id,
        )
        if tx.is_incoming:
            row.imported_from = tx.counterparty
            if tx.attachment:
                row.bill_file_name = tx.attachment.path
                row.bill_file_original_name = tx.attachment.original_name
        else:
            row.recipient = tx.counterparty
            if tx.attachment:
                row.issue_slip_file_name = tx.attachment.path
                row.issue_slip_file_original_name = tx.attachment.original_name
        row._assign_specific(tx)
        return row


class SteelTransaction(LedgerRowBase):
    __tablename__ = "steel_transactions"

    __table_args__ = (
        Index("idx_steel_tx_site_ts", "site_id", "timestamp"),
    )

    kind = MaterialKind.STEEL

    diameter: Mapped[int] = mapped_column(Integer)
    pieces: Mapped[int] = mapped_column(Integer)
    length: Mapped[Decimal] = mapped_column()
    input_weight: Mapped[Decimal | None] = mapped_column(nullable=True)
    wastage: Mapped[Decimal | None] = mapped_column(nullable=True)

    def _variant(self) -> str:
        return str(self.diameter)

    def _units(self) -> int:
        return self.pieces

    def _extra_fields(self) -> dict:
        return {
            "length": self.length,
            "input_weight": self.input_weight,
            "wastage": self.wastage,
        }

    def _assign_specific(self, tx: LedgerTransaction) -> None:
        self.diameter = int(tx.variant)
        self.pieces = tx.quantity_units
        self.length = tx.length
        self.input_weight = tx.input_weight
        self.wastage = tx.wastage


class CementTransaction(LedgerRowBase):
    __tablename__ = "cement_transactions"

    __table_args__ = (
        Index("idx_cement_tx_site_ts", "site_id", "timestamp"),
    )

    kind = MaterialKind.CEMENT

    cement_type: Mapped[str] = mapped_column(String(100))
    bags: Mapped[int] = mapped_column(Integer)

    def _variant(self) -> str:
        return self.cement_type

    def _units(self) -> int:
        return self.bags

    def _assign_specific(self, tx: LedgerTransaction) -> None:
        self.cement_type = tx.variant
        self.bags = tx.quantity_units


class DieselTransaction(LedgerRowBase):
    __tablename__ = "diesel_transactions"

    __table_args__ = (
        Index("idx_diesel_tx_site_ts", "site_id", "timestamp"),
    )

    kind = MaterialKind.DIESEL


TRANSACTION_MODELS: dict[MaterialKind, type[LedgerRowBase]] = {
    MaterialKind.STEEL: SteelTransaction,
    MaterialKind.CEMENT: CementTransaction,
    MaterialKind.DIESEL: DieselTransaction,
}
