"""
LedgerWriter -- persistence of inventory levels and ledger rows.

Responsibility:
    The only code that writes the inventory and transaction tables.
    Upserts a level by its key, appends a ledger row with the next
    sequence number, and deletes a ledger row by id.

Architecture position:
    Kernel > Services -- imperative shell.  Flush-only.

Invariants enforced:
    - Sequence numbers are max(sequence) + 1 per ledger table.
    - Upserting a level never deletes the row; zero is a valid level.
    - delete_transaction returns the removed row as a DTO so the caller can
      reverse its effect on the level.

Failure modes:
    - TransactionNotFoundError when deleting an unknown id.
    - SQLAlchemyError propagates to the caller, who maps it to
      PersistenceError with the workflow step.
"""

from uuid import UUID

from sqlalchemy import func, select

from materials_kernel.domain.dtos import (
    STEEL_BRAND,
    InventoryLevel,
    LedgerTransaction,
    MaterialKind,
)
from materials_kernel.exceptions import TransactionNotFoundError
from materials_kernel.logging_config import get_logger
from materials_kernel.models.inventory import INVENTORY_MODELS, SteelInventory
from materials_kernel.models.transaction import TRANSACTION_MODELS
from materials_kernel.selectors.inventory_selector import InventorySelector
from materials_kernel.services.base import BaseService

logger = get_logger("services.ledger_writer")


class LedgerWriter(BaseService):
    def upsert_level(
        self,
        site_id: UUID,
        level: InventoryLevel,
        actor_id: UUID | None = None,
    ) -> InventoryLevel:
        """Write ``level`` to the row for its key, creating the row if needed."""
        row = InventorySelector(self.session).find_row(
            site_id, level.kind, level.variant, level.length,
        )
        created = row is None
        if created:
            model = INVENTORY_MODELS[level.kind]
            kwargs = {"site_id": site_id, "created_by_id": actor_id}
            if model is SteelInventory:
                kwargs.update(
                    diameter=int(level.variant),
                    length=level.length,
                    brand=STEEL_BRAND,
                )
            elif level.kind is MaterialKind.CEMENT:
                kwargs["cement_type"] = level.variant
            row = model(**kwargs)
            self.session.add(row)
        row.assign(level)
        self.session.flush()

        logger.debug(
            "inventory_level_written",
            extra={
                "kind": level.kind.value,
                "variant": level.variant,
                "length": level.length,
                "quantity_units": level.quantity_units,
                "total_weight": level.total_weight,
                "level_created": created,
            },
        )
        return row.to_dto()

    def next_sequence(self, kind: MaterialKind) -> int:
        model = TRANSACTION_MODELS[MaterialKind(kind)]
        current = self.session.scalar(select(func.max(model.sequence)))
        return (current or 0) + 1

    def insert_transaction(
        self,
        tx: LedgerTransaction,
        actor_id: UUID | None = None,
    ) -> LedgerTransaction:
        """Append ``tx`` to its ledger and return it with the assigned sequence."""
        model = TRANSACTION_MODELS[tx.kind]
        row = model.from_dto(tx, self.next_sequence(tx.kind), created_by_id=actor_id)
        self.session.add(row)
        self.session.flush()

        logger.debug(
            "ledger_row_inserted",
            extra={
                "kind": tx.kind.value,
                "transaction_id": str(row.id),
                "sequence": row.sequence,
            },
        )
        return row.to_dto()

    def delete_transaction(
        self,
        kind: MaterialKind,
        transaction_id: UUID,
    ) -> LedgerTransaction:
        """Remove one ledger row and return what was removed."""
        kind = MaterialKind(kind)
        row = self.session.get(TRANSACTION_MODELS[kind], transaction_id)
        if row is None:
            raise TransactionNotFoundError(kind.value, transaction_id)
        removed = row.to_dto()
        self.session.delete(row)
        self.session.flush()

        logger.debug(
            "ledger_row_deleted",
            extra={"kind": kind.value, "transaction_id": str(transaction_id)},
        )
        return removed
