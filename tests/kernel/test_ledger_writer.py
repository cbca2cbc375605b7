"""
Tests for LedgerWriter and the inventory/transaction selectors.

Covers:
- Level upsert creates then updates one row per key
- Sequence assignment and (timestamp, sequence) ordering
- Attachment columns per direction
- Delete returns the removed row
- Site scoping of every read
"""

from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from materials_kernel.domain.dtos import (
    Attachment,
    InventoryLevel,
    MaterialKind,
    TransactionType,
    WeightUnit,
)
from materials_kernel.exceptions import TransactionNotFoundError
from materials_kernel.models.inventory import SteelInventory
from materials_kernel.selectors.inventory_selector import (
    InventorySelector,
    TransactionSelector,
)
from materials_kernel.services.ledger_writer import LedgerWriter


class TestUpsertLevel:
    def test_creates_then_updates(self, session, site, level_factory):
        writer = LedgerWriter(session)
        writer.upsert_level(site.id, level_factory(quantity_units=10, total_weight="0.10656"))
        stored = writer.upsert_level(
            site.id, level_factory(quantity_units=25, total_weight="0.2664"),
        )

        assert stored.quantity_units == 25
        assert stored.total_weight == Decimal("0.2664")
        count = session.scalar(select(func.count()).select_from(SteelInventory))
        assert count == 1

    def test_debug_record_flags_new_row(self, session, site, level_factory, captured_logs):
        writer = LedgerWriter(session)
        writer.upsert_level(site.id, level_factory(quantity_units=10, total_weight="0.10656"))
        writer.upsert_level(site.id, level_factory(quantity_units=11, total_weight="0.117216"))

        written = [r for r in captured_logs() if r["message"] == "inventory_level_written"]
        assert [r["level_created"] for r in written] == [True, False]

    def test_weight_per_piece_recorded(self, session, site, level_factory):
        LedgerWriter(session).upsert_level(
            site.id, level_factory(quantity_units=469, total_weight="4.997664"),
        )
        row = InventorySelector(session).find_row(site.id, MaterialKind.STEEL, "12", Decimal("12"))
        assert row.weight_per_piece == Decimal("0.010656")
        assert row.brand == "Standard"

    def test_lengths_are_separate_levels(self, session, site, level_factory):
        writer = LedgerWriter(session)
        writer.upsert_level(site.id, level_factory(quantity_units=1, total_weight="0.010656"))
        writer.upsert_level(
            site.id,
            level_factory(quantity_units=2, total_weight="0.010656", length=Decimal("6")),
        )

        levels = InventorySelector(session).levels(site.id, MaterialKind.STEEL)
        assert [(lv.length, lv.quantity_units) for lv in levels] == [
            (Decimal("6"), 2),
            (Decimal("12"), 1),
        ]

    def test_zero_level_kept(self, session, site, level_factory):
        writer = LedgerWriter(session)
        writer.upsert_level(site.id, level_factory(MaterialKind.CEMENT, "PPC", 5, "0.25"))
        writer.upsert_level(site.id, level_factory(MaterialKind.CEMENT, "PPC", 0, "0"))

        [level] = InventorySelector(session).levels(site.id, MaterialKind.CEMENT)
        assert level.is_empty

    def test_missing_level_is_empty(self, session, site):
        level = InventorySelector(session).level(site.id, MaterialKind.DIESEL)
        assert level == InventoryLevel.empty(MaterialKind.DIESEL, site_id=site.id)


class TestTransactions:
    def test_sequence_increments(self, session, site, tx_factory):
        writer = LedgerWriter(session)
        first = writer.insert_transaction(tx_factory(site_id=site.id))
        second = writer.insert_transaction(tx_factory(site_id=site.id))

        assert second.sequence == first.sequence + 1
        assert writer.next_sequence(MaterialKind.STEEL) == second.sequence + 1
        assert writer.next_sequence(MaterialKind.CEMENT) == 1

    def test_round_trip_incoming(self, session, site, tx_factory):
        tx = tx_factory(
            site_id=site.id,
            quantity_units=469,
            weight="4.997664",
            input_weight=Decimal("5"),
            wastage=Decimal("0.002336"),
            weight_unit=WeightUnit.TONNES,
            attachment=Attachment("bills/RTP-000_1.pdf", "invoice.pdf"),
        )
        LedgerWriter(session).insert_transaction(tx)

        stored = TransactionSelector(session).get(MaterialKind.STEEL, tx.id)

        assert stored.id == tx.id
        assert stored.variant == "12"
        assert stored.quantity_units == 469
        assert stored.wastage == Decimal("0.002336")
        assert stored.imported_from == "Tata Steel"
        assert stored.recipient is None
        assert stored.attachment == Attachment("bills/RTP-000_1.pdf", "invoice.pdf")
        assert stored.timestamp == tx.timestamp

    def test_outgoing_uses_issue_slip_columns(self, session, site, tx_factory):
        tx = tx_factory(
            MaterialKind.CEMENT, TransactionType.OUTGOING, "PPC", 10, "0.5",
            counterparty="Crew B",
            site_id=site.id,
            attachment=Attachment("cement-issue-slips/RTP-000_2.jpg", "slip.jpg"),
        )
        LedgerWriter(session).insert_transaction(tx)

        [stored] = TransactionSelector(session).for_site(site.id, MaterialKind.CEMENT)
        assert stored.recipient == "Crew B"
        assert stored.attachment.path.startswith("cement-issue-slips/")

    def test_ordering_timestamp_then_sequence(self, session, site, tx_factory):
        writer = LedgerWriter(session)
        later = tx_factory(site_id=site.id)
        earlier = tx_factory(site_id=site.id, timestamp=later.timestamp - timedelta(hours=1))
        tied = tx_factory(site_id=site.id)
        for tx in (later, earlier, tied):
            writer.insert_transaction(tx)

        ids = [t.id for t in TransactionSelector(session).for_site(site.id, MaterialKind.STEEL)]
        assert ids == [earlier.id, later.id, tied.id]

        recent = TransactionSelector(session).recent(site.id, MaterialKind.STEEL, 2)
        assert [t.id for t in recent] == [tied.id, later.id]

    def test_reads_scoped_to_site(self, session, site, other_site, tx_factory):
        writer = LedgerWriter(session)
        writer.insert_transaction(tx_factory(site_id=site.id))
        writer.insert_transaction(tx_factory(site_id=other_site.id))

        assert len(TransactionSelector(session).for_site(site.id, MaterialKind.STEEL)) == 1

    def test_delete_returns_removed(self, session, site, tx_factory):
        writer = LedgerWriter(session)
        tx = writer.insert_transaction(tx_factory(site_id=site.id))

        removed = writer.delete_transaction(MaterialKind.STEEL, tx.id)

        assert removed.id == tx.id
        assert TransactionSelector(session).get(MaterialKind.STEEL, tx.id) is None

    def test_delete_unknown(self, session):
        with pytest.raises(TransactionNotFoundError):
            LedgerWriter(session).delete_transaction(MaterialKind.DIESEL, uuid4())
