"""
Tests for the ledger engine.

Covers:
- Incoming conversion for steel (tonnes/kg, wastage), cement (bags) and diesel
- Outgoing conversion and the stock check
- Level apply/reverse, including clamping at zero
- Replay and reconciliation against the ledger
"""

from decimal import Decimal

import pytest

from materials_engines.ledger import LedgerEngine
from materials_kernel.domain.dtos import (
    LedgerTransaction,
    MaterialKind,
    TransactionType,
    WeightUnit,
)
from materials_kernel.exceptions import (
    InsufficientStockError,
    InvalidInputError,
    UnknownVariantError,
)


class TestConvertIncomingSteel:
    def setup_method(self):
        self.engine = LedgerEngine()

    def test_five_tonnes_of_12mm(self):
        """5 t of 12 mm at 12 m stocks 469 whole pieces."""
        result = self.engine.convert_incoming(
            MaterialKind.STEEL, "12", Decimal("5"), WeightUnit.TONNES,
        )

        assert result.type is TransactionType.INCOMING
        assert result.variant == "12"
        assert result.quantity_units == 469
        assert result.weight == Decimal("4.997664")
        assert result.input_weight == Decimal("5")
        assert result.wastage == Decimal("0.002336")
        assert result.length == Decimal("12")
        assert result.unit_weight_kg == Decimal("10.656")
        assert result.weight_unit is WeightUnit.TONNES

    def test_kilograms_match_tonnes(self):
        in_kg = self.engine.convert_incoming(MaterialKind.STEEL, "12", "5000", "kg")
        in_t = self.engine.convert_incoming(MaterialKind.STEEL, "12", "5", "tonnes")

        assert in_kg.quantity_units == in_t.quantity_units
        assert in_kg.weight == in_t.weight
        assert in_kg.weight_unit is WeightUnit.KG

    def test_unit_defaults_to_tonnes(self):
        result = self.engine.convert_incoming(MaterialKind.STEEL, 12, 1)
        assert result.weight_unit is WeightUnit.TONNES
        # 1000 / 10.656 = 93.84
        assert result.quantity_units == 93

    def test_variant_with_mm_suffix(self):
        result = self.engine.convert_incoming(MaterialKind.STEEL, "16mm", "2")
        assert result.variant == "16"

    def test_custom_length(self):
        """6 m rods of 12 mm weigh 5.328 kg each."""
        result = self.engine.convert_incoming(
            MaterialKind.STEEL, "12", "1", length="6",
        )
        assert result.length == Decimal("6")
        assert result.quantity_units == 187
        assert result.weight == Decimal("0.996336")

    def test_wastage_never_negative(self):
        result = self.engine.convert_incoming(MaterialKind.STEEL, "8", "0.0474")
        # 47.4 kg is exactly 10 pieces of 4.74 kg
        assert result.quantity_units == 10
        assert result.wastage == Decimal("0")

    def test_below_one_piece_warns(self, captured_logs):
        result = self.engine.convert_incoming(MaterialKind.STEEL, "12", "0.005")

        assert result.quantity_units == 0
        assert result.weight == Decimal("0")
        assert result.wastage == Decimal("0.005")
        assert any(r["message"] == "steel_input_below_one_piece" for r in captured_logs())

    def test_unknown_diameter_rejected(self):
        with pytest.raises(UnknownVariantError) as exc_info:
            self.engine.convert_incoming(MaterialKind.STEEL, "13", "1")
        assert exc_info.value.variant == "13"

    @pytest.mark.parametrize("amount", ["0", "-1", "", None, "abc"])
    def test_invalid_amount_rejected(self, amount):
        with pytest.raises(InvalidInputError) as exc_info:
            self.engine.convert_incoming(MaterialKind.STEEL, "12", amount)
        assert exc_info.value.field == "input_amount"

    def test_litres_not_accepted_for_steel(self):
        with pytest.raises(InvalidInputError) as exc_info:
            self.engine.convert_incoming(MaterialKind.STEEL, "12", "1", "litres")
        assert exc_info.value.field == "unit"

    def test_non_positive_length_rejected(self):
        with pytest.raises(InvalidInputError):
            self.engine.convert_incoming(MaterialKind.STEEL, "12", "1", length="0")


class TestConvertIncomingCementAndDiesel:
    def setup_method(self):
        self.engine = LedgerEngine()

    def test_hundred_bags(self):
        result = self.engine.convert_incoming(MaterialKind.CEMENT, "OPC 53 Grade", 100)

        assert result.quantity_units == 100
        assert result.weight == Decimal("5.000")
        assert result.unit_weight_kg == Decimal("50")
        assert result.wastage is None

    def test_fractional_bags_rejected(self):
        with pytest.raises(InvalidInputError):
            self.engine.convert_incoming(MaterialKind.CEMENT, "PPC", "2.5")

    def test_unknown_grade_uses_default_bag(self):
        result = self.engine.convert_incoming(MaterialKind.CEMENT, "Rapid Hardening", 4)
        assert result.weight == Decimal("0.2")

    def test_diesel_litres_stored_verbatim(self):
        result = self.engine.convert_incoming(MaterialKind.DIESEL, None, "250.5")

        assert result.variant is None
        assert result.quantity_units == 0
        assert result.weight == Decimal("250.5")
        assert result.weight_unit is WeightUnit.LITRES

    def test_diesel_kg_recorded_not_converted(self):
        result = self.engine.convert_incoming(MaterialKind.DIESEL, None, "80", "kg")
        assert result.weight == Decimal("80")
        assert result.weight_unit is WeightUnit.KG


class TestConvertOutgoing:
    def setup_method(self):
        self.engine = LedgerEngine()

    def test_steel_pieces_to_weight(self, level_factory):
        level = level_factory(quantity_units=469, total_weight="4.997664")
        result = self.engine.convert_outgoing(MaterialKind.STEEL, "12", 100, level)

        assert result.type is TransactionType.OUTGOING
        assert result.quantity_units == 100
        assert result.weight == Decimal("1.0656")

    def test_request_above_level_raises(self, level_factory):
        level = level_factory(quantity_units=469, total_weight="4.997664")
        with pytest.raises(InsufficientStockError) as exc_info:
            self.engine.convert_outgoing(MaterialKind.STEEL, "12", 600, level)

        assert exc_info.value.available == 469
        assert exc_info.value.requested == 600
        assert exc_info.value.code == "INSUFFICIENT_STOCK"

    def test_missing_level_counts_as_zero(self):
        with pytest.raises(InsufficientStockError):
            self.engine.convert_outgoing(MaterialKind.CEMENT, "PPC", 1, None)

    def test_exact_level_allowed(self, level_factory):
        level = level_factory(
            MaterialKind.CEMENT, "PPC", quantity_units=20, total_weight="1",
        )
        result = self.engine.convert_outgoing(MaterialKind.CEMENT, "PPC", "20", level)
        assert result.weight == Decimal("1")

    def test_diesel_compared_by_volume(self, level_factory):
        level = level_factory(MaterialKind.DIESEL, None, total_weight="120")
        result = self.engine.convert_outgoing(MaterialKind.DIESEL, None, "120", level)
        assert result.weight == Decimal("120")

        with pytest.raises(InsufficientStockError):
            self.engine.convert_outgoing(MaterialKind.DIESEL, None, "120.01", level)

    def test_zero_quantity_rejected(self, level_factory):
        level = level_factory(quantity_units=10, total_weight="0.10656")
        with pytest.raises(InvalidInputError):
            self.engine.convert_outgoing(MaterialKind.STEEL, "12", 0, level)


class TestApplyAndReverse:
    def setup_method(self):
        self.engine = LedgerEngine()

    def test_incoming_adds(self, level_factory, tx_factory):
        level = level_factory()
        tx = tx_factory(quantity_units=469, weight="4.997664")
        change = self.engine.apply_transaction(level, tx)

        assert change.before is level
        assert change.after.quantity_units == 469
        assert change.after.total_weight == Decimal("4.997664")
        assert change.clamped is False

    def test_outgoing_subtracts(self, level_factory, tx_factory):
        level = level_factory(quantity_units=469, total_weight="4.997664")
        tx = tx_factory(
            type=TransactionType.OUTGOING, quantity_units=100, weight="1.0656",
            counterparty="Site crew A",
        )
        change = self.engine.apply_transaction(level, tx)

        assert change.after.quantity_units == 369
        assert change.after.total_weight == Decimal("3.932064")

    def test_apply_then_reverse_restores_level(self, level_factory, tx_factory):
        level = level_factory(quantity_units=30, total_weight="0.31968")
        tx = tx_factory(quantity_units=100, weight="1.0656")

        applied = self.engine.apply_transaction(level, tx).after
        restored = self.engine.reverse_transaction(applied, tx).after

        assert restored == level

    def test_reversing_outgoing_adds_back(self, level_factory, tx_factory):
        level = level_factory(quantity_units=5, total_weight="0.05328")
        tx = tx_factory(type=TransactionType.OUTGOING, quantity_units=10, weight="0.10656")
        change = self.engine.reverse_transaction(level, tx)
        assert change.after.quantity_units == 15

    def test_reverse_below_zero_clamps_and_logs(self, level_factory, tx_factory, captured_logs):
        level = level_factory(quantity_units=10, total_weight="0.10656")
        tx = tx_factory(quantity_units=100, weight="1.0656")

        change = self.engine.reverse_transaction(level, tx)

        assert change.clamped is True
        assert change.after.quantity_units == 0
        assert change.after.total_weight == Decimal("0")
        assert change.unit_shortfall == 90
        assert change.weight_shortfall == Decimal("0.95904")
        clamp_logs = [r for r in captured_logs() if r["message"] == "inventory_level_clamped"]
        assert len(clamp_logs) == 1
        assert clamp_logs[0]["operation"] == "reverse"
        assert clamp_logs[0]["unit_shortfall"] == 90

    def test_level_inputs_not_mutated(self, level_factory, tx_factory):
        level = level_factory(quantity_units=1, total_weight="0.010656")
        self.engine.apply_transaction(level, tx_factory())
        assert level.quantity_units == 1


class TestReplayAndReconcile:
    def setup_method(self):
        self.engine = LedgerEngine()

    def test_replay_filters_by_key(self, tx_factory):
        txs = [
            tx_factory(quantity_units=100, weight="1.0656"),
            tx_factory(type=TransactionType.OUTGOING, quantity_units=40, weight="0.42624"),
            tx_factory(variant="16", quantity_units=5, weight="0.09468"),
            tx_factory(quantity_units=7, weight="0.037296", length=Decimal("6")),
        ]
        units, weight = self.engine.replay(txs, MaterialKind.STEEL, "12", Decimal("12"))

        assert units == 60
        assert weight == Decimal("0.63936")

    def test_replay_treats_missing_length_as_standard(self):
        bare = LedgerTransaction(
            kind=MaterialKind.STEEL,
            type=TransactionType.INCOMING,
            variant="12",
            quantity_units=3,
            weight=Decimal("0.031968"),
            timestamp=None,
        )
        units, _ = self.engine.replay([bare], MaterialKind.STEEL, "12", Decimal("12"))
        assert units == 3

    def test_consistent_level(self, level_factory, tx_factory):
        level = level_factory(quantity_units=100, total_weight="1.0656")
        result = self.engine.reconcile(level, [tx_factory(quantity_units=100, weight="1.0656")])

        assert result.is_consistent
        assert result.unit_difference == 0

    def test_divergence_reported(self, level_factory, tx_factory, captured_logs):
        """A clamped level stays above what the ledger implies."""
        level = level_factory(quantity_units=100, total_weight="1.0656")
        result = self.engine.reconcile(level, [])

        assert not result.is_consistent
        assert result.unit_difference == 100
        assert result.expected_weight == Decimal("0")
        assert any(r["message"] == "ledger_level_divergence" for r in captured_logs())

    def test_diesel_replay_ignores_variant(self, level_factory, tx_factory):
        txs = [
            tx_factory(MaterialKind.DIESEL, variant=None, quantity_units=0, weight="200"),
            tx_factory(
                MaterialKind.DIESEL, TransactionType.OUTGOING,
                variant=None, quantity_units=0, weight="75.5",
            ),
        ]
        level = level_factory(MaterialKind.DIESEL, None, total_weight="124.5")
        assert self.engine.reconcile(level, txs).is_consistent
