"""Tests for inventory adjustments.

An adjustment must leave the ledger in the same state as the equivalent
receipt (increment) or FIFO consumption (decrement), plus its record.
"""

import logging
from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy.exc import SQLAlchemyError

from kitchen_stock.services import adjustment_service, audit_service
from kitchen_stock.services.adjustment_service import adjust, get_adjustment_history
from kitchen_stock.services.catalog_service import set_material_cost
from kitchen_stock.services.audit_service import get_audit_log
from kitchen_stock.services.batch_ledger_service import (
    consume,
    get_batches,
    get_fifo_batches,
    get_on_hand_quantity,
    receive_batch,
    valuate,
)
from kitchen_stock.services.database import session_scope
from kitchen_stock.services.exceptions import (
    InsufficientStock,
    KitchenNotFound,
    ValidationError,
)
from kitchen_stock.services.stock_in_service import get_stock_in_history


@pytest.fixture
def eighteen_on_hand(two_batches):
    """Rice on hand is 18: B1 has 8 left, B2 is untouched."""
    consume(two_batches["kitchen_id"], two_batches["rice_id"], 2)
    return two_batches


class TestAdjustDecrement:
    """Decrements consume FIFO."""

    def test_adjust_18_to_5_consumes_13_fifo(self, eighteen_on_hand):
        data = eighteen_on_hand
        result = adjust(data["kitchen_id"], data["rice_id"], 5, "Damaged goods", actor="supervisor-1")

        assert result.adjustment_type == "decrement"
        assert result.old_quantity == Decimal("18")
        assert result.new_quantity == Decimal("5")
        assert result.delta == Decimal("-13")
        assert result.plan.as_pairs() == [
            (data["b1_id"], Decimal("8")),
            (data["b2_id"], Decimal("5")),
        ]
        assert get_on_hand_quantity(data["kitchen_id"], data["rice_id"]) == Decimal("5")

    def test_decrement_equivalent_to_consume(self, catalog):
        """adjust(q - d) leaves the same batches as consume(d)."""
        for kitchen_id in (catalog["kitchen_id"], catalog["other_kitchen_id"]):
            receive_batch(kitchen_id, catalog["rice_id"], 6, 2, received_at=datetime(2026, 1, 1))
            receive_batch(kitchen_id, catalog["rice_id"], 6, 5, received_at=datetime(2026, 1, 2))

        adjust(catalog["kitchen_id"], catalog["rice_id"], 3, "Spillage")
        consume(catalog["other_kitchen_id"], catalog["rice_id"], 9)

        adjusted = [b.quantity_remaining for b in get_batches(catalog["kitchen_id"])]
        consumed = [b.quantity_remaining for b in get_batches(catalog["other_kitchen_id"])]
        assert adjusted == consumed == [Decimal("0"), Decimal("3")]
        assert valuate(catalog["kitchen_id"]) == valuate(catalog["other_kitchen_id"])

    def test_adjust_to_zero(self, two_batches):
        result = adjust(two_batches["kitchen_id"], two_batches["rice_id"], 0, "Expired")

        assert result.adjustment_type == "decrement"
        assert get_fifo_batches(two_batches["kitchen_id"], two_batches["rice_id"]) == []

    def test_decrement_records_fifo_cost(self, eighteen_on_hand):
        data = eighteen_on_hand
        adjust(data["kitchen_id"], data["rice_id"], 5, "Damaged goods")

        record = get_adjustment_history(data["kitchen_id"], data["rice_id"])[0]
        assert record.cost_impact == Decimal("31")  # 8 @ 2 + 5 @ 3


class TestAdjustIncrement:
    """Increments create an adjustment receipt and a new batch."""

    def test_increment_creates_newest_batch(self, two_batches):
        result = adjust(two_batches["kitchen_id"], two_batches["rice_id"], 26, "Physical count correction")

        assert result.adjustment_type == "increment"
        assert result.delta == Decimal("6")
        batches = get_fifo_batches(two_batches["kitchen_id"], two_batches["rice_id"])
        assert [b.id for b in batches][-1] == result.batch_id
        assert batches[-1].quantity_remaining == Decimal("6")

    def test_increment_uses_nominal_cost_by_default(self, two_batches):
        result = adjust(two_batches["kitchen_id"], two_batches["rice_id"], 21, "Other")

        batch = get_batches(two_batches["kitchen_id"], two_batches["rice_id"])[-1]
        assert batch.id == result.batch_id
        assert batch.unit_cost == Decimal("0.01")

    def test_increment_uses_caller_cost(self, two_batches):
        result = adjust(
            two_batches["kitchen_id"], two_batches["rice_id"], 22, "Other", unit_cost="2.75"
        )

        batch = get_batches(two_batches["kitchen_id"], two_batches["rice_id"])[-1]
        assert batch.id == result.batch_id
        assert batch.unit_cost == Decimal("2.75")

    def test_increment_cost_from_config(self, two_batches, monkeypatch):
        monkeypatch.setenv("KITCHEN_STOCK_ADJUSTMENT_UNIT_COST", "1.5")

        adjust(two_batches["kitchen_id"], two_batches["rice_id"], 21, "Other")

        batch = get_batches(two_batches["kitchen_id"], two_batches["rice_id"])[-1]
        assert batch.unit_cost == Decimal("1.5")

    def test_increment_defaults_to_latest_material_cost(self, two_batches, monkeypatch):
        monkeypatch.setenv("KITCHEN_STOCK_ADJUSTMENT_UNIT_COST", "1.5")
        set_material_cost(two_batches["rice_id"], "2.4")
        set_material_cost(two_batches["rice_id"], "2.6", recorded_by="purchasing")

        result = adjust(two_batches["kitchen_id"], two_batches["rice_id"], 21, "Other")

        batch = get_batches(two_batches["kitchen_id"], two_batches["rice_id"])[-1]
        assert batch.id == result.batch_id
        assert batch.unit_cost == Decimal("2.6")

    def test_increment_creates_adjustment_receipt(self, two_batches):
        result = adjust(two_batches["kitchen_id"], two_batches["rice_id"], 24, "Other", unit_cost=2)

        receipts = get_stock_in_history(two_batches["kitchen_id"], stock_in_type="adjustment")
        assert len(receipts) == 1
        assert receipts[0].id == result.stock_in_id
        assert receipts[0].total_cost == Decimal("8")
        assert [b.id for b in receipts[0].batches] == [result.batch_id]


class TestAdjustNoChange:
    def test_same_quantity_is_noop(self, two_batches):
        result = adjust(two_batches["kitchen_id"], two_batches["rice_id"], 20, "Physical count correction")

        assert result.adjustment_type == "none"
        assert not result.changed
        assert result.adjustment_id is None
        assert get_adjustment_history(two_batches["kitchen_id"]) == []
        assert len(get_batches(two_batches["kitchen_id"], two_batches["rice_id"])) == 2


class TestAdjustValidation:
    def test_negative_quantity_raises(self, two_batches):
        with pytest.raises(ValidationError, match="cannot be negative"):
            adjust(two_batches["kitchen_id"], two_batches["rice_id"], -1, "Other")

    def test_reason_required(self, two_batches):
        with pytest.raises(ValidationError, match="Reason is required"):
            adjust(two_batches["kitchen_id"], two_batches["rice_id"], 5, "  ")

    @pytest.mark.parametrize("unit_cost", ["0.00001", "-2"])
    def test_invalid_cost_rejected_before_any_write(self, two_batches, unit_cost):
        data = two_batches

        with session_scope() as session:
            with pytest.raises(ValidationError, match="Unit cost"):
                adjust(
                    data["kitchen_id"],
                    data["rice_id"],
                    25,
                    "Recount",
                    unit_cost=unit_cost,
                    session=session,
                )

        assert get_stock_in_history(data["kitchen_id"], stock_in_type="adjustment") == []
        assert get_on_hand_quantity(data["kitchen_id"], data["rice_id"]) == Decimal("20")

    def test_configured_cost_precision_rejected_before_any_write(self, two_batches, monkeypatch):
        data = two_batches
        monkeypatch.setenv("KITCHEN_STOCK_ADJUSTMENT_UNIT_COST", "0.00001")

        with session_scope() as session:
            with pytest.raises(ValidationError, match="at most 4 decimal places"):
                adjust(data["kitchen_id"], data["rice_id"], 25, "Recount", session=session)

        assert get_stock_in_history(data["kitchen_id"], stock_in_type="adjustment") == []
        assert get_adjustment_history(data["kitchen_id"]) == []

    def test_unknown_kitchen_raises(self, two_batches):
        with pytest.raises(KitchenNotFound):
            adjust(9999, two_batches["rice_id"], 5, "Other")

    def test_insufficient_stock_leaves_on_hand_unchanged(self, eighteen_on_hand, monkeypatch):
        """A decrement the batches cannot cover fails without any change."""
        data = eighteen_on_hand

        def _short_plan(kitchen_id, material_id, batches, quantity):
            raise InsufficientStock(Decimal("5"), Decimal(quantity), Decimal("13"), material_id)

        monkeypatch.setattr(adjustment_service, "plan_consumption", _short_plan)

        with pytest.raises(InsufficientStock):
            adjust(data["kitchen_id"], data["rice_id"], 0, "Damaged goods")

        assert get_on_hand_quantity(data["kitchen_id"], data["rice_id"]) == Decimal("18")
        assert get_adjustment_history(data["kitchen_id"]) == []


class TestAdjustmentRecords:
    def test_writes_adjustment_record(self, eighteen_on_hand):
        data = eighteen_on_hand
        result = adjust(
            data["kitchen_id"],
            data["rice_id"],
            5,
            "Damaged goods",
            details="Rats in store room",
            actor="supervisor-1",
        )

        records = get_adjustment_history(data["kitchen_id"], data["rice_id"])
        assert len(records) == 1
        record = records[0]
        assert record.id == result.adjustment_id
        assert record.adjustment_type == "decrement"
        assert record.old_quantity == Decimal("18")
        assert record.new_quantity == Decimal("5")
        assert record.quantity_delta == Decimal("-13")
        assert record.reason == "Damaged goods"
        assert record.details == "Rats in store room"
        assert record.created_by == "supervisor-1"
        assert record.created_at is not None

    def test_writes_audit_log_entry(self, eighteen_on_hand):
        data = eighteen_on_hand
        adjust(data["kitchen_id"], data["rice_id"], 5, "Damaged goods", actor="supervisor-1")

        entries = get_audit_log(data["kitchen_id"], action="inventory_decrement")
        assert len(entries) == 1
        assert entries[0].actor == "supervisor-1"
        assert entries[0].old_values["quantity"] == "18.000"
        assert entries[0].new_values["quantity"] == "5"
        assert entries[0].new_values["reason"] == "Damaged goods"

    def test_audit_failure_does_not_roll_back(self, eighteen_on_hand, monkeypatch, caplog):
        data = eighteen_on_hand

        def _broken_write(*args, **kwargs):
            raise SQLAlchemyError("audit table unavailable")

        monkeypatch.setattr(audit_service, "_write", _broken_write)

        with caplog.at_level(logging.WARNING):
            result = adjust(data["kitchen_id"], data["rice_id"], 5, "Damaged goods")

        assert result.new_quantity == Decimal("5")
        assert get_on_hand_quantity(data["kitchen_id"], data["rice_id"]) == Decimal("5")
        assert len(get_adjustment_history(data["kitchen_id"])) == 1
        assert "record_audit_event: failed" in caplog.text

    def test_audit_failure_inside_caller_session(self, eighteen_on_hand, monkeypatch):
        data = eighteen_on_hand
        def _broken_write(*args, **kwargs):
            raise SQLAlchemyError("audit table unavailable")

        monkeypatch.setattr(audit_service, "_write", _broken_write)

        with session_scope() as session:
            adjust(data["kitchen_id"], data["rice_id"], 7, "Spillage", session=session)

        assert get_on_hand_quantity(data["kitchen_id"], data["rice_id"]) == Decimal("7")

    def test_history_newest_first(self, two_batches):
        adjust(two_batches["kitchen_id"], two_batches["rice_id"], 15, "Spillage")
        adjust(two_batches["kitchen_id"], two_batches["rice_id"], 17, "Physical count correction")

        records = get_adjustment_history(two_batches["kitchen_id"])
        assert [r.adjustment_type for r in records] == ["increment", "decrement"]
