"""Tests for outlet allocations and self stock-outs.

Multi-material stock-outs are atomic: one short line fails the whole
stock-out and no batch of any material is consumed.
"""

import logging
from datetime import date
from decimal import Decimal

import pytest

from kitchen_stock.services.audit_service import get_audit_log
from kitchen_stock.services.batch_ledger_service import get_on_hand_quantity, receive_batch
from kitchen_stock.services.dto import AllocationDraft
from kitchen_stock.services.exceptions import (
    InsufficientStock,
    OutletNotFound,
    RawMaterialNotFound,
    ValidationError,
)
from kitchen_stock.services.stock_out_service import (
    allocate_to_outlet,
    get_stock_out_history,
    record_self_stock_out,
)


@pytest.fixture
def stocked(two_batches):
    """Rice 10 @ 2 + 10 @ 3, oil 8 @ 150."""
    receive_batch(two_batches["kitchen_id"], two_batches["oil_id"], 8, 150)
    return two_batches


class TestAllocationDraft:
    def test_merges_lines_for_same_material(self):
        draft = AllocationDraft(cloud_kitchen_id=1)
        draft.add(7, "2.5")
        draft.add(9, 4)
        draft.add(7, 1)

        requests = draft.requests()
        assert [(r.raw_material_id, r.quantity) for r in requests] == [
            (7, Decimal("3.5")),
            (9, Decimal("4")),
        ]
        assert len(draft) == 2

    def test_set_remove_and_clear(self):
        draft = AllocationDraft(cloud_kitchen_id=1)
        draft.add(7, 2)
        draft.set(7, 5)
        assert draft.requests()[0].quantity == Decimal("5")

        draft.remove(7)
        assert draft.is_empty()

        draft.add(9, 1)
        draft.clear()
        assert len(draft) == 0

    def test_rejects_non_positive_quantity(self):
        draft = AllocationDraft(cloud_kitchen_id=1)
        with pytest.raises(ValidationError):
            draft.add(7, 0)


class TestAllocateToOutlet:
    def test_allocates_all_lines_fifo(self, stocked):
        draft = AllocationDraft(stocked["kitchen_id"])
        draft.add(stocked["rice_id"], 12)
        draft.add(stocked["oil_id"], 3)

        stock_out = allocate_to_outlet(draft, stocked["outlet_id"], allocated_by="shift-lead")

        assert stock_out.stock_out_type == "allocation"
        assert stock_out.outlet_id == stocked["outlet_id"]
        items = {item.raw_material_id: item for item in stock_out.items}
        assert items[stocked["rice_id"]].quantity == Decimal("12")
        assert items[stocked["rice_id"]].total_cost == Decimal("26")  # 10 @ 2 + 2 @ 3
        assert items[stocked["oil_id"]].total_cost == Decimal("450")
        assert stock_out.total_cost == Decimal("476")

        assert get_on_hand_quantity(stocked["kitchen_id"], stocked["rice_id"]) == Decimal("8")
        assert get_on_hand_quantity(stocked["kitchen_id"], stocked["oil_id"]) == Decimal("5")

    def test_short_line_fails_whole_allocation(self, stocked, caplog):
        draft = AllocationDraft(stocked["kitchen_id"])
        draft.add(stocked["rice_id"], 5)
        draft.add(stocked["oil_id"], 9)

        with caplog.at_level(logging.WARNING):
            with pytest.raises(InsufficientStock) as exc_info:
                allocate_to_outlet(draft, stocked["outlet_id"])

        assert exc_info.value.raw_material_id == stocked["oil_id"]
        assert exc_info.value.shortfall == Decimal("1")
        assert get_on_hand_quantity(stocked["kitchen_id"], stocked["rice_id"]) == Decimal("20")
        assert get_on_hand_quantity(stocked["kitchen_id"], stocked["oil_id"]) == Decimal("8")
        assert get_stock_out_history(stocked["kitchen_id"]) == []
        assert "allocate_to_outlet: insufficient_stock" in caplog.text

    def test_outlet_of_other_kitchen_rejected(self, stocked):
        from kitchen_stock.services.catalog_service import create_outlet

        foreign = create_outlet(stocked["other_kitchen_id"], "Roll Counter", "OUT-09")
        draft = AllocationDraft(stocked["kitchen_id"])
        draft.add(stocked["rice_id"], 1)

        with pytest.raises(OutletNotFound):
            allocate_to_outlet(draft, foreign.id)
        assert get_on_hand_quantity(stocked["kitchen_id"], stocked["rice_id"]) == Decimal("20")

    def test_unknown_material_rejected(self, stocked):
        draft = AllocationDraft(stocked["kitchen_id"])
        draft.add(stocked["rice_id"], 1)
        draft.add(9999, 1)

        with pytest.raises(RawMaterialNotFound):
            allocate_to_outlet(draft, stocked["outlet_id"])
        assert get_on_hand_quantity(stocked["kitchen_id"], stocked["rice_id"]) == Decimal("20")

    def test_empty_draft_rejected(self, stocked):
        with pytest.raises(ValidationError, match="at least one item"):
            allocate_to_outlet(AllocationDraft(stocked["kitchen_id"]), stocked["outlet_id"])

    def test_writes_audit_entry(self, stocked):
        draft = AllocationDraft(stocked["kitchen_id"])
        draft.add(stocked["rice_id"], 2)

        stock_out = allocate_to_outlet(draft, stocked["outlet_id"], allocated_by="shift-lead")

        entries = get_audit_log(stocked["kitchen_id"], action="stock_allocated")
        assert len(entries) == 1
        assert entries[0].entity_id == stock_out.id
        assert entries[0].new_values["items"] == {str(stocked["rice_id"]): "2.000"}


class TestSelfStockOut:
    def test_records_self_stock_out(self, stocked):
        draft = AllocationDraft(stocked["kitchen_id"])
        draft.add(stocked["oil_id"], 2)

        stock_out = record_self_stock_out(draft, "Staff meal", allocated_by="chef")

        assert stock_out.stock_out_type == "self"
        assert stock_out.outlet_id is None
        assert stock_out.reason == "Staff meal"
        assert get_on_hand_quantity(stocked["kitchen_id"], stocked["oil_id"]) == Decimal("6")

    def test_reason_required(self, stocked):
        draft = AllocationDraft(stocked["kitchen_id"])
        draft.add(stocked["oil_id"], 2)

        with pytest.raises(ValidationError, match="Reason is required"):
            record_self_stock_out(draft, "")


class TestStockOutHistory:
    def test_filters_by_type_and_outlet(self, stocked):
        allocation = AllocationDraft(stocked["kitchen_id"])
        allocation.add(stocked["rice_id"], 1)
        allocated = allocate_to_outlet(
            allocation, stocked["outlet_id"], allocation_date=date(2026, 1, 8)
        )

        own_use = AllocationDraft(stocked["kitchen_id"])
        own_use.add(stocked["rice_id"], 1)
        used = record_self_stock_out(own_use, "Trial batch", allocation_date=date(2026, 1, 9))

        history = get_stock_out_history(stocked["kitchen_id"])
        assert [s.id for s in history] == [used.id, allocated.id]
        assert len(history[0].items) == 1

        by_outlet = get_stock_out_history(stocked["kitchen_id"], outlet_id=stocked["outlet_id"])
        assert [s.id for s in by_outlet] == [allocated.id]

        self_only = get_stock_out_history(stocked["kitchen_id"], stock_out_type="self")
        assert [s.id for s in self_only] == [used.id]
