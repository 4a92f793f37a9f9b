"""Tests for multi-line stock receipts."""

from datetime import date, datetime
from decimal import Decimal

import pytest

from kitchen_stock.services.audit_service import get_audit_log
from kitchen_stock.services.batch_ledger_service import get_batches, get_fifo_batches
from kitchen_stock.services.catalog_service import get_cost_history, get_latest_cost
from kitchen_stock.services.exceptions import (
    KitchenNotFound,
    RawMaterialNotFound,
    ValidationError,
)
from kitchen_stock.services.stock_in_service import get_stock_in_history, record_stock_in


class TestRecordStockIn:
    def test_creates_one_batch_per_line(self, catalog):
        stock_in = record_stock_in(
            catalog["kitchen_id"],
            [
                {"raw_material_id": catalog["rice_id"], "quantity": "25", "unit_cost": "68.00"},
                {"raw_material_id": catalog["oil_id"], "quantity": "15", "unit_cost": "142.5"},
            ],
            received_by="store-manager",
            supplier_name="Metro Wholesale",
            invoice_number="INV-2291",
            received_at=datetime(2026, 2, 3, 7, 30),
        )

        assert stock_in.id is not None
        assert stock_in.stock_in_type == "purchase"
        assert stock_in.receipt_date == date(2026, 2, 3)
        assert stock_in.total_cost == Decimal("3837.5")  # 25 * 68 + 15 * 142.5
        assert len(stock_in.batches) == 2
        assert {b.raw_material_id for b in stock_in.batches} == {
            catalog["rice_id"],
            catalog["oil_id"],
        }
        for batch in stock_in.batches:
            assert batch.received_at == datetime(2026, 2, 3, 7, 30)
            assert batch.quantity_remaining == batch.quantity_purchased

    def test_purchase_lines_become_current_prices(self, catalog):
        stock_in = record_stock_in(
            catalog["kitchen_id"],
            [
                {"raw_material_id": catalog["rice_id"], "quantity": "25", "unit_cost": "68.00"},
                {"raw_material_id": catalog["oil_id"], "quantity": "15", "unit_cost": "142.5"},
            ],
            received_by="store-manager",
        )

        assert get_latest_cost(catalog["rice_id"]) == Decimal("68")
        assert get_latest_cost(catalog["oil_id"]) == Decimal("142.5")
        price = get_cost_history(catalog["rice_id"])[0]
        assert price.source == "purchase"
        assert price.stock_in_id == stock_in.id
        assert price.cloud_kitchen_id == catalog["kitchen_id"]
        assert price.recorded_by == "store-manager"

    def test_batches_join_fifo_queue(self, two_batches):
        stock_in = record_stock_in(
            two_batches["kitchen_id"],
            [{"raw_material_id": two_batches["rice_id"], "quantity": 5, "unit_cost": 4}],
            received_at=datetime(2026, 1, 7),
        )

        batches = get_fifo_batches(two_batches["kitchen_id"], two_batches["rice_id"])
        assert [b.id for b in batches] == [
            two_batches["b1_id"],
            two_batches["b2_id"],
            stock_in.batches[0].id,
        ]

    def test_kitchen_type_allowed(self, catalog):
        stock_in = record_stock_in(
            catalog["kitchen_id"],
            [{"raw_material_id": catalog["rice_id"], "quantity": 1, "unit_cost": 0}],
            stock_in_type="kitchen",
        )
        assert stock_in.stock_in_type == "kitchen"
        assert get_cost_history(catalog["rice_id"]) == []

    def test_adjustment_type_rejected(self, catalog):
        with pytest.raises(ValidationError, match="Invalid stock-in type"):
            record_stock_in(
                catalog["kitchen_id"],
                [{"raw_material_id": catalog["rice_id"], "quantity": 1, "unit_cost": 1}],
                stock_in_type="adjustment",
            )

    def test_empty_items_rejected(self, catalog):
        with pytest.raises(ValidationError, match="at least one item"):
            record_stock_in(catalog["kitchen_id"], [])

    def test_collects_all_line_errors(self, catalog):
        with pytest.raises(ValidationError) as exc_info:
            record_stock_in(
                catalog["kitchen_id"],
                [
                    {"raw_material_id": catalog["rice_id"], "quantity": 0, "unit_cost": 1},
                    {"raw_material_id": None, "quantity": 1, "unit_cost": 1},
                    {"raw_material_id": catalog["oil_id"], "quantity": 1, "unit_cost": -2},
                ],
            )
        assert len(exc_info.value.errors) == 3

    def test_unknown_material_rolls_back_whole_receipt(self, catalog):
        with pytest.raises(RawMaterialNotFound):
            record_stock_in(
                catalog["kitchen_id"],
                [
                    {"raw_material_id": catalog["rice_id"], "quantity": 10, "unit_cost": 2},
                    {"raw_material_id": 9999, "quantity": 1, "unit_cost": 1},
                ],
            )

        assert get_batches(catalog["kitchen_id"]) == []
        assert get_stock_in_history(catalog["kitchen_id"]) == []

    def test_unknown_kitchen_raises(self, catalog):
        with pytest.raises(KitchenNotFound):
            record_stock_in(
                9999, [{"raw_material_id": catalog["rice_id"], "quantity": 1, "unit_cost": 1}]
            )

    def test_writes_audit_entry(self, catalog):
        stock_in = record_stock_in(
            catalog["kitchen_id"],
            [{"raw_material_id": catalog["rice_id"], "quantity": 2, "unit_cost": "1.5"}],
            received_by="store-manager",
            invoice_number="INV-7",
        )

        entries = get_audit_log(catalog["kitchen_id"], action="stock_received")
        assert len(entries) == 1
        assert entries[0].entity_id == stock_in.id
        assert entries[0].new_values["invoice_number"] == "INV-7"
        assert entries[0].new_values["total_cost"] == "3.0000"


class TestStockInHistory:
    def test_newest_first_with_filters(self, catalog):
        first = record_stock_in(
            catalog["kitchen_id"],
            [{"raw_material_id": catalog["rice_id"], "quantity": 1, "unit_cost": 1}],
            received_at=date(2026, 1, 1),
        )
        second = record_stock_in(
            catalog["kitchen_id"],
            [{"raw_material_id": catalog["rice_id"], "quantity": 1, "unit_cost": 1}],
            received_at=date(2026, 1, 10),
            stock_in_type="kitchen",
        )

        history = get_stock_in_history(catalog["kitchen_id"])
        assert [s.id for s in history] == [second.id, first.id]

        january_first_week = get_stock_in_history(
            catalog["kitchen_id"], start_date=date(2026, 1, 1), end_date=date(2026, 1, 7)
        )
        assert [s.id for s in january_first_week] == [first.id]

        kitchen_only = get_stock_in_history(catalog["kitchen_id"], stock_in_type="kitchen")
        assert [s.id for s in kitchen_only] == [second.id]

    def test_other_kitchen_excluded(self, catalog):
        record_stock_in(
            catalog["kitchen_id"],
            [{"raw_material_id": catalog["rice_id"], "quantity": 1, "unit_cost": 1}],
        )
        assert get_stock_in_history(catalog["other_kitchen_id"]) == []
