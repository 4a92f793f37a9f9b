"""Stock-In Service - receipts of raw materials into a kitchen.

A receipt (StockIn) groups the lines of one delivery or invoice. Each line
becomes one batch in the ledger. The receipt is atomic: either every line is
received or none is.

Usage:
    stock_in = record_stock_in(
        cloud_kitchen_id=1,
        items=[
            {"raw_material_id": 7, "quantity": "10", "unit_cost": "2.00"},
            {"raw_material_id": 9, "quantity": "4", "unit_cost": "55.50"},
        ],
        received_by="store-manager",
        supplier_name="Metro Wholesale",
        invoice_number="INV-2291",
    )
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Union

from sqlalchemy.orm import Session, selectinload

from ..models import CostSource, StockIn, StockInType
from ..utils.constants import ZERO
from ..utils.datetime_utils import utc_now
from .audit_service import record_audit_event
from .batch_ledger_service import (
    normalize_timestamp,
    receive_batch,
    validate_quantity,
    validate_unit_cost,
)
from .catalog_service import get_kitchen, set_material_cost
from .database import run_in_session
from .dto_utils import quantize_cost
from .exceptions import ValidationError
from .logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)

RECEIPT_TYPES = (StockInType.PURCHASE.value, StockInType.KITCHEN.value)


def _validate_items(items: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Validate every line before anything is written."""
    if not items:
        raise ValidationError(["A receipt needs at least one item"])

    validated = []
    errors = []
    for index, item in enumerate(items, start=1):
        material_id = item.get("raw_material_id")
        if not material_id:
            errors.append(f"Item {index}: raw material is required")
            continue
        try:
            quantity = validate_quantity(item.get("quantity"), f"Item {index} quantity")
            unit_cost = validate_unit_cost(item.get("unit_cost"))
        except ValidationError as e:
            errors.extend(e.errors)
            continue
        validated.append(
            {"raw_material_id": material_id, "quantity": quantity, "unit_cost": unit_cost}
        )

    if errors:
        raise ValidationError(errors)
    return validated


def record_stock_in(
    cloud_kitchen_id: int,
    items: Sequence[Dict[str, Any]],
    received_by: Optional[str] = None,
    supplier_name: Optional[str] = None,
    invoice_number: Optional[str] = None,
    stock_in_type: str = StockInType.PURCHASE.value,
    received_at: Optional[Union[datetime, date]] = None,
    notes: Optional[str] = None,
    session: Optional[Session] = None,
) -> StockIn:
    """
    Record a receipt and create one batch per line.

    All lines share the receipt timestamp; FIFO order between them is the
    order of the lines. Each line of a purchase also becomes the current
    price of its material (see catalog_service.set_material_cost).

    Args:
        cloud_kitchen_id: Receiving kitchen
        items: Dicts with raw_material_id, quantity, unit_cost
        received_by: Actor recording the receipt
        supplier_name: Supplier (purchases)
        invoice_number: Supplier invoice reference
        stock_in_type: "purchase" or "kitchen"
        received_at: Receipt timestamp (defaults to now)
        notes: Free text
        session: Optional database session (caller owns transaction if provided)

    Returns:
        StockIn with its batches loaded and total_cost computed

    Raises:
        ValidationError: On empty items, invalid lines or type
        KitchenNotFound / RawMaterialNotFound: If an id is unknown
        DatabaseError: If database operation fails
    """
    if stock_in_type not in RECEIPT_TYPES:
        raise ValidationError(
            [f"Invalid stock-in type '{stock_in_type}', expected one of {', '.join(RECEIPT_TYPES)}"]
        )
    lines = _validate_items(items)
    timestamp = normalize_timestamp(received_at or utc_now())

    def _do_record(sess: Session) -> StockIn:
        get_kitchen(cloud_kitchen_id, session=sess)

        total_cost = sum((line["quantity"] * line["unit_cost"] for line in lines), ZERO)
        stock_in = StockIn(
            cloud_kitchen_id=cloud_kitchen_id,
            received_by=received_by,
            receipt_date=timestamp.date(),
            supplier_name=supplier_name,
            invoice_number=invoice_number,
            total_cost=quantize_cost(total_cost),
            stock_in_type=stock_in_type,
            notes=notes,
        )
        sess.add(stock_in)
        sess.flush()

        for line in lines:
            receive_batch(
                cloud_kitchen_id,
                line["raw_material_id"],
                line["quantity"],
                line["unit_cost"],
                received_at=timestamp,
                stock_in_id=stock_in.id,
                session=sess,
            )
            if stock_in_type == StockInType.PURCHASE.value:
                set_material_cost(
                    line["raw_material_id"],
                    line["unit_cost"],
                    recorded_by=received_by,
                    source=CostSource.PURCHASE.value,
                    cloud_kitchen_id=cloud_kitchen_id,
                    stock_in_id=stock_in.id,
                    session=sess,
                )

        sess.refresh(stock_in, attribute_names=["batches"])
        return stock_in

    stock_in = run_in_session(
        _do_record, session, f"Failed to record stock-in for kitchen {cloud_kitchen_id}"
    )

    record_audit_event(
        action="stock_received",
        entity_type="stock_in",
        entity_id=stock_in.id,
        cloud_kitchen_id=cloud_kitchen_id,
        actor=received_by,
        new_values={
            "stock_in_type": stock_in_type,
            "invoice_number": invoice_number,
            "item_count": len(lines),
            "total_cost": Decimal(str(stock_in.total_cost)),
        },
        session=session,
    )
    log_operation(
        logger,
        operation="record_stock_in",
        outcome="success",
        cloud_kitchen_id=cloud_kitchen_id,
        stock_in_id=stock_in.id,
        item_count=len(lines),
        total_cost=str(stock_in.total_cost),
    )
    return stock_in


def get_stock_in_history(
    cloud_kitchen_id: int,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    stock_in_type: Optional[str] = None,
    limit: int = 100,
    session: Optional[Session] = None,
) -> List[StockIn]:
    """
    Get receipts of a kitchen, newest first, with their batches loaded.

    Args:
        cloud_kitchen_id: Kitchen
        start_date: Optional minimum receipt_date
        end_date: Optional maximum receipt_date
        stock_in_type: Optional type filter
        limit: Maximum number of results (default 100)
    """

    def _impl(sess: Session) -> List[StockIn]:
        query = (
            sess.query(StockIn)
            .options(selectinload(StockIn.batches))
            .filter(StockIn.cloud_kitchen_id == cloud_kitchen_id)
        )
        if start_date:
            query = query.filter(StockIn.receipt_date >= start_date)
        if end_date:
            query = query.filter(StockIn.receipt_date <= end_date)
        if stock_in_type:
            query = query.filter(StockIn.stock_in_type == stock_in_type)
        query = query.order_by(StockIn.receipt_date.desc(), StockIn.id.desc()).limit(limit)
        return query.all()

    return run_in_session(_impl, session, "Failed to load stock-in history")
