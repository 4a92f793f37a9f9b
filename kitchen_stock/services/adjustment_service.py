"""Adjustment Service - set on-hand quantity to a counted value.

An adjustment is expressed in ledger primitives:

- increment: a receipt of type "adjustment" with one new batch
- decrement: an ordinary FIFO consumption

Every effective adjustment writes an InventoryAdjustment record in the same
transaction as the batch change, so the ledger never changes without its
explanation. A generic AuditLog entry is written as well, best effort.

Example:
    >>> result = adjust(1, 7, new_quantity=Decimal("5"), reason="Damaged goods")
    >>> result.adjustment_type, result.old_quantity, result.new_quantity
    ('decrement', Decimal('18.000'), Decimal('5'))
"""

import logging
from decimal import Decimal
from typing import Any, List, Optional

from sqlalchemy.orm import Session

from ..models import AdjustmentType, InventoryAdjustment, StockIn, StockInType
from ..utils.config import get_config
from ..utils.constants import ZERO
from ..utils.datetime_utils import utc_now
from .audit_service import record_audit_event
from .batch_ledger_service import (
    apply_consumption_plan,
    get_fifo_batches,
    plan_consumption,
    receive_batch,
    validate_unit_cost,
)
from .catalog_service import get_kitchen, get_latest_cost, get_raw_material
from .database import run_in_session
from .dto import AdjustmentResult
from .dto_utils import quantize_cost, quantize_quantity, to_decimal
from .exceptions import InsufficientStock, ValidationError
from .ledger_locks import ledger_lock
from .logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)


def _validate(new_quantity: Any, reason: Optional[str], unit_cost: Any):
    errors = []
    quantity = to_decimal(new_quantity, "New quantity")
    if quantity < 0:
        errors.append(f"New quantity cannot be negative, got: {quantity}")
    elif quantize_quantity(quantity) != quantity:
        errors.append(f"New quantity supports at most 3 decimal places, got: {quantity}")
    if reason is None or not str(reason).strip():
        errors.append("Reason is required")

    cost = None
    if unit_cost is not None:
        try:
            cost = validate_unit_cost(unit_cost)
        except ValidationError as e:
            errors.extend(e.errors)

    if errors:
        raise ValidationError(errors)
    return quantity, str(reason).strip(), cost


def _default_unit_cost(raw_material_id: int, session: Session) -> Decimal:
    """Latest recorded cost of the material, else the configured nominal cost."""
    latest = get_latest_cost(raw_material_id, session=session)
    if latest is not None:
        return latest
    return validate_unit_cost(get_config().adjustment_unit_cost)


def adjust(
    cloud_kitchen_id: int,
    raw_material_id: int,
    new_quantity: Any,
    reason: str,
    details: Optional[str] = None,
    actor: Optional[str] = None,
    unit_cost: Any = None,
    session: Optional[Session] = None,
) -> AdjustmentResult:
    """
    Adjust on-hand quantity of a material to new_quantity.

    Args:
        cloud_kitchen_id: Kitchen
        raw_material_id: Material
        new_quantity: Counted quantity (>= 0)
        reason: Required reason (see ADJUSTMENT_REASONS)
        details: Optional free text
        actor: User identifier for the audit trail
        unit_cost: Cost of an increment batch; defaults to the latest
            recorded cost of the material, then to the configured nominal
            adjustment cost
        session: Optional database session (caller owns transaction if provided)

    With a caller session the ledger lock is released when this returns,
    before the caller commits. From then until that commit the batch version
    counter is what rejects a concurrent write to the same batches.

    Returns:
        AdjustmentResult (type "none" when the quantity is already correct)

    Raises:
        ValidationError: If new_quantity < 0, reason is empty, or the unit
            cost is negative or has more than 4 decimal places
        KitchenNotFound / RawMaterialNotFound: If an id is unknown
        InsufficientStock: Only if batches shrink between reading on-hand and
            consuming; nothing changes
        ConcurrencyConflict: If batches changed concurrently; retry the call
        DatabaseError: If database operation fails
    """
    target, reason, cost = _validate(new_quantity, reason, unit_cost)

    def _do_adjust(sess: Session) -> AdjustmentResult:
        get_kitchen(cloud_kitchen_id, session=sess)
        get_raw_material(raw_material_id, session=sess)

        batches = get_fifo_batches(cloud_kitchen_id, raw_material_id, for_update=True, session=sess)
        old_quantity = sum((Decimal(str(b.quantity_remaining)) for b in batches), ZERO)
        delta = target - old_quantity

        result = AdjustmentResult(
            cloud_kitchen_id=cloud_kitchen_id,
            raw_material_id=raw_material_id,
            adjustment_type=AdjustmentType.NONE.value,
            old_quantity=old_quantity,
            new_quantity=target,
        )
        if delta == 0:
            return result

        if delta > 0:
            increment_cost = cost
            if increment_cost is None:
                increment_cost = _default_unit_cost(raw_material_id, sess)
            stock_in = StockIn(
                cloud_kitchen_id=cloud_kitchen_id,
                received_by=actor,
                receipt_date=utc_now().date(),
                total_cost=quantize_cost(delta * increment_cost),
                stock_in_type=StockInType.ADJUSTMENT.value,
                notes=reason,
            )
            sess.add(stock_in)
            sess.flush()
            batch = receive_batch(
                cloud_kitchen_id,
                raw_material_id,
                delta,
                increment_cost,
                stock_in_id=stock_in.id,
                session=sess,
            )
            result.adjustment_type = AdjustmentType.INCREMENT.value
            result.batch_id = batch.id
            result.stock_in_id = stock_in.id
            cost_impact = stock_in.total_cost
        else:
            plan = plan_consumption(cloud_kitchen_id, raw_material_id, batches, -delta)
            apply_consumption_plan(plan, batches, sess)
            result.adjustment_type = AdjustmentType.DECREMENT.value
            result.plan = plan
            cost_impact = quantize_cost(plan.total_cost)

        record = InventoryAdjustment(
            cloud_kitchen_id=cloud_kitchen_id,
            raw_material_id=raw_material_id,
            adjustment_type=result.adjustment_type,
            old_quantity=old_quantity,
            new_quantity=target,
            quantity_delta=delta,
            reason=reason,
            details=details,
            stock_in_id=result.stock_in_id,
            cost_impact=cost_impact,
            created_by=actor,
        )
        sess.add(record)
        sess.flush()
        result.adjustment_id = record.id
        return result

    try:
        with ledger_lock(cloud_kitchen_id, raw_material_id):
            result = run_in_session(
                _do_adjust,
                session,
                f"Failed to adjust raw material {raw_material_id} in kitchen {cloud_kitchen_id}",
                conflict_key=(cloud_kitchen_id, raw_material_id),
            )
    except InsufficientStock as e:
        log_operation(
            logger,
            operation="adjust",
            outcome="insufficient_stock",
            level=logging.WARNING,
            cloud_kitchen_id=cloud_kitchen_id,
            raw_material_id=raw_material_id,
            shortfall=str(e.shortfall),
        )
        raise

    if not result.changed:
        log_operation(
            logger,
            operation="adjust",
            outcome="no_change",
            level=logging.DEBUG,
            cloud_kitchen_id=cloud_kitchen_id,
            raw_material_id=raw_material_id,
        )
        return result

    record_audit_event(
        action=f"inventory_{result.adjustment_type}",
        entity_type="inventory",
        entity_id=result.adjustment_id,
        cloud_kitchen_id=cloud_kitchen_id,
        actor=actor,
        old_values={"raw_material_id": raw_material_id, "quantity": result.old_quantity},
        new_values={
            "raw_material_id": raw_material_id,
            "quantity": result.new_quantity,
            "reason": reason,
            "details": details,
        },
        session=session,
    )
    log_operation(
        logger,
        operation="adjust",
        outcome="success",
        cloud_kitchen_id=cloud_kitchen_id,
        raw_material_id=raw_material_id,
        adjustment_type=result.adjustment_type,
        old_quantity=str(result.old_quantity),
        new_quantity=str(result.new_quantity),
    )
    return result


def get_adjustment_history(
    cloud_kitchen_id: int,
    raw_material_id: Optional[int] = None,
    limit: Optional[int] = None,
    session: Optional[Session] = None,
) -> List[InventoryAdjustment]:
    """
    Get adjustment records of a kitchen, newest first.

    Args:
        cloud_kitchen_id: Kitchen
        raw_material_id: Restrict to one material
        limit: Maximum number of records
    """

    def _impl(sess: Session) -> List[InventoryAdjustment]:
        query = sess.query(InventoryAdjustment).filter(
            InventoryAdjustment.cloud_kitchen_id == cloud_kitchen_id
        )
        if raw_material_id is not None:
            query = query.filter(InventoryAdjustment.raw_material_id == raw_material_id)
        query = query.order_by(
            InventoryAdjustment.created_at.desc(), InventoryAdjustment.id.desc()
        )
        if limit:
            query = query.limit(limit)
        return query.all()

    return run_in_session(_impl, session, "Failed to load adjustment history")
