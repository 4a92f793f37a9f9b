"""Stock-Out Service - allocations to outlets and self stock-outs.

A stock-out takes several materials out of a kitchen at once. The lines are
built in an AllocationDraft and committed together:

1. Lock every (kitchen, material) key of the draft, in sorted order
2. Plan every line against its FIFO batches
3. Only if every line is covered, apply all plans and write the header

A single short line fails the whole stock-out with InsufficientStock and no
batch is touched.

Usage:
    draft = AllocationDraft(cloud_kitchen_id=1)
    draft.add(raw_material_id=7, quantity="2.5")
    draft.add(raw_material_id=9, quantity=4)
    stock_out = allocate_to_outlet(draft, outlet_id=3, allocated_by="shift-lead")
"""

import logging
from datetime import date
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session, selectinload

from ..models import StockBatch, StockOut, StockOutItem, StockOutType
from ..utils.datetime_utils import utc_today
from .audit_service import record_audit_event
from .batch_ledger_service import apply_consumption_plan, get_fifo_batches, plan_consumption
from .catalog_service import get_kitchen, get_outlet, get_raw_material
from .database import run_in_session
from .dto import AllocationDraft, ConsumptionPlan
from .dto_utils import quantize_cost, quantity_to_string
from .exceptions import ConcurrencyConflict, InsufficientStock, ValidationError
from .ledger_locks import ledger_locks
from .logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)


def _commit_stock_out(
    draft: AllocationDraft,
    stock_out_type: str,
    outlet_id: Optional[int],
    allocated_by: Optional[str],
    reason: Optional[str],
    notes: Optional[str],
    allocation_date: Optional[date],
    session: Optional[Session],
    allocation_request_id: Optional[int] = None,
) -> StockOut:
    if draft.is_empty():
        raise ValidationError(["A stock-out needs at least one item"])

    cloud_kitchen_id = draft.cloud_kitchen_id
    requests = draft.requests()

    def _do_commit(sess: Session) -> StockOut:
        get_kitchen(cloud_kitchen_id, session=sess)
        if outlet_id is not None:
            get_outlet(outlet_id, cloud_kitchen_id, session=sess)

        # Plan every line before touching any batch
        planned: List[Tuple[ConsumptionPlan, List[StockBatch]]] = []
        for request in requests:
            get_raw_material(request.raw_material_id, session=sess)
            batches = get_fifo_batches(
                cloud_kitchen_id, request.raw_material_id, for_update=True, session=sess
            )
            plan = plan_consumption(
                cloud_kitchen_id, request.raw_material_id, batches, request.quantity
            )
            planned.append((plan, batches))

        stock_out = StockOut(
            cloud_kitchen_id=cloud_kitchen_id,
            outlet_id=outlet_id,
            allocation_request_id=allocation_request_id,
            allocated_by=allocated_by,
            allocation_date=allocation_date or utc_today(),
            stock_out_type=stock_out_type,
            reason=reason,
            notes=notes,
        )
        for plan, batches in planned:
            apply_consumption_plan(plan, batches, sess)
            stock_out.items.append(
                StockOutItem(
                    raw_material_id=plan.raw_material_id,
                    quantity=plan.quantity,
                    total_cost=quantize_cost(plan.total_cost),
                )
            )
        sess.add(stock_out)
        sess.flush()
        return stock_out

    operation = (
        "allocate_to_outlet"
        if stock_out_type == StockOutType.ALLOCATION.value
        else "record_self_stock_out"
    )

    try:
        with ledger_locks(request.key for request in requests):
            stock_out = run_in_session(
                _do_commit,
                session,
                f"Failed to record stock-out for kitchen {cloud_kitchen_id}",
                conflict_key=requests[0].key,
            )
    except InsufficientStock as e:
        log_operation(
            logger,
            operation=operation,
            outcome="insufficient_stock",
            level=logging.WARNING,
            cloud_kitchen_id=cloud_kitchen_id,
            raw_material_id=e.raw_material_id,
            requested=str(e.requested),
            shortfall=str(e.shortfall),
        )
        raise
    except ConcurrencyConflict:
        log_operation(
            logger,
            operation=operation,
            outcome="concurrency_conflict",
            level=logging.WARNING,
            cloud_kitchen_id=cloud_kitchen_id,
        )
        raise

    total_cost = sum((Decimal(str(item.total_cost)) for item in stock_out.items), Decimal("0"))
    record_audit_event(
        action="stock_allocated"
        if stock_out_type == StockOutType.ALLOCATION.value
        else "self_stock_out",
        entity_type="stock_out",
        entity_id=stock_out.id,
        cloud_kitchen_id=cloud_kitchen_id,
        actor=allocated_by,
        new_values={
            "outlet_id": outlet_id,
            "allocation_request_id": allocation_request_id,
            "reason": reason,
            "items": {
                str(item.raw_material_id): quantity_to_string(item.quantity)
                for item in stock_out.items
            },
            "total_cost": total_cost,
        },
        session=session,
    )
    log_operation(
        logger,
        operation=operation,
        outcome="success",
        cloud_kitchen_id=cloud_kitchen_id,
        stock_out_id=stock_out.id,
        outlet_id=outlet_id,
        item_count=len(stock_out.items),
        total_cost=str(total_cost),
    )
    return stock_out


def allocate_to_outlet(
    draft: AllocationDraft,
    outlet_id: int,
    allocated_by: Optional[str] = None,
    notes: Optional[str] = None,
    allocation_date: Optional[date] = None,
    session: Optional[Session] = None,
    allocation_request_id: Optional[int] = None,
) -> StockOut:
    """
    Allocate the draft's materials from its kitchen to an outlet.

    Args:
        draft: Lines to allocate; draft.cloud_kitchen_id is the source kitchen
        outlet_id: Receiving outlet, must belong to the kitchen
        allocated_by: Actor committing the allocation
        notes: Free text
        allocation_date: Date of the movement (defaults to today, UTC)
        session: Optional database session (caller owns transaction if provided)
        allocation_request_id: Outlet request this allocation fulfils

    Returns:
        StockOut with one StockOutItem per material, each carrying its FIFO cost

    Raises:
        ValidationError: If the draft is empty
        KitchenNotFound / OutletNotFound / RawMaterialNotFound: Unknown ids
        InsufficientStock: If any line is short; nothing is consumed
        ConcurrencyConflict: If batches changed concurrently; retry the call
        DatabaseError: If database operation fails
    """
    if outlet_id is None:
        raise ValidationError(["Outlet is required for an allocation"])
    return _commit_stock_out(
        draft,
        StockOutType.ALLOCATION.value,
        outlet_id=outlet_id,
        allocated_by=allocated_by,
        reason=None,
        notes=notes,
        allocation_date=allocation_date,
        session=session,
        allocation_request_id=allocation_request_id,
    )


def record_self_stock_out(
    draft: AllocationDraft,
    reason: str,
    allocated_by: Optional[str] = None,
    notes: Optional[str] = None,
    allocation_date: Optional[date] = None,
    session: Optional[Session] = None,
) -> StockOut:
    """
    Record stock the kitchen used itself (no outlet).

    Same all-or-nothing behaviour as allocate_to_outlet; a reason is required.
    """
    if reason is None or not str(reason).strip():
        raise ValidationError(["Reason is required for a self stock-out"])
    return _commit_stock_out(
        draft,
        StockOutType.SELF.value,
        outlet_id=None,
        allocated_by=allocated_by,
        reason=str(reason).strip(),
        notes=notes,
        allocation_date=allocation_date,
        session=session,
    )


def get_stock_out_history(
    cloud_kitchen_id: int,
    outlet_id: Optional[int] = None,
    stock_out_type: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    limit: int = 100,
    session: Optional[Session] = None,
) -> List[StockOut]:
    """Get stock-outs of a kitchen, newest first, with their items loaded."""

    def _impl(sess: Session) -> List[StockOut]:
        query = (
            sess.query(StockOut)
            .options(selectinload(StockOut.items))
            .filter(StockOut.cloud_kitchen_id == cloud_kitchen_id)
        )
        if outlet_id is not None:
            query = query.filter(StockOut.outlet_id == outlet_id)
        if stock_out_type:
            query = query.filter(StockOut.stock_out_type == stock_out_type)
        if start_date:
            query = query.filter(StockOut.allocation_date >= start_date)
        if end_date:
            query = query.filter(StockOut.allocation_date <= end_date)
        query = query.order_by(StockOut.allocation_date.desc(), StockOut.id.desc()).limit(limit)
        return query.all()

    return run_in_session(_impl, session, "Failed to load stock-out history")
