"""Batch Ledger Service - FIFO stock batches, consumption and valuation.

This module is the core of the stock ledger. It owns the batches of every
(kitchen, raw material) pair and exposes the four ledger operations:

- receive_batch: one receipt creates one batch
- consume: take a quantity oldest-batch-first, all or nothing
- valuate: value of the remaining stock from active batches
- (adjustments build on these in adjustment_service)

All functions are stateless and follow the session pattern:
- If session provided: caller owns transaction, don't commit
- If session is None: create own transaction via session_scope()

Invariants:
- 0 <= quantity_remaining <= quantity_purchased for every batch
- On-hand quantity is sum(quantity_remaining); it is never stored
- A consume either applies its whole plan or changes nothing

Example Usage:
    >>> from kitchen_stock.services.batch_ledger_service import consume, valuate
    >>> plan = consume(cloud_kitchen_id=1, raw_material_id=7, quantity=Decimal("12"))
    >>> plan.as_pairs()
    [(1, Decimal('10.000')), (2, Decimal('2.000'))]
    >>> valuate(1, 7).total_value
    Decimal('24.0000000')
"""

import logging
from collections import OrderedDict
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ..models import StockBatch
from ..utils.constants import ZERO
from ..utils.datetime_utils import utc_now
from .catalog_service import get_kitchen, get_raw_material
from .database import run_in_session
from .dto import ConsumptionLine, ConsumptionPlan, ConsumptionRequest, Valuation
from .dto_utils import (
    cost_to_string,
    quantity_to_string,
    quantize_cost,
    quantize_quantity,
    to_decimal,
)
from .exceptions import (
    ConcurrencyConflict,
    InsufficientStock,
    ValidationError,
)
from .ledger_locks import ledger_lock
from .logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)


# =============================================================================
# Input normalisation
# =============================================================================


def validate_quantity(value: Any, field_name: str = "Quantity") -> Decimal:
    quantity = to_decimal(value, field_name)
    if quantity <= 0:
        raise ValidationError([f"{field_name} must be positive, got: {quantity}"])
    if quantize_quantity(quantity) != quantity:
        raise ValidationError([f"{field_name} supports at most 3 decimal places, got: {quantity}"])
    return quantity


def validate_unit_cost(value: Any) -> Decimal:
    cost = to_decimal(value, "Unit cost")
    if cost < 0:
        raise ValidationError([f"Unit cost cannot be negative, got: {cost}"])
    if quantize_cost(cost) != cost:
        raise ValidationError([f"Unit cost supports at most 4 decimal places, got: {cost}"])
    return cost


def normalize_timestamp(value: Optional[Union[datetime, date]]) -> datetime:
    """Naive UTC datetime; the stored FIFO key must compare consistently."""
    if value is None:
        value = utc_now()
    elif not isinstance(value, datetime):
        value = datetime.combine(value, time.min)
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


# =============================================================================
# Receipt
# =============================================================================


def receive_batch(
    cloud_kitchen_id: int,
    raw_material_id: int,
    quantity: Any,
    unit_cost: Any,
    received_at: Optional[Union[datetime, date]] = None,
    stock_in_id: Optional[int] = None,
    session: Optional[Session] = None,
) -> StockBatch:
    """
    Record one receipt of a raw material as a new batch.

    Args:
        cloud_kitchen_id: Receiving kitchen
        raw_material_id: Material received
        quantity: Quantity received (> 0, at most 3 decimal places)
        unit_cost: Price per unit (>= 0, at most 4 decimal places)
        received_at: FIFO timestamp (defaults to now, stored as naive UTC)
        stock_in_id: Receipt header the batch belongs to
        session: Optional database session for transaction composability

    Returns:
        StockBatch with quantity_remaining == quantity_purchased

    Raises:
        ValidationError: If quantity <= 0 or unit_cost < 0
        KitchenNotFound / RawMaterialNotFound: If an id is unknown
        DatabaseError: If database operation fails
    """
    qty = validate_quantity(quantity)
    cost = validate_unit_cost(unit_cost)
    timestamp = normalize_timestamp(received_at)

    def _impl(sess: Session) -> StockBatch:
        get_kitchen(cloud_kitchen_id, session=sess)
        get_raw_material(raw_material_id, session=sess)

        batch = StockBatch(
            cloud_kitchen_id=cloud_kitchen_id,
            raw_material_id=raw_material_id,
            stock_in_id=stock_in_id,
            received_at=timestamp,
            quantity_purchased=qty,
            quantity_remaining=qty,
            unit_cost=cost,
        )
        sess.add(batch)
        sess.flush()
        return batch

    batch = run_in_session(
        _impl,
        session,
        f"Failed to receive raw material {raw_material_id} into kitchen {cloud_kitchen_id}",
    )
    log_operation(
        logger,
        operation="receive_batch",
        outcome="success",
        cloud_kitchen_id=cloud_kitchen_id,
        raw_material_id=raw_material_id,
        batch_id=batch.id,
        quantity=str(qty),
        unit_cost=str(cost),
    )
    return batch


# =============================================================================
# Batch queries
# =============================================================================


def get_fifo_batches(
    cloud_kitchen_id: int,
    raw_material_id: int,
    for_update: bool = False,
    session: Optional[Session] = None,
) -> List[StockBatch]:
    """
    Get the active batches of a (kitchen, material) in FIFO order.

    Ordered by received_at ASC, then id ASC (creation order), so batches
    received at the same instant are consumed in the order they were created.

    Args:
        cloud_kitchen_id: Kitchen
        raw_material_id: Material
        for_update: Lock the rows (SELECT ... FOR UPDATE) and reload them from
            the database; used by consuming callers
        session: Optional database session

    Returns:
        List[StockBatch] with quantity_remaining > 0, oldest first
    """

    def _impl(sess: Session) -> List[StockBatch]:
        query = (
            sess.query(StockBatch)
            .filter(
                StockBatch.cloud_kitchen_id == cloud_kitchen_id,
                StockBatch.raw_material_id == raw_material_id,
                StockBatch.quantity_remaining > 0,
            )
            .order_by(StockBatch.received_at.asc(), StockBatch.id.asc())
        )
        if for_update:
            query = query.with_for_update().populate_existing()
        return query.all()

    return run_in_session(
        _impl, session, f"Failed to load batches for raw material {raw_material_id}"
    )


def get_batches(
    cloud_kitchen_id: int,
    raw_material_id: Optional[int] = None,
    include_exhausted: bool = True,
    session: Optional[Session] = None,
) -> List[StockBatch]:
    """
    Get batch history of a kitchen, oldest first.

    Exhausted batches are included by default; they are the audit record of
    past receipts.
    """

    def _impl(sess: Session) -> List[StockBatch]:
        query = sess.query(StockBatch).filter(StockBatch.cloud_kitchen_id == cloud_kitchen_id)
        if raw_material_id is not None:
            query = query.filter(StockBatch.raw_material_id == raw_material_id)
        if not include_exhausted:
            query = query.filter(StockBatch.quantity_remaining > 0)
        return query.order_by(StockBatch.received_at.asc(), StockBatch.id.asc()).all()

    return run_in_session(
        _impl, session, f"Failed to load batch history for kitchen {cloud_kitchen_id}"
    )


def get_on_hand_quantity(
    cloud_kitchen_id: int,
    raw_material_id: int,
    session: Optional[Session] = None,
) -> Decimal:
    """
    On-hand quantity of a material at a kitchen.

    Always derived as sum(quantity_remaining) over active batches.

    Returns:
        Decimal: Total remaining quantity (0 when there is no stock)
    """

    def _impl(sess: Session) -> Decimal:
        batches = get_fifo_batches(cloud_kitchen_id, raw_material_id, session=sess)
        return sum((Decimal(str(b.quantity_remaining)) for b in batches), ZERO)

    return run_in_session(
        _impl, session, f"Failed to compute on-hand quantity for {raw_material_id}"
    )


# =============================================================================
# FIFO consumption
# =============================================================================


def plan_consumption(
    cloud_kitchen_id: int,
    raw_material_id: int,
    batches: Sequence[StockBatch],
    quantity: Any,
) -> ConsumptionPlan:
    """
    Plan a FIFO consumption over batches without changing them.

    **CRITICAL FUNCTION**: the allocation walk used by every stock-out.

    Algorithm:
        1. Walk batches in the given (FIFO) order
        2. Take min(batch remaining, still needed) from each
        3. Stop as soon as the request is satisfied
        4. If batches run out first, fail with the shortfall

    Args:
        cloud_kitchen_id: Kitchen the batches belong to
        raw_material_id: Material the batches hold
        batches: Active batches, oldest first (see get_fifo_batches)
        quantity: Quantity to take (> 0)

    Returns:
        ConsumptionPlan whose quantity equals the request

    Raises:
        ValidationError: If quantity is not positive
        InsufficientStock: If the batches hold less than quantity. The
            exception carries the exact shortfall; nothing is clamped.
    """
    requested = validate_quantity(quantity)
    still_needed = requested
    lines: List[ConsumptionLine] = []

    for batch in batches:
        if still_needed <= 0:
            break
        available = Decimal(str(batch.quantity_remaining))
        if available <= 0:
            continue
        take = min(available, still_needed)
        lines.append(
            ConsumptionLine(
                batch_id=batch.id,
                quantity=take,
                unit_cost=Decimal(str(batch.unit_cost)),
                received_at=batch.received_at,
            )
        )
        still_needed -= take

    if still_needed > 0:
        raise InsufficientStock(
            shortfall=still_needed,
            requested=requested,
            available=requested - still_needed,
            raw_material_id=raw_material_id,
        )

    return ConsumptionPlan(
        cloud_kitchen_id=cloud_kitchen_id,
        raw_material_id=raw_material_id,
        lines=lines,
    )


def apply_consumption_plan(
    plan: ConsumptionPlan,
    batches: Iterable[StockBatch],
    session: Session,
) -> None:
    """
    Apply a plan to the batches it was computed from.

    Every line is checked before any batch is touched. The flush carries the
    batch version check, so a batch changed by another transaction since it
    was read is reported instead of overwritten.

    Args:
        plan: Plan from plan_consumption
        batches: The loaded batches the plan refers to
        session: Session the batches are attached to (caller owns it)

    Raises:
        ConcurrencyConflict: If a batch is missing, no longer holds the
            planned quantity, or was updated concurrently. The caller must
            roll back and retry the whole consumption.
    """
    by_id = {batch.id: batch for batch in batches}

    for line in plan.lines:
        batch = by_id.get(line.batch_id)
        if batch is None or Decimal(str(batch.quantity_remaining)) < line.quantity:
            raise ConcurrencyConflict(plan.cloud_kitchen_id, plan.raw_material_id)

    for line in plan.lines:
        batch = by_id[line.batch_id]
        batch.quantity_remaining = Decimal(str(batch.quantity_remaining)) - line.quantity

    try:
        session.flush()
    except StaleDataError:
        raise ConcurrencyConflict(plan.cloud_kitchen_id, plan.raw_material_id)


def consume(
    cloud_kitchen_id: int,
    raw_material_id: int,
    quantity: Any,
    dry_run: bool = False,
    session: Optional[Session] = None,
) -> ConsumptionPlan:
    """
    Consume stock of a material using FIFO (First In, First Out).

    The (kitchen, material) lock is held for the whole call. When this
    function owns the transaction the lock also covers the commit. With a
    caller session the lock is released on return, before the caller
    commits; from then until that commit only the batch version check
    guards the key, and a conflicting writer gets ConcurrencyConflict.

    Args:
        cloud_kitchen_id: Kitchen to consume from
        raw_material_id: Material to consume
        quantity: Quantity to consume (> 0)
        dry_run: If True, plan only; no batch is modified
        session: Optional database session (caller owns transaction if provided)

    Returns:
        ConsumptionPlan: (batch_id, quantity) lines oldest first, plus FIFO cost

    Raises:
        ValidationError: If quantity is not positive
        KitchenNotFound / RawMaterialNotFound: If an id is unknown
        InsufficientStock: If active batches hold less than quantity;
            no batch is modified
        ConcurrencyConflict: If batches changed concurrently; retry the call
        DatabaseError: If database operation fails

    Example:
        >>> plan = consume(1, 7, Decimal("7"))
        >>> plan.as_pairs()   # B1 held 5, B2 held 5
        [(1, Decimal('5.000')), (2, Decimal('2.000'))]
    """
    request = ConsumptionRequest(cloud_kitchen_id, raw_material_id, validate_quantity(quantity))

    def _impl(sess: Session) -> ConsumptionPlan:
        get_kitchen(cloud_kitchen_id, session=sess)
        get_raw_material(raw_material_id, session=sess)

        batches = get_fifo_batches(
            cloud_kitchen_id, raw_material_id, for_update=not dry_run, session=sess
        )
        plan = plan_consumption(cloud_kitchen_id, raw_material_id, batches, request.quantity)
        if not dry_run:
            apply_consumption_plan(plan, batches, sess)
        return plan

    try:
        with ledger_lock(cloud_kitchen_id, raw_material_id):
            plan = run_in_session(
                _impl,
                session,
                f"Failed to consume raw material {raw_material_id} "
                f"from kitchen {cloud_kitchen_id}",
                conflict_key=(cloud_kitchen_id, raw_material_id),
            )
    except InsufficientStock as e:
        log_operation(
            logger,
            operation="consume",
            outcome="insufficient_stock",
            level=logging.WARNING,
            cloud_kitchen_id=cloud_kitchen_id,
            raw_material_id=raw_material_id,
            requested=str(e.requested),
            shortfall=str(e.shortfall),
        )
        raise
    except ConcurrencyConflict:
        log_operation(
            logger,
            operation="consume",
            outcome="concurrency_conflict",
            level=logging.WARNING,
            cloud_kitchen_id=cloud_kitchen_id,
            raw_material_id=raw_material_id,
        )
        raise

    log_operation(
        logger,
        operation="consume",
        outcome="dry_run" if dry_run else "success",
        level=logging.DEBUG if dry_run else logging.INFO,
        cloud_kitchen_id=cloud_kitchen_id,
        raw_material_id=raw_material_id,
        quantity=quantity_to_string(plan.quantity),
        batch_count=len(plan.lines),
        total_cost=cost_to_string(plan.total_cost),
    )
    return plan


def check_availability(
    cloud_kitchen_id: int,
    requirements: Iterable[Union[ConsumptionRequest, Dict[str, Any]]],
    session: Optional[Session] = None,
) -> Dict[str, Any]:
    """
    Check whether a kitchen can satisfy several consumptions, without consuming.

    Requirements for the same material are summed.

    Args:
        cloud_kitchen_id: Kitchen
        requirements: ConsumptionRequests, or dicts with keys
            "raw_material_id" and "quantity"
        session: Optional database session

    Returns:
        Dict with keys:
            - "can_fulfill" (bool): True if every requirement is covered
            - "shortfalls" (List[Dict]): raw_material_id, quantity_needed,
              quantity_available, shortfall for each uncovered material
    """
    needed: "OrderedDict[int, Decimal]" = OrderedDict()
    for req in requirements:
        if not isinstance(req, ConsumptionRequest):
            req = ConsumptionRequest(cloud_kitchen_id, req["raw_material_id"], req["quantity"])
        needed[req.raw_material_id] = needed.get(req.raw_material_id, ZERO) + req.quantity

    def _impl(sess: Session) -> Dict[str, Any]:
        get_kitchen(cloud_kitchen_id, session=sess)
        shortfalls = []
        for material_id, quantity in needed.items():
            get_raw_material(material_id, session=sess)
            available = get_on_hand_quantity(cloud_kitchen_id, material_id, session=sess)
            if available < quantity:
                shortfalls.append(
                    {
                        "raw_material_id": material_id,
                        "quantity_needed": quantity,
                        "quantity_available": available,
                        "shortfall": quantity - available,
                    }
                )
        return {"can_fulfill": not shortfalls, "shortfalls": shortfalls}

    return run_in_session(
        _impl, session, f"Failed to check availability for kitchen {cloud_kitchen_id}"
    )


# =============================================================================
# Valuation
# =============================================================================


def _valuation_of(batches: Iterable[StockBatch]) -> Valuation:
    total_quantity = ZERO
    total_value = ZERO
    for batch in batches:
        remaining = Decimal(str(batch.quantity_remaining))
        if remaining <= 0:
            continue
        total_quantity += remaining
        total_value += remaining * Decimal(str(batch.unit_cost))

    if total_quantity > 0:
        average = quantize_cost(total_value / total_quantity)
    else:
        average = ZERO

    return Valuation(
        total_value=total_value,
        total_quantity=total_quantity,
        average_unit_cost=average,
    )


def valuate(
    cloud_kitchen_id: int,
    raw_material_id: Optional[int] = None,
    session: Optional[Session] = None,
) -> Valuation:
    """
    Value the remaining stock of a kitchen.

    Sums quantity_remaining * unit_cost over batches with quantity_remaining
    > 0, never quantity_purchased. All batches are read in a single query, so
    a concurrent consumption is seen either entirely or not at all.

    Args:
        cloud_kitchen_id: Kitchen
        raw_material_id: Restrict to one material; kitchen-wide when None
        session: Optional database session

    Returns:
        Valuation(total_value, total_quantity, average_unit_cost). The
        average is rounded to 4 places and is 0 when there is no stock.

    Raises:
        KitchenNotFound / RawMaterialNotFound: If an id is unknown
    """

    def _impl(sess: Session) -> Valuation:
        get_kitchen(cloud_kitchen_id, session=sess)
        query = sess.query(StockBatch).filter(
            StockBatch.cloud_kitchen_id == cloud_kitchen_id,
            StockBatch.quantity_remaining > 0,
        )
        if raw_material_id is not None:
            get_raw_material(raw_material_id, session=sess)
            query = query.filter(StockBatch.raw_material_id == raw_material_id)
        return _valuation_of(query.all())

    return run_in_session(_impl, session, f"Failed to valuate kitchen {cloud_kitchen_id}")


def valuate_by_material(
    cloud_kitchen_id: int,
    session: Optional[Session] = None,
) -> Dict[int, Valuation]:
    """
    Value the remaining stock of a kitchen per material.

    Returns:
        Dict mapping raw_material_id -> Valuation, for materials with stock
    """

    def _impl(sess: Session) -> Dict[int, Valuation]:
        get_kitchen(cloud_kitchen_id, session=sess)
        batches = (
            sess.query(StockBatch)
            .filter(
                StockBatch.cloud_kitchen_id == cloud_kitchen_id,
                StockBatch.quantity_remaining > 0,
            )
            .order_by(StockBatch.raw_material_id, StockBatch.received_at, StockBatch.id)
            .all()
        )
        grouped: Dict[int, List[StockBatch]] = OrderedDict()
        for batch in batches:
            grouped.setdefault(batch.raw_material_id, []).append(batch)
        return {material_id: _valuation_of(group) for material_id, group in grouped.items()}

    return run_in_session(
        _impl, session, f"Failed to valuate kitchen {cloud_kitchen_id} by material"
    )
