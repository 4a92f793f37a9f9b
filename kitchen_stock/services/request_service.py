"""Request Service - outlet requests for materials and their fulfilment.

An outlet raises an AllocationRequest listing what it needs. The kitchen
works through its unpacked requests and fulfils each one with an outlet
allocation (stock_out_service.allocate_to_outlet). The allocation and the
packed flag are written in one transaction: a request is packed exactly when
its stock-out exists.

Raising a request never touches the batch ledger.

Usage:
    request = create_allocation_request(
        cloud_kitchen_id=1,
        outlet_id=3,
        items=[{"raw_material_id": 7, "quantity": "5"}],
        requested_by="outlet-manager",
    )
    stock_out = fulfill_allocation_request(request.id, allocated_by="shift-lead")
"""

from collections import OrderedDict
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Sequence

from sqlalchemy.orm import Session, selectinload

from ..models import AllocationRequest, AllocationRequestItem, StockOut
from ..utils.datetime_utils import utc_today
from .audit_service import record_audit_event
from .batch_ledger_service import validate_quantity
from .catalog_service import get_kitchen, get_outlet, get_raw_material
from .database import run_in_session
from .dto import AllocationDraft
from .dto_utils import quantity_to_string, quantize_quantity, to_decimal
from .exceptions import AllocationRequestNotFound, ValidationError
from .logging_utils import get_service_logger, log_operation
from .stock_out_service import allocate_to_outlet

logger = get_service_logger(__name__)


def _merge_items(items: Sequence[Dict[str, Any]]) -> Dict[int, Decimal]:
    """Validate request lines; lines for the same material are summed."""
    if not items:
        raise ValidationError(["A request needs at least one item"])

    merged: Dict[int, Decimal] = OrderedDict()
    errors = []
    for index, item in enumerate(items, start=1):
        material_id = item.get("raw_material_id")
        if not material_id:
            errors.append(f"Item {index}: raw material is required")
            continue
        try:
            quantity = validate_quantity(item.get("quantity"), f"Item {index} quantity")
        except ValidationError as e:
            errors.extend(e.errors)
            continue
        merged[material_id] = merged.get(material_id, Decimal("0")) + quantity

    if errors:
        raise ValidationError(errors)
    return merged


def _allocated_quantities(quantities: Optional[Mapping[int, Any]]) -> Dict[int, Decimal]:
    """Validate allocated quantity overrides; zero drops the line."""
    if not quantities:
        return {}
    parsed = {}
    errors = []
    for material_id, value in quantities.items():
        try:
            quantity = to_decimal(value, f"Allocated quantity of material {material_id}")
        except ValidationError as e:
            errors.extend(e.errors)
            continue
        if quantity < 0:
            errors.append(f"Allocated quantity cannot be negative, got: {quantity}")
        elif quantize_quantity(quantity) != quantity:
            errors.append(f"Allocated quantity supports at most 3 decimal places, got: {quantity}")
        else:
            parsed[material_id] = quantity
    if errors:
        raise ValidationError(errors)
    return parsed


def create_allocation_request(
    cloud_kitchen_id: int,
    outlet_id: int,
    items: Sequence[Dict[str, Any]],
    requested_by: Optional[str] = None,
    request_date: Optional[date] = None,
    notes: Optional[str] = None,
    session: Optional[Session] = None,
) -> AllocationRequest:
    """
    Raise a request from an outlet to its kitchen.

    Args:
        cloud_kitchen_id: Kitchen asked to supply
        outlet_id: Requesting outlet, must belong to the kitchen
        items: Dicts with raw_material_id and quantity (> 0)
        requested_by: Actor raising the request
        request_date: Day of the request (defaults to today, UTC)
        notes: Free text
        session: Optional database session (caller owns transaction if provided)

    Returns:
        AllocationRequest with its items loaded

    Raises:
        ValidationError: On empty items or invalid quantities
        KitchenNotFound / OutletNotFound / RawMaterialNotFound: Unknown ids
        DatabaseError: If database operation fails
    """
    lines = _merge_items(items)

    def _impl(sess: Session) -> AllocationRequest:
        get_kitchen(cloud_kitchen_id, session=sess)
        get_outlet(outlet_id, cloud_kitchen_id, session=sess)
        request = AllocationRequest(
            cloud_kitchen_id=cloud_kitchen_id,
            outlet_id=outlet_id,
            requested_by=requested_by,
            request_date=request_date or utc_today(),
            is_packed=False,
            notes=notes,
        )
        for material_id, quantity in lines.items():
            get_raw_material(material_id, session=sess)
            request.items.append(
                AllocationRequestItem(raw_material_id=material_id, quantity=quantity)
            )
        sess.add(request)
        sess.flush()
        return request

    request = run_in_session(
        _impl, session, f"Failed to create allocation request for outlet {outlet_id}"
    )

    record_audit_event(
        action="allocation_requested",
        entity_type="allocation_request",
        entity_id=request.id,
        cloud_kitchen_id=cloud_kitchen_id,
        actor=requested_by,
        new_values={
            "outlet_id": outlet_id,
            "items": {str(m): quantity_to_string(q) for m, q in lines.items()},
        },
        session=session,
    )
    log_operation(
        logger,
        operation="create_allocation_request",
        outcome="success",
        cloud_kitchen_id=cloud_kitchen_id,
        outlet_id=outlet_id,
        allocation_request_id=request.id,
        item_count=len(lines),
    )
    return request


def _load_request(request_id: int, sess: Session, for_update: bool = False) -> AllocationRequest:
    query = (
        sess.query(AllocationRequest)
        .options(selectinload(AllocationRequest.items))
        .filter(AllocationRequest.id == request_id)
    )
    if for_update:
        query = query.with_for_update().populate_existing()
    request = query.one_or_none()
    if request is None:
        raise AllocationRequestNotFound(request_id)
    return request


def get_allocation_request(
    request_id: int, session: Optional[Session] = None
) -> AllocationRequest:
    """
    Get a request with its items.

    Raises:
        AllocationRequestNotFound: If the request doesn't exist
    """
    return run_in_session(
        lambda sess: _load_request(request_id, sess),
        session,
        f"Failed to load allocation request {request_id}",
    )


def list_allocation_requests(
    cloud_kitchen_id: int,
    outlet_id: Optional[int] = None,
    is_packed: Optional[bool] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    limit: int = 100,
    session: Optional[Session] = None,
) -> List[AllocationRequest]:
    """
    Requests of a kitchen: unpacked first, then newest first.

    Args:
        cloud_kitchen_id: Kitchen
        outlet_id: Restrict to one outlet
        is_packed: Restrict to packed (True) or unpacked (False) requests
        start_date: Optional minimum request_date
        end_date: Optional maximum request_date
        limit: Maximum number of results (default 100)
    """

    def _impl(sess: Session) -> List[AllocationRequest]:
        query = (
            sess.query(AllocationRequest)
            .options(selectinload(AllocationRequest.items))
            .filter(AllocationRequest.cloud_kitchen_id == cloud_kitchen_id)
        )
        if outlet_id is not None:
            query = query.filter(AllocationRequest.outlet_id == outlet_id)
        if is_packed is not None:
            query = query.filter(AllocationRequest.is_packed.is_(is_packed))
        if start_date:
            query = query.filter(AllocationRequest.request_date >= start_date)
        if end_date:
            query = query.filter(AllocationRequest.request_date <= end_date)
        query = query.order_by(
            AllocationRequest.is_packed.asc(),
            AllocationRequest.request_date.desc(),
            AllocationRequest.id.desc(),
        ).limit(limit)
        return query.all()

    return run_in_session(_impl, session, "Failed to list allocation requests")


def get_pending_totals(
    cloud_kitchen_id: int,
    request_date: Optional[date] = None,
    session: Optional[Session] = None,
) -> Dict[int, Decimal]:
    """
    Quantity still to pack per material, over the unpacked requests of a day.

    Args:
        cloud_kitchen_id: Kitchen
        request_date: Day to total (defaults to today, UTC)

    Returns:
        Dict raw_material_id -> requested quantity, ordered by material id
    """
    day = request_date or utc_today()

    def _impl(sess: Session) -> Dict[int, Decimal]:
        rows = (
            sess.query(AllocationRequestItem.raw_material_id, AllocationRequestItem.quantity)
            .join(AllocationRequestItem.allocation_request)
            .filter(
                AllocationRequest.cloud_kitchen_id == cloud_kitchen_id,
                AllocationRequest.is_packed.is_(False),
                AllocationRequest.request_date == day,
            )
            .order_by(AllocationRequestItem.raw_material_id)
            .all()
        )
        totals: Dict[int, Decimal] = OrderedDict()
        for material_id, quantity in rows:
            totals[material_id] = totals.get(material_id, Decimal("0")) + Decimal(str(quantity))
        return totals

    return run_in_session(_impl, session, "Failed to total pending allocation requests")


def fulfill_allocation_request(
    request_id: int,
    allocated_by: Optional[str] = None,
    quantities: Optional[Mapping[int, Any]] = None,
    notes: Optional[str] = None,
    allocation_date: Optional[date] = None,
    session: Optional[Session] = None,
) -> StockOut:
    """
    Fulfil a request with an outlet allocation and mark it packed.

    Each requested material is allocated FIFO. The allocated quantity
    defaults to the requested one and can be changed per material through
    quantities; a zero drops the material from the allocation.

    Args:
        request_id: Request to fulfil
        allocated_by: Actor packing the request
        quantities: Optional raw_material_id -> allocated quantity overrides
        notes: Stock-out notes (defaults to "Allocated from request #<id>")
        allocation_date: Date of the movement (defaults to today, UTC)
        session: Optional database session (caller owns transaction if provided)

    Returns:
        The StockOut, linked to the request

    Raises:
        AllocationRequestNotFound: If the request doesn't exist
        ValidationError: If the request is already packed, an override names
            a material that was not requested, or nothing is left to allocate
        InsufficientStock: If any line is short; the request stays unpacked
        ConcurrencyConflict: If batches changed concurrently; retry the call
        DatabaseError: If database operation fails
    """
    overrides = _allocated_quantities(quantities)

    def _impl(sess: Session) -> StockOut:
        request = _load_request(request_id, sess, for_update=True)
        if request.is_packed:
            raise ValidationError([f"Allocation request {request_id} is already packed"])

        requested = OrderedDict(
            (item.raw_material_id, Decimal(str(item.quantity))) for item in request.items
        )
        unknown = sorted(set(overrides) - set(requested))
        if unknown:
            raise ValidationError(
                [f"Material {m} is not part of allocation request {request_id}" for m in unknown]
            )

        draft = AllocationDraft(request.cloud_kitchen_id)
        for material_id, quantity in requested.items():
            allocated = overrides.get(material_id, quantity)
            if allocated > 0:
                draft.add(material_id, allocated)

        stock_out = allocate_to_outlet(
            draft,
            request.outlet_id,
            allocated_by=allocated_by,
            notes=notes or f"Allocated from request #{request.id}",
            allocation_date=allocation_date,
            session=sess,
            allocation_request_id=request.id,
        )
        request.is_packed = True
        sess.flush()
        return stock_out

    # A second stock-out for the same request violates its unique link
    stock_out = run_in_session(
        _impl,
        session,
        f"Failed to fulfil allocation request {request_id}",
        integrity_as_validation=True,
    )

    record_audit_event(
        action="allocation_request_packed",
        entity_type="allocation_request",
        entity_id=request_id,
        cloud_kitchen_id=stock_out.cloud_kitchen_id,
        actor=allocated_by,
        old_values={"is_packed": False},
        new_values={"is_packed": True, "stock_out_id": stock_out.id},
        session=session,
    )
    log_operation(
        logger,
        operation="fulfill_allocation_request",
        outcome="success",
        cloud_kitchen_id=stock_out.cloud_kitchen_id,
        allocation_request_id=request_id,
        stock_out_id=stock_out.id,
    )
    return stock_out
