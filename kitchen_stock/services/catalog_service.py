"""Catalog Service - kitchens, outlets, raw materials and their prices.

The ledger only needs opaque ids; this module owns the rows those ids point
at and the lookups the ledger services use to reject unknown ids before
touching any batch.

All functions are stateless and follow the session pattern:
- If session provided: caller owns transaction, don't commit
- If session is None: create own transaction via session_scope()
"""

import re
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from ..models import CloudKitchen, CostSource, MaterialCost, Outlet, RawMaterial
from ..utils.constants import (
    MATERIAL_CODE_DIGITS,
    MATERIAL_CODE_PREFIX,
    RAW_MATERIAL_CATEGORY_CODES,
    RAW_MATERIAL_UNITS,
)
from .database import run_in_session
from .dto_utils import quantize_cost, to_decimal
from .exceptions import (
    KitchenNotFound,
    OutletNotFound,
    RawMaterialNotFound,
    ValidationError,
)


def _required(value: Optional[str], field_name: str, errors: list) -> Optional[str]:
    if value is None or not str(value).strip():
        errors.append(f"{field_name} is required")
        return None
    return str(value).strip()


# =============================================================================
# Cloud kitchens
# =============================================================================


def create_kitchen(
    name: str,
    code: str,
    address: Optional[str] = None,
    session: Optional[Session] = None,
) -> CloudKitchen:
    """
    Create a cloud kitchen.

    Raises:
        ValidationError: If name or code is missing, or code already exists
    """
    errors = []
    name = _required(name, "Name", errors)
    code = _required(code, "Code", errors)
    if errors:
        raise ValidationError(errors)

    def _impl(sess: Session) -> CloudKitchen:
        if sess.query(CloudKitchen).filter(CloudKitchen.code == code).first():
            raise ValidationError([f"Cloud kitchen code '{code}' already exists"])
        kitchen = CloudKitchen(name=name, code=code, address=address)
        sess.add(kitchen)
        sess.flush()
        return kitchen

    return run_in_session(
        _impl,
        session,
        f"Failed to create cloud kitchen '{code}'",
        integrity_as_validation=True,
    )


def get_kitchen(cloud_kitchen_id: int, session: Optional[Session] = None) -> CloudKitchen:
    """
    Get a cloud kitchen by id.

    Raises:
        KitchenNotFound: If the kitchen doesn't exist
    """

    def _impl(sess: Session) -> CloudKitchen:
        kitchen = sess.get(CloudKitchen, cloud_kitchen_id) if cloud_kitchen_id else None
        if kitchen is None:
            raise KitchenNotFound(cloud_kitchen_id)
        return kitchen

    return run_in_session(_impl, session, f"Failed to load cloud kitchen {cloud_kitchen_id}")


def list_kitchens(
    active_only: bool = True, session: Optional[Session] = None
) -> List[CloudKitchen]:
    """List cloud kitchens ordered by name."""

    def _impl(sess: Session) -> List[CloudKitchen]:
        query = sess.query(CloudKitchen)
        if active_only:
            query = query.filter(CloudKitchen.is_active.is_(True))
        return query.order_by(CloudKitchen.name).all()

    return run_in_session(_impl, session, "Failed to list cloud kitchens")


# =============================================================================
# Outlets
# =============================================================================


def create_outlet(
    cloud_kitchen_id: int,
    name: str,
    code: str,
    session: Optional[Session] = None,
) -> Outlet:
    """
    Create an outlet supplied by a kitchen.

    Raises:
        KitchenNotFound: If the kitchen doesn't exist
        ValidationError: If name/code missing or code already used in the kitchen
    """
    errors = []
    name = _required(name, "Name", errors)
    code = _required(code, "Code", errors)
    if errors:
        raise ValidationError(errors)

    def _impl(sess: Session) -> Outlet:
        get_kitchen(cloud_kitchen_id, session=sess)
        existing = (
            sess.query(Outlet)
            .filter(Outlet.cloud_kitchen_id == cloud_kitchen_id, Outlet.code == code)
            .first()
        )
        if existing:
            raise ValidationError([f"Outlet code '{code}' already exists in this kitchen"])
        outlet = Outlet(cloud_kitchen_id=cloud_kitchen_id, name=name, code=code)
        sess.add(outlet)
        sess.flush()
        return outlet

    return run_in_session(
        _impl,
        session,
        f"Failed to create outlet '{code}'",
        integrity_as_validation=True,
    )


def get_outlet(
    outlet_id: int,
    cloud_kitchen_id: Optional[int] = None,
    session: Optional[Session] = None,
) -> Outlet:
    """
    Get an outlet, optionally checking it belongs to a kitchen.

    Raises:
        OutletNotFound: If missing or supplied by another kitchen
    """

    def _impl(sess: Session) -> Outlet:
        outlet = sess.get(Outlet, outlet_id) if outlet_id else None
        if outlet is None:
            raise OutletNotFound(outlet_id)
        if cloud_kitchen_id is not None and outlet.cloud_kitchen_id != cloud_kitchen_id:
            raise OutletNotFound(outlet_id, cloud_kitchen_id)
        return outlet

    return run_in_session(_impl, session, f"Failed to load outlet {outlet_id}")


def list_outlets(cloud_kitchen_id: int, session: Optional[Session] = None) -> List[Outlet]:
    """List active outlets of a kitchen ordered by name."""

    def _impl(sess: Session) -> List[Outlet]:
        return (
            sess.query(Outlet)
            .filter(Outlet.cloud_kitchen_id == cloud_kitchen_id, Outlet.is_active.is_(True))
            .order_by(Outlet.name)
            .all()
        )

    return run_in_session(_impl, session, f"Failed to list outlets for kitchen {cloud_kitchen_id}")


# =============================================================================
# Raw materials
# =============================================================================


def generate_material_code(category: str, session: Optional[Session] = None) -> str:
    """
    Generate the next material code for a category.

    Format: RM-{CATEGORY_SHORT}-{NNN}; unknown categories use MISC.

    Example:
        >>> generate_material_code("Meat")  # with RM-MEAT-001 and RM-MEAT-004 present
        'RM-MEAT-005'
    """
    short = RAW_MATERIAL_CATEGORY_CODES.get(category, "MISC")
    prefix = f"{MATERIAL_CODE_PREFIX}-{short}-"
    pattern = re.compile(rf"^{re.escape(prefix)}(\d+)$")

    def _impl(sess: Session) -> str:
        codes = [
            row[0]
            for row in sess.query(RawMaterial.code).filter(RawMaterial.code.like(f"{prefix}%"))
        ]
        numbers = [int(m.group(1)) for m in (pattern.match(code) for code in codes) if m]
        next_number = max(numbers) + 1 if numbers else 1
        return f"{prefix}{next_number:0{MATERIAL_CODE_DIGITS}d}"

    return run_in_session(_impl, session, f"Failed to generate material code for '{category}'")


def create_raw_material(
    name: str,
    unit: str,
    category: str,
    code: Optional[str] = None,
    description: Optional[str] = None,
    brand: Optional[str] = None,
    low_stock_threshold=Decimal("0"),
    session: Optional[Session] = None,
) -> RawMaterial:
    """
    Create a raw material catalog entry.

    Args:
        name: Material name
        unit: One of RAW_MATERIAL_UNITS
        category: Catalog category
        code: Explicit code; generated from category when omitted
        low_stock_threshold: Default threshold for kitchens without an override

    Raises:
        ValidationError: On missing fields, unknown unit, negative threshold
            or duplicate code
    """
    errors = []
    name = _required(name, "Name", errors)
    category = _required(category, "Category", errors)
    unit = _required(unit, "Unit", errors)
    if unit and unit not in RAW_MATERIAL_UNITS:
        errors.append(f"Invalid unit '{unit}'")
    threshold = to_decimal(low_stock_threshold, "Low stock threshold")
    if threshold < 0:
        errors.append("Low stock threshold cannot be negative")
    if errors:
        raise ValidationError(errors)

    def _impl(sess: Session) -> RawMaterial:
        material_code = code or generate_material_code(category, session=sess)
        if sess.query(RawMaterial).filter(RawMaterial.code == material_code).first():
            raise ValidationError([f"Raw material code '{material_code}' already exists"])
        material = RawMaterial(
            name=name,
            code=material_code,
            unit=unit,
            category=category,
            description=description,
            brand=brand,
            low_stock_threshold=threshold,
        )
        sess.add(material)
        sess.flush()
        return material

    return run_in_session(
        _impl,
        session,
        f"Failed to create raw material '{name}'",
        integrity_as_validation=True,
    )


def get_raw_material(raw_material_id: int, session: Optional[Session] = None) -> RawMaterial:
    """
    Get a raw material by id.

    Raises:
        RawMaterialNotFound: If the material doesn't exist
    """

    def _impl(sess: Session) -> RawMaterial:
        material = sess.get(RawMaterial, raw_material_id) if raw_material_id else None
        if material is None:
            raise RawMaterialNotFound(raw_material_id)
        return material

    return run_in_session(_impl, session, f"Failed to load raw material {raw_material_id}")


def list_raw_materials(
    category: Optional[str] = None,
    active_only: bool = True,
    session: Optional[Session] = None,
) -> List[RawMaterial]:
    """List raw materials ordered by name, optionally filtered by category."""

    def _impl(sess: Session) -> List[RawMaterial]:
        query = sess.query(RawMaterial)
        if active_only:
            query = query.filter(RawMaterial.is_active.is_(True))
        if category:
            query = query.filter(RawMaterial.category == category)
        return query.order_by(RawMaterial.name).all()

    return run_in_session(_impl, session, "Failed to list raw materials")


def deactivate_raw_material(raw_material_id: int, session: Optional[Session] = None) -> RawMaterial:
    """Hide a material from the catalog; its batches are kept."""

    def _impl(sess: Session) -> RawMaterial:
        material = get_raw_material(raw_material_id, session=sess)
        material.is_active = False
        sess.flush()
        return material

    return run_in_session(_impl, session, f"Failed to deactivate raw material {raw_material_id}")


# =============================================================================
# Material costs
# =============================================================================


def _validated_cost(cost_per_unit) -> Decimal:
    cost = to_decimal(cost_per_unit, "Cost per unit")
    if cost < 0:
        raise ValidationError([f"Cost per unit cannot be negative, got: {cost}"])
    if quantize_cost(cost) != cost:
        raise ValidationError([f"Cost per unit supports at most 4 decimal places, got: {cost}"])
    return cost


def set_material_cost(
    raw_material_id: int,
    cost_per_unit,
    recorded_by: Optional[str] = None,
    source: str = CostSource.MANUAL.value,
    cloud_kitchen_id: Optional[int] = None,
    stock_in_id: Optional[int] = None,
    session: Optional[Session] = None,
) -> MaterialCost:
    """
    Record the current price of a material.

    Prices are global per material. A new row is written each time, so the
    history of prices is kept; get_latest_cost() reads the newest one.

    Args:
        raw_material_id: Material priced
        cost_per_unit: Non-negative price, at most 4 decimal places
        recorded_by: Actor setting the price
        source: "manual" (default) or "purchase" when taken from a receipt
        cloud_kitchen_id: Receiving kitchen, for purchase prices
        stock_in_id: Receipt the price was taken from
        session: Optional database session (caller owns transaction if provided)

    Raises:
        ValidationError: If the cost or source is invalid
        RawMaterialNotFound: If the material doesn't exist
    """
    cost = _validated_cost(cost_per_unit)
    sources = [s.value for s in CostSource]
    if source not in sources:
        raise ValidationError([f"Invalid cost source '{source}', expected one of {sources}"])

    def _impl(sess: Session) -> MaterialCost:
        get_raw_material(raw_material_id, session=sess)
        row = MaterialCost(
            raw_material_id=raw_material_id,
            cost_per_unit=cost,
            source=source,
            cloud_kitchen_id=cloud_kitchen_id,
            stock_in_id=stock_in_id,
            recorded_by=recorded_by,
        )
        sess.add(row)
        sess.flush()
        return row

    return run_in_session(
        _impl, session, f"Failed to set cost of raw material {raw_material_id}"
    )


def get_cost_history(
    raw_material_id: int,
    limit: Optional[int] = None,
    session: Optional[Session] = None,
) -> List[MaterialCost]:
    """Prices of a material, newest first."""

    def _impl(sess: Session) -> List[MaterialCost]:
        query = (
            sess.query(MaterialCost)
            .filter(MaterialCost.raw_material_id == raw_material_id)
            .order_by(MaterialCost.created_at.desc(), MaterialCost.id.desc())
        )
        if limit:
            query = query.limit(limit)
        return query.all()

    return run_in_session(
        _impl, session, f"Failed to load cost history of raw material {raw_material_id}"
    )


def get_latest_cost(raw_material_id: int, session: Optional[Session] = None) -> Optional[Decimal]:
    """Current price of a material, or None if it was never priced."""
    history = get_cost_history(raw_material_id, limit=1, session=session)
    if not history:
        return None
    return Decimal(str(history[0].cost_per_unit))
