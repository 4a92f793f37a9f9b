"""Inventory Report Service - per-kitchen stock summary and low stock.

On-hand quantity and value are always derived from the batch ledger. The
low stock threshold of a (kitchen, material) is resolved as:

1. the kitchen's InventorySetting, if any
2. else the material's own low_stock_threshold, if above zero
3. else Config.low_stock_default_threshold

A material is low on stock when on-hand <= threshold.
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..models import InventorySetting, RawMaterial, StockBatch
from ..utils.config import get_config
from .batch_ledger_service import valuate_by_material
from .catalog_service import get_kitchen, get_latest_cost, get_raw_material
from .database import run_in_session
from .dto import Valuation
from .dto_utils import quantize_quantity, to_decimal
from .exceptions import ValidationError
from .logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)

_EMPTY = Valuation(
    total_value=Decimal("0"),
    total_quantity=Decimal("0"),
    average_unit_cost=Decimal("0"),
)


def _resolve_threshold(
    material: RawMaterial, setting: Optional[InventorySetting], default: Decimal
) -> Decimal:
    if setting is not None:
        return Decimal(str(setting.low_stock_threshold))
    if material.low_stock_threshold and Decimal(str(material.low_stock_threshold)) > 0:
        return Decimal(str(material.low_stock_threshold))
    return default


def set_low_stock_threshold(
    cloud_kitchen_id: int,
    raw_material_id: int,
    threshold: Any,
    session: Optional[Session] = None,
) -> InventorySetting:
    """
    Set the kitchen-specific low stock threshold of a material.

    Raises:
        ValidationError: If threshold is negative or too precise
        KitchenNotFound / RawMaterialNotFound: If an id is unknown
    """
    value = to_decimal(threshold, "Low stock threshold")
    if value < 0:
        raise ValidationError([f"Low stock threshold cannot be negative, got: {value}"])
    if quantize_quantity(value) != value:
        raise ValidationError(
            [f"Low stock threshold supports at most 3 decimal places, got: {value}"]
        )

    def _impl(sess: Session) -> InventorySetting:
        get_kitchen(cloud_kitchen_id, session=sess)
        get_raw_material(raw_material_id, session=sess)
        setting = (
            sess.query(InventorySetting)
            .filter(
                InventorySetting.cloud_kitchen_id == cloud_kitchen_id,
                InventorySetting.raw_material_id == raw_material_id,
            )
            .first()
        )
        if setting is None:
            setting = InventorySetting(
                cloud_kitchen_id=cloud_kitchen_id, raw_material_id=raw_material_id
            )
            sess.add(setting)
        setting.low_stock_threshold = value
        sess.flush()
        return setting

    setting = run_in_session(
        _impl, session, f"Failed to set low stock threshold for {raw_material_id}"
    )
    log_operation(
        logger,
        operation="set_low_stock_threshold",
        outcome="success",
        cloud_kitchen_id=cloud_kitchen_id,
        raw_material_id=raw_material_id,
        threshold=str(value),
    )
    return setting


def get_low_stock_threshold(
    cloud_kitchen_id: int,
    raw_material_id: int,
    session: Optional[Session] = None,
) -> Decimal:
    """Effective low stock threshold of a material at a kitchen."""

    def _impl(sess: Session) -> Decimal:
        get_kitchen(cloud_kitchen_id, session=sess)
        material = get_raw_material(raw_material_id, session=sess)
        setting = (
            sess.query(InventorySetting)
            .filter(
                InventorySetting.cloud_kitchen_id == cloud_kitchen_id,
                InventorySetting.raw_material_id == raw_material_id,
            )
            .first()
        )
        return _resolve_threshold(material, setting, get_config().low_stock_default_threshold)

    return run_in_session(
        _impl, session, f"Failed to load low stock threshold for {raw_material_id}"
    )


def get_inventory_summary(
    cloud_kitchen_id: int,
    session: Optional[Session] = None,
) -> List[Dict[str, Any]]:
    """
    Summarise the stock of a kitchen per material.

    Covers every material the kitchen has ever received or has a setting
    for, so materials that ran out are still listed (with zero on hand).

    Returns:
        List of dicts ordered by material name with keys raw_material_id,
        code, name, unit, category, on_hand, total_value, average_unit_cost,
        latest_cost (None if never priced), low_stock_threshold, is_low_stock
    """
    default_threshold = get_config().low_stock_default_threshold

    def _impl(sess: Session) -> List[Dict[str, Any]]:
        get_kitchen(cloud_kitchen_id, session=sess)
        valuations = valuate_by_material(cloud_kitchen_id, session=sess)
        settings = {
            s.raw_material_id: s
            for s in sess.query(InventorySetting).filter(
                InventorySetting.cloud_kitchen_id == cloud_kitchen_id
            )
        }
        received_ids = {
            row[0]
            for row in sess.query(StockBatch.raw_material_id)
            .filter(StockBatch.cloud_kitchen_id == cloud_kitchen_id)
            .distinct()
        }
        material_ids = received_ids | set(settings)
        if not material_ids:
            return []

        materials = (
            sess.query(RawMaterial)
            .filter(RawMaterial.id.in_(material_ids))
            .order_by(RawMaterial.name)
            .all()
        )
        summary = []
        for material in materials:
            valuation = valuations.get(material.id, _EMPTY)
            threshold = _resolve_threshold(material, settings.get(material.id), default_threshold)
            summary.append(
                {
                    "raw_material_id": material.id,
                    "code": material.code,
                    "name": material.name,
                    "unit": material.unit,
                    "category": material.category,
                    "on_hand": valuation.total_quantity,
                    "total_value": valuation.total_value,
                    "average_unit_cost": valuation.average_unit_cost,
                    "latest_cost": get_latest_cost(material.id, session=sess),
                    "low_stock_threshold": threshold,
                    "is_low_stock": valuation.total_quantity <= threshold,
                }
            )
        return summary

    return run_in_session(
        _impl, session, f"Failed to summarise inventory of kitchen {cloud_kitchen_id}"
    )


def get_low_stock_items(
    cloud_kitchen_id: int,
    session: Optional[Session] = None,
) -> List[Dict[str, Any]]:
    """Summary rows of materials at or below their low stock threshold."""
    return [
        row
        for row in get_inventory_summary(cloud_kitchen_id, session=session)
        if row["is_low_stock"]
    ]
