"""
Database models package.

This package contains all SQLAlchemy ORM models for the application.
"""

from .base import Base, BaseModel
from .cloud_kitchen import CloudKitchen, Outlet
from .raw_material import RawMaterial
from .stock_in import StockIn
from .stock_batch import StockBatch
from .stock_out import StockOut, StockOutItem
from .inventory_setting import InventorySetting
from .inventory_adjustment import InventoryAdjustment
from .audit_log import AuditLog
from .material_cost import MaterialCost
from .allocation_request import AllocationRequest, AllocationRequestItem
from .enums import AdjustmentType, CostSource, StockInType, StockOutType

__all__ = [
    "Base",
    "BaseModel",
    # Catalog
    "CloudKitchen",
    "Outlet",
    "RawMaterial",
    "MaterialCost",
    # Ledger
    "StockIn",
    "StockBatch",
    "StockOut",
    "StockOutItem",
    "AllocationRequest",
    "AllocationRequestItem",
    "InventorySetting",
    "InventoryAdjustment",
    "AuditLog",
    # Enums
    "AdjustmentType",
    "CostSource",
    "StockInType",
    "StockOutType",
]
