"""Services package - Business logic layer for Kitchen Stock.

This package contains all service modules that provide business logic
and database operations for the stock ledger.

Architecture:
- Services: Stateless functions organized by domain (catalog, ledger, receipts, stock-outs)
- Transactions: Managed via session_scope() context manager
- Exceptions: Consistent error handling via ServiceError hierarchy
- Validation: Input validation before database operations

Service Modules:
- catalog_service: Cloud kitchens, outlets, raw materials and material prices
- batch_ledger_service: FIFO batches, consumption and valuation
- adjustment_service: Set on-hand quantity to a counted value
- stock_in_service: Multi-line receipts
- stock_out_service: Atomic multi-material allocations and self stock-outs
- request_service: Outlet allocation requests and their fulfilment
- inventory_report_service: Stock summary and low stock thresholds
- audit_service: Best-effort audit trail

Infrastructure:
- exceptions: Custom exception classes for service layer errors
- database: Session management and database utilities
- ledger_locks: Per (kitchen, material) mutual exclusion
"""

from . import (
    adjustment_service,
    audit_service,
    batch_ledger_service,
    catalog_service,
    database,
    inventory_report_service,
    request_service,
    stock_in_service,
    stock_out_service,
)
from .adjustment_service import adjust, get_adjustment_history
from .batch_ledger_service import (
    check_availability,
    consume,
    get_batches,
    get_fifo_batches,
    get_on_hand_quantity,
    plan_consumption,
    receive_batch,
    valuate,
    valuate_by_material,
)
from .catalog_service import get_cost_history, get_latest_cost, set_material_cost
from .database import session_scope
from .dto import (
    AdjustmentResult,
    AllocationDraft,
    ConsumptionLine,
    ConsumptionPlan,
    ConsumptionRequest,
    Valuation,
)
from .exceptions import (
    AllocationRequestNotFound,
    ConcurrencyConflict,
    DatabaseError,
    InsufficientStock,
    KitchenNotFound,
    OutletNotFound,
    RawMaterialNotFound,
    ServiceError,
    ValidationError,
)
from .request_service import (
    create_allocation_request,
    fulfill_allocation_request,
    get_pending_totals,
    list_allocation_requests,
)
from .stock_in_service import record_stock_in
from .stock_out_service import allocate_to_outlet, record_self_stock_out

__all__ = [
    # Modules
    "adjustment_service",
    "audit_service",
    "batch_ledger_service",
    "catalog_service",
    "database",
    "inventory_report_service",
    "request_service",
    "stock_in_service",
    "stock_out_service",
    # Ledger operations
    "receive_batch",
    "consume",
    "plan_consumption",
    "check_availability",
    "get_fifo_batches",
    "get_batches",
    "get_on_hand_quantity",
    "valuate",
    "valuate_by_material",
    "adjust",
    "get_adjustment_history",
    "record_stock_in",
    "allocate_to_outlet",
    "record_self_stock_out",
    "create_allocation_request",
    "list_allocation_requests",
    "get_pending_totals",
    "fulfill_allocation_request",
    "set_material_cost",
    "get_latest_cost",
    "get_cost_history",
    "session_scope",
    # DTOs
    "AdjustmentResult",
    "AllocationDraft",
    "ConsumptionLine",
    "ConsumptionPlan",
    "ConsumptionRequest",
    "Valuation",
    # Exceptions
    "ServiceError",
    "ValidationError",
    "KitchenNotFound",
    "OutletNotFound",
    "RawMaterialNotFound",
    "AllocationRequestNotFound",
    "InsufficientStock",
    "ConcurrencyConflict",
    "DatabaseError",
]
