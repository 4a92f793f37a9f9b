"""Service layer exception classes for Kitchen Stock.

This module defines all custom exceptions used by the service layer to provide
consistent error handling across the application.

Exception Hierarchy:
    ServiceError (base)
    ├── ValidationError          - malformed input (caller bug)
    ├── KitchenNotFound          - unknown kitchen id
    ├── OutletNotFound           - unknown or foreign outlet id
    ├── RawMaterialNotFound      - unknown material id
    ├── AllocationRequestNotFound - unknown outlet request id
    ├── InsufficientStock        - consumption exceeds active remaining quantity
    ├── ConcurrencyConflict      - batch changed underneath a consume; retry
    └── DatabaseError            - unexpected persistence failure
"""

from decimal import Decimal
from typing import Optional


class ServiceError(Exception):
    """Base exception for all service layer errors.

    All service-specific exceptions inherit from this class.
    """

    pass


class ValidationError(ServiceError):
    """Raised when input validation fails.

    Args:
        errors: List of human readable error messages

    Example:
        >>> raise ValidationError(["Quantity must be positive"])
        ValidationError: Validation failed: Quantity must be positive
    """

    def __init__(self, errors: list):
        self.errors = errors
        error_msg = "; ".join(errors)
        super().__init__(f"Validation failed: {error_msg}")


class KitchenNotFound(ServiceError):
    """Raised when a cloud kitchen cannot be found by ID."""

    def __init__(self, kitchen_id: int):
        self.kitchen_id = kitchen_id
        super().__init__(f"Cloud kitchen with ID {kitchen_id} not found")


class OutletNotFound(ServiceError):
    """Raised when an outlet cannot be found, or belongs to another kitchen."""

    def __init__(self, outlet_id: int, kitchen_id: Optional[int] = None):
        self.outlet_id = outlet_id
        self.kitchen_id = kitchen_id
        if kitchen_id is None:
            super().__init__(f"Outlet with ID {outlet_id} not found")
        else:
            super().__init__(f"Outlet with ID {outlet_id} not found for kitchen {kitchen_id}")


class RawMaterialNotFound(ServiceError):
    """Raised when a raw material cannot be found by ID."""

    def __init__(self, raw_material_id: int):
        self.raw_material_id = raw_material_id
        super().__init__(f"Raw material with ID {raw_material_id} not found")


class AllocationRequestNotFound(ServiceError):
    """Raised when an outlet allocation request cannot be found by ID."""

    def __init__(self, request_id: int):
        self.request_id = request_id
        super().__init__(f"Allocation request with ID {request_id} not found")


class InsufficientStock(ServiceError):
    """Raised when a consumption request exceeds the active remaining quantity.

    Nothing is consumed when this is raised.

    Args:
        shortfall: requested - available (always > 0)
        requested: Quantity asked for
        available: Total remaining quantity over active batches
        raw_material_id: Material concerned (optional)

    Example:
        >>> raise InsufficientStock(Decimal("5"), Decimal("25"), Decimal("20"), 7)
        InsufficientStock: Insufficient stock for raw material 7: requested 25,
        available 20, short by 5
    """

    def __init__(
        self,
        shortfall: Decimal,
        requested: Decimal,
        available: Decimal,
        raw_material_id: Optional[int] = None,
    ):
        self.shortfall = shortfall
        self.requested = requested
        self.available = available
        self.raw_material_id = raw_material_id
        subject = f"raw material {raw_material_id}" if raw_material_id is not None else "request"
        super().__init__(
            f"Insufficient stock for {subject}: requested {requested}, "
            f"available {available}, short by {shortfall}"
        )


class ConcurrencyConflict(ServiceError):
    """Raised when batches changed between read and write of a consumption.

    The caller retries the whole operation from a fresh read.
    """

    def __init__(self, kitchen_id: int, raw_material_id: int):
        self.kitchen_id = kitchen_id
        self.raw_material_id = raw_material_id
        super().__init__(
            f"Concurrent stock update for kitchen {kitchen_id}, "
            f"raw material {raw_material_id}; retry the operation"
        )


class DatabaseError(ServiceError):
    """Raised when a database operation fails unexpectedly."""

    def __init__(self, message: str, original_error: Exception = None):
        self.original_error = original_error
        super().__init__(f"Database error: {message}")
