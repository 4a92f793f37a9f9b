"""Unit tests for the service exception hierarchy.

Validates that all exceptions inherit from ServiceError and carry their
context as attributes.
"""

import inspect
from decimal import Decimal

import pytest

from kitchen_stock.services import exceptions as exc_module
from kitchen_stock.services.exceptions import (
    ConcurrencyConflict,
    DatabaseError,
    InsufficientStock,
    KitchenNotFound,
    OutletNotFound,
    RawMaterialNotFound,
    ServiceError,
    ValidationError,
)


def get_all_exception_classes():
    """Discover all exception classes defined in the exceptions module."""
    return [
        (name, obj)
        for name, obj in inspect.getmembers(exc_module, inspect.isclass)
        if issubclass(obj, Exception) and obj.__module__ == exc_module.__name__
    ]


class TestExceptionHierarchy:
    """Verify all exceptions inherit from ServiceError."""

    def test_all_domain_exceptions_inherit_from_service_error(self):
        failures = [
            name
            for name, exc_class in get_all_exception_classes()
            if exc_class is not ServiceError and not issubclass(exc_class, ServiceError)
        ]
        assert not failures, f"Exceptions not inheriting from ServiceError: {failures}"

    def test_insufficient_stock_is_not_a_validation_error(self):
        assert not issubclass(InsufficientStock, ValidationError)
        assert not issubclass(KitchenNotFound, InsufficientStock)


class TestExceptionContext:
    def test_validation_error_joins_messages(self):
        error = ValidationError(["Quantity must be positive", "Reason is required"])
        assert error.errors == ["Quantity must be positive", "Reason is required"]
        assert str(error) == "Validation failed: Quantity must be positive; Reason is required"

    def test_insufficient_stock_carries_shortfall(self):
        error = InsufficientStock(Decimal("5"), Decimal("25"), Decimal("20"), 7)

        assert error.shortfall == Decimal("5")
        assert error.requested == Decimal("25")
        assert error.available == Decimal("20")
        assert error.raw_material_id == 7
        assert "short by 5" in str(error)
        assert "raw material 7" in str(error)

    def test_insufficient_stock_without_material(self):
        error = InsufficientStock(Decimal("1"), Decimal("2"), Decimal("1"))
        assert "Insufficient stock for request" in str(error)

    @pytest.mark.parametrize(
        "error, attribute, value",
        [
            (KitchenNotFound(3), "kitchen_id", 3),
            (RawMaterialNotFound(9), "raw_material_id", 9),
            (OutletNotFound(4, 1), "kitchen_id", 1),
            (ConcurrencyConflict(1, 7), "raw_material_id", 7),
        ],
    )
    def test_not_found_and_conflict_attributes(self, error, attribute, value):
        assert getattr(error, attribute) == value

    def test_outlet_not_found_message_mentions_kitchen(self):
        assert "for kitchen 2" in str(OutletNotFound(5, 2))
        assert "for kitchen" not in str(OutletNotFound(5))

    def test_database_error_keeps_original(self):
        original = RuntimeError("connection reset")
        error = DatabaseError("Failed to consume", original_error=original)
        assert error.original_error is original
        assert str(error) == "Database error: Failed to consume"
