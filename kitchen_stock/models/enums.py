"""
Enumerations for stock movements.

- StockInType: Where a receipt came from
- StockOutType: Where consumed stock went
- AdjustmentType: Direction of an inventory adjustment
- CostSource: Where a material price came from
"""

from enum import Enum


class StockInType(str, Enum):
    """
    Receipt classification.

    Values:
        PURCHASE: Goods bought from a supplier against an invoice
        KITCHEN: Goods received from another kitchen or produced in-house
        ADJUSTMENT: Synthetic receipt created by an adjustment increment
    """

    PURCHASE = "purchase"
    KITCHEN = "kitchen"
    ADJUSTMENT = "adjustment"


class StockOutType(str, Enum):
    """
    Stock-out classification.

    Values:
        ALLOCATION: Stock allocated to an outlet
        SELF: Stock used by the kitchen itself (self stock-out)
    """

    ALLOCATION = "allocation"
    SELF = "self"


class AdjustmentType(str, Enum):
    """Direction of an inventory adjustment."""

    INCREMENT = "increment"
    DECREMENT = "decrement"
    NONE = "none"


class CostSource(str, Enum):
    """Origin of a MaterialCost row."""

    PURCHASE = "purchase"
    MANUAL = "manual"
