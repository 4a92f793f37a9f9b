"""
Constants and enumerations for the Kitchen Stock application.

This module defines system-wide constants including:
- Application metadata
- Quantity and cost precision used by the batch ledger
- Raw material categories, units and code prefixes
- Adjustment reasons offered to supervisors
"""

from decimal import Decimal
from typing import Dict, List

# ============================================================================
# Application Metadata
# ============================================================================

APP_NAME = "Kitchen Stock"
APP_VERSION = "0.1.0"
DATABASE_FILENAME = "kitchen_stock.db"

# ============================================================================
# Ledger Precision
# ============================================================================

# Quantities are stored as Numeric(14, 3), costs as Numeric(12, 4)
QUANTITY_PLACES = Decimal("0.001")
COST_PLACES = Decimal("0.0001")
ZERO = Decimal("0")

# Unit cost given to batches created by an adjustment increment
DEFAULT_ADJUSTMENT_UNIT_COST = Decimal("0.01")

# ============================================================================
# Raw Material Catalog
# ============================================================================

RAW_MATERIAL_UNITS: List[str] = [
    "kg",
    "g",
    "l",
    "ml",
    "pcs",
    "pack",
    "box",
    "dozen",
]

# Category -> short code used in generated material codes (RM-MEAT-001)
RAW_MATERIAL_CATEGORY_CODES: Dict[str, str] = {
    "Meat": "MEAT",
    "Grains": "GRNS",
    "Vegetables": "VEGT",
    "Oils": "OIL",
    "Spices": "SPCE",
    "Dairy": "DARY",
    "Packaging": "PKG",
    "Sanitary": "SAN",
    "Misc": "MISC",
}

RAW_MATERIAL_CATEGORIES: List[str] = list(RAW_MATERIAL_CATEGORY_CODES.keys())

MATERIAL_CODE_PREFIX = "RM"
MATERIAL_CODE_DIGITS = 3

# ============================================================================
# Inventory Adjustments
# ============================================================================

ADJUSTMENT_REASONS: List[str] = [
    "Physical count correction",
    "Damaged goods",
    "Expired",
    "Spillage",
    "Theft/Loss",
    "Other",
]

