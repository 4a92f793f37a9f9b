"""
RawMaterial model for the material catalog.

The ledger only needs the opaque id; name, unit and category are kept for
display and reporting.
"""

from sqlalchemy import Boolean, CheckConstraint, Column, Numeric, String, Text

from .base import BaseModel


class RawMaterial(BaseModel):
    """
    RawMaterial catalog entry.

    Attributes:
        name: Material name (e.g., "Chicken Breast")
        code: Generated code "RM-{CATEGORY}-{NNN}" (unique)
        unit: Unit the material is counted in (kg, l, pcs, ...)
        category: Catalog category (Meat, Dairy, ...)
        description: Optional description
        brand: Optional preferred brand
        low_stock_threshold: Default threshold when a kitchen has no override
        is_active: Inactive materials are hidden from stock movements
    """

    __tablename__ = "raw_materials"

    name = Column(String(200), nullable=False, index=True)
    code = Column(String(50), nullable=False, unique=True, index=True)
    unit = Column(String(20), nullable=False)
    category = Column(String(100), nullable=False, index=True)
    description = Column(Text, nullable=True)
    brand = Column(String(200), nullable=True)
    low_stock_threshold = Column(Numeric(14, 3), nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint("low_stock_threshold >= 0", name="ck_raw_material_threshold_non_negative"),
    )
