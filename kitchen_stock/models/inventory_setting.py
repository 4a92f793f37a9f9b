"""
InventorySetting model for per-kitchen material settings.

Holds the kitchen-specific low stock threshold. On-hand quantity is NOT
stored here; it is always derived from the batch ledger.
"""

from sqlalchemy import CheckConstraint, Column, ForeignKey, Integer, Numeric, UniqueConstraint
from sqlalchemy.orm import relationship

from .base import BaseModel


class InventorySetting(BaseModel):
    """
    Per-(kitchen, material) inventory settings.

    Attributes:
        cloud_kitchen_id: Kitchen
        raw_material_id: Material
        low_stock_threshold: On-hand quantity at or below which the material
            is reported as low stock
    """

    __tablename__ = "inventory_settings"

    cloud_kitchen_id = Column(
        Integer,
        ForeignKey("cloud_kitchens.id", ondelete="CASCADE"),
        nullable=False,
    )
    raw_material_id = Column(
        Integer,
        ForeignKey("raw_materials.id", ondelete="CASCADE"),
        nullable=False,
    )
    low_stock_threshold = Column(Numeric(14, 3), nullable=False, default=0)

    raw_material = relationship("RawMaterial")

    __table_args__ = (
        UniqueConstraint(
            "cloud_kitchen_id", "raw_material_id", name="uq_inventory_setting_kitchen_material"
        ),
        CheckConstraint("low_stock_threshold >= 0", name="ck_setting_threshold_non_negative"),
    )
