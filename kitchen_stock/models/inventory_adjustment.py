"""
InventoryAdjustment model: immutable record of every inventory adjustment.

Adjustments bypass the receipt/allocation paper trail, so each one is
written in the same transaction as the batch change it explains.
"""

from sqlalchemy import (
    Column,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from .base import BaseModel


class InventoryAdjustment(BaseModel):
    """
    InventoryAdjustment audit record.

    Attributes:
        cloud_kitchen_id: Kitchen adjusted
        raw_material_id: Material adjusted
        adjustment_type: increment | decrement
        old_quantity: On-hand quantity before the adjustment
        new_quantity: On-hand quantity after the adjustment
        quantity_delta: new_quantity - old_quantity
        reason: Required reason (e.g., "Damaged goods")
        details: Optional free text
        stock_in_id: Receipt created for an increment
        cost_impact: Value added (increment) or FIFO cost removed (decrement)
        created_by: Actor identifier

    Note:
        Records are immutable after creation.
    """

    __tablename__ = "inventory_adjustments"

    updated_at = None

    cloud_kitchen_id = Column(
        Integer,
        ForeignKey("cloud_kitchens.id", ondelete="RESTRICT"),
        nullable=False,
    )
    raw_material_id = Column(
        Integer,
        ForeignKey("raw_materials.id", ondelete="RESTRICT"),
        nullable=False,
    )
    adjustment_type = Column(String(20), nullable=False)
    old_quantity = Column(Numeric(14, 3), nullable=False)
    new_quantity = Column(Numeric(14, 3), nullable=False)
    quantity_delta = Column(Numeric(14, 3), nullable=False)
    reason = Column(String(200), nullable=False)
    details = Column(Text, nullable=True)
    stock_in_id = Column(
        Integer,
        ForeignKey("stock_in.id", ondelete="RESTRICT"),
        nullable=True,
    )
    cost_impact = Column(Numeric(14, 4), nullable=False, default=0)
    created_by = Column(String(100), nullable=True)

    raw_material = relationship("RawMaterial")

    __table_args__ = (
        Index("idx_adjustment_kitchen_material", "cloud_kitchen_id", "raw_material_id"),
        Index("idx_adjustment_created", "created_at"),
    )

    def __repr__(self) -> str:
        """String representation of inventory adjustment."""
        return (
            f"InventoryAdjustment(id={self.id}, "
            f"material_id={self.raw_material_id}, "
            f"type='{self.adjustment_type}', "
            f"delta={self.quantity_delta})"
        )
