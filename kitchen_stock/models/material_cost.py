"""
MaterialCost model for raw material price history.

Each row is the price of a material at one point in time. Rows are never
updated; the latest row is the material's current price.
"""

from sqlalchemy import CheckConstraint, Column, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import relationship

from .base import BaseModel


class MaterialCost(BaseModel):
    """
    Price of a raw material.

    Attributes:
        raw_material_id: Material priced
        cost_per_unit: Price per unit of the material's unit
        source: purchase (taken from a receipt line) | manual (set directly)
        cloud_kitchen_id: Kitchen whose receipt set the price (purchases only)
        stock_in_id: Receipt the price was taken from (purchases only)
        recorded_by: Actor who set the price
    """

    __tablename__ = "material_costs"

    updated_at = None

    raw_material_id = Column(
        Integer,
        ForeignKey("raw_materials.id", ondelete="CASCADE"),
        nullable=False,
    )
    cost_per_unit = Column(Numeric(12, 4), nullable=False)
    source = Column(String(20), nullable=False, default="manual")
    cloud_kitchen_id = Column(
        Integer,
        ForeignKey("cloud_kitchens.id", ondelete="SET NULL"),
        nullable=True,
    )
    stock_in_id = Column(
        Integer,
        ForeignKey("stock_in.id", ondelete="SET NULL"),
        nullable=True,
    )
    recorded_by = Column(String(100), nullable=True)

    raw_material = relationship("RawMaterial")

    __table_args__ = (
        Index("idx_material_cost_latest", "raw_material_id", "created_at", "id"),
        CheckConstraint("cost_per_unit >= 0", name="ck_material_cost_non_negative"),
    )

    def __repr__(self) -> str:
        return (
            f"MaterialCost(id={self.id}, raw_material_id={self.raw_material_id}, "
            f"cost_per_unit={self.cost_per_unit})"
        )
