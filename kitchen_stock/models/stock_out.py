"""
StockOut and StockOutItem models.

A stock-out records stock leaving a kitchen: an allocation to an outlet or a
self stock-out. Each item carries the FIFO cost of the batches it drained.
"""

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from kitchen_stock.utils.datetime_utils import utc_today

from .base import BaseModel


class StockOut(BaseModel):
    """
    StockOut header.

    Attributes:
        cloud_kitchen_id: Kitchen the stock left
        outlet_id: Receiving outlet (allocations only)
        allocation_request_id: Request this stock-out fulfilled, if any
        allocated_by: Actor who committed the stock-out
        allocation_date: Date of the movement
        stock_out_type: allocation | self
        reason: Why stock was used (self stock-out)
        notes: Free text

    Relationships:
        items: One-to-Many with StockOutItem
        allocation_request: The fulfilled request (Many-to-One, optional)
    """

    __tablename__ = "stock_out"

    updated_at = None

    cloud_kitchen_id = Column(
        Integer,
        ForeignKey("cloud_kitchens.id", ondelete="RESTRICT"),
        nullable=False,
    )
    outlet_id = Column(
        Integer,
        ForeignKey("outlets.id", ondelete="RESTRICT"),
        nullable=True,
    )
    allocation_request_id = Column(
        Integer,
        ForeignKey("allocation_requests.id", ondelete="SET NULL"),
        nullable=True,
        unique=True,
    )
    allocated_by = Column(String(100), nullable=True)
    allocation_date = Column(Date, nullable=False, default=utc_today)
    stock_out_type = Column(String(20), nullable=False, default="allocation")
    reason = Column(String(200), nullable=True)
    notes = Column(Text, nullable=True)

    outlet = relationship("Outlet")
    allocation_request = relationship("AllocationRequest", back_populates="stock_out")
    items = relationship(
        "StockOutItem",
        back_populates="stock_out",
        cascade="all, delete-orphan",
        order_by="StockOutItem.id",
    )

    __table_args__ = (
        Index("idx_stock_out_kitchen_date", "cloud_kitchen_id", "allocation_date"),
        Index("idx_stock_out_outlet", "outlet_id"),
    )

    @property
    def total_cost(self):
        """Sum of the FIFO cost of all items."""
        return sum((item.total_cost for item in self.items), 0)


class StockOutItem(BaseModel):
    """
    One material line of a stock-out.

    Attributes:
        stock_out_id: Parent header
        raw_material_id: Material consumed
        quantity: Quantity consumed
        total_cost: FIFO cost of the consumed quantity
    """

    __tablename__ = "stock_out_items"

    updated_at = None

    stock_out_id = Column(
        Integer,
        ForeignKey("stock_out.id", ondelete="CASCADE"),
        nullable=False,
    )
    raw_material_id = Column(
        Integer,
        ForeignKey("raw_materials.id", ondelete="RESTRICT"),
        nullable=False,
    )
    quantity = Column(Numeric(14, 3), nullable=False)
    total_cost = Column(Numeric(14, 4), nullable=False, default=0)

    stock_out = relationship("StockOut", back_populates="items")
    raw_material = relationship("RawMaterial")

    __table_args__ = (
        Index("idx_stock_out_item_parent", "stock_out_id"),
        CheckConstraint("quantity > 0", name="ck_stock_out_item_qty_positive"),
    )
