"""
StockIn model for receipt headers.

A receipt groups the batches received together (one invoice, one delivery
or one adjustment increment). Receipts are immutable after creation.
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


class StockIn(BaseModel):
    """
    StockIn receipt header.

    Attributes:
        cloud_kitchen_id: Receiving kitchen
        received_by: Actor who recorded the receipt
        receipt_date: Date goods were received
        supplier_name: Supplier for purchases (optional)
        invoice_number: Supplier invoice reference (optional)
        total_cost: Sum of quantity * unit_cost over the batches
        stock_in_type: purchase | kitchen | adjustment
        notes: Free text

    Relationships:
        batches: One-to-Many with StockBatch
    """

    __tablename__ = "stock_in"

    # Receipts are immutable
    updated_at = None

    cloud_kitchen_id = Column(
        Integer,
        ForeignKey("cloud_kitchens.id", ondelete="RESTRICT"),
        nullable=False,
    )
    received_by = Column(String(100), nullable=True)
    receipt_date = Column(Date, nullable=False, default=utc_today)
    supplier_name = Column(String(200), nullable=True)
    invoice_number = Column(String(100), nullable=True)
    total_cost = Column(Numeric(14, 4), nullable=False, default=0)
    stock_in_type = Column(String(20), nullable=False, default="purchase")
    notes = Column(Text, nullable=True)

    batches = relationship("StockBatch", back_populates="stock_in", order_by="StockBatch.id")

    __table_args__ = (
        Index("idx_stock_in_kitchen_date", "cloud_kitchen_id", "receipt_date"),
        CheckConstraint("total_cost >= 0", name="ck_stock_in_total_cost_non_negative"),
    )

    def __repr__(self) -> str:
        """String representation of stock-in receipt."""
        return (
            f"StockIn(id={self.id}, kitchen_id={self.cloud_kitchen_id}, "
            f"date={self.receipt_date}, type='{self.stock_in_type}')"
        )
