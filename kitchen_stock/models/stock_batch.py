"""
StockBatch model for FIFO batch tracking.

Each record is one receipt of a raw material into a kitchen's stock: a
stock-in line or an adjustment increment. Batches are drained by FIFO
consumption and never deleted.
"""

from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
)
from sqlalchemy.orm import relationship

from kitchen_stock.utils.datetime_utils import utc_now

from .base import BaseModel


class StockBatch(BaseModel):
    """
    StockBatch model for FIFO stock tracking.

    Tracks quantity_purchased (immutable snapshot), quantity_remaining
    (mutable, decremented on consumption) and unit_cost (immutable snapshot).

    FIFO Consumption:
    Batches are consumed in received_at order, ties broken by id (creation
    order). A batch is Active while quantity_remaining > 0 and Exhausted once
    it reaches 0; exhausted batches stay as audit records.

    Concurrency:
    ``version`` is the SQLAlchemy version counter. An UPDATE against a row
    that another transaction already changed matches no rows and raises
    StaleDataError at flush time.

    Attributes:
        cloud_kitchen_id: Owning kitchen
        raw_material_id: Material held in this batch
        stock_in_id: Receipt header that created the batch (optional)
        received_at: FIFO ordering key
        quantity_purchased: Original received quantity (IMMUTABLE)
        quantity_remaining: Unconsumed quantity (MUTABLE, only decreases)
        unit_cost: Cost per unit at time of receipt (IMMUTABLE)
        version: Optimistic concurrency counter
    """

    __tablename__ = "stock_batches"

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
    stock_in_id = Column(
        Integer,
        ForeignKey("stock_in.id", ondelete="RESTRICT"),
        nullable=True,
    )

    received_at = Column(DateTime, nullable=False, default=utc_now)

    quantity_purchased = Column(Numeric(14, 3), nullable=False)
    quantity_remaining = Column(Numeric(14, 3), nullable=False)
    unit_cost = Column(Numeric(12, 4), nullable=False)

    version = Column(Integer, nullable=False)

    cloud_kitchen = relationship("CloudKitchen")
    raw_material = relationship("RawMaterial")
    stock_in = relationship("StockIn", back_populates="batches")

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("quantity_purchased > 0", name="ck_batch_qty_purchased_positive"),
        CheckConstraint("quantity_remaining >= 0", name="ck_batch_qty_remaining_non_negative"),
        CheckConstraint(
            "quantity_remaining <= quantity_purchased",
            name="ck_batch_qty_remaining_within_purchased",
        ),
        CheckConstraint("unit_cost >= 0", name="ck_batch_cost_non_negative"),
        Index(
            "idx_batch_fifo",
            "cloud_kitchen_id",
            "raw_material_id",
            "received_at",
            "id",
        ),
        Index("idx_batch_stock_in", "stock_in_id"),
    )

    def __repr__(self) -> str:
        """String representation of stock batch."""
        return (
            f"StockBatch(id={self.id}, "
            f"kitchen_id={self.cloud_kitchen_id}, "
            f"material_id={self.raw_material_id}, "
            f"qty_remaining={self.quantity_remaining}, "
            f"received_at={self.received_at})"
        )

    @property
    def is_active(self) -> bool:
        """True while the batch still holds stock."""
        return Decimal(str(self.quantity_remaining)) > 0

    @property
    def is_exhausted(self) -> bool:
        """True once the batch has been fully consumed."""
        return not self.is_active

    @property
    def quantity_consumed(self) -> Decimal:
        """quantity_purchased - quantity_remaining."""
        return Decimal(str(self.quantity_purchased)) - Decimal(str(self.quantity_remaining))

    @property
    def remaining_value(self) -> Decimal:
        """quantity_remaining * unit_cost."""
        return Decimal(str(self.quantity_remaining)) * Decimal(str(self.unit_cost))

    def to_dict(self, include_relationships: bool = False) -> dict:
        """
        Convert stock batch to dictionary.

        Args:
            include_relationships: If True, include material display info

        Returns:
            Dictionary representation with calculated fields
        """
        result = super().to_dict(include_relationships=False)

        result["is_active"] = self.is_active
        result["quantity_consumed"] = str(self.quantity_consumed)
        result["remaining_value"] = str(self.remaining_value)

        if include_relationships and self.raw_material is not None:
            result["raw_material"] = {
                "id": self.raw_material.id,
                "name": self.raw_material.name,
                "code": self.raw_material.code,
                "unit": self.raw_material.unit,
            }

        return result
