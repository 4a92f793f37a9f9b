"""
AllocationRequest and AllocationRequestItem models.

An outlet asks its kitchen for materials by raising a request. The kitchen
fulfils it with a stock-out; the request is then packed. Requests never
touch the batch ledger themselves.
"""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from kitchen_stock.utils.datetime_utils import utc_today

from .base import BaseModel


class AllocationRequest(BaseModel):
    """
    Request header.

    Attributes:
        cloud_kitchen_id: Kitchen asked to supply
        outlet_id: Requesting outlet
        requested_by: Actor who raised the request
        request_date: Day the request was raised
        is_packed: True once fulfilled by a stock-out
        notes: Free text

    Relationships:
        items: One-to-Many with AllocationRequestItem
        stock_out: The stock-out that fulfilled the request, if any
    """

    __tablename__ = "allocation_requests"

    cloud_kitchen_id = Column(
        Integer,
        ForeignKey("cloud_kitchens.id", ondelete="RESTRICT"),
        nullable=False,
    )
    outlet_id = Column(
        Integer,
        ForeignKey("outlets.id", ondelete="RESTRICT"),
        nullable=False,
    )
    requested_by = Column(String(100), nullable=True)
    request_date = Column(Date, nullable=False, default=utc_today)
    is_packed = Column(Boolean, nullable=False, default=False)
    notes = Column(Text, nullable=True)

    outlet = relationship("Outlet")
    items = relationship(
        "AllocationRequestItem",
        back_populates="allocation_request",
        cascade="all, delete-orphan",
        order_by="AllocationRequestItem.id",
    )
    stock_out = relationship("StockOut", back_populates="allocation_request", uselist=False)

    __table_args__ = (
        Index("idx_allocation_request_kitchen", "cloud_kitchen_id", "is_packed", "request_date"),
        Index("idx_allocation_request_outlet", "outlet_id", "request_date"),
    )


class AllocationRequestItem(BaseModel):
    """
    One requested material.

    Attributes:
        allocation_request_id: Parent request
        raw_material_id: Material asked for
        quantity: Quantity asked for
    """

    __tablename__ = "allocation_request_items"

    updated_at = None

    allocation_request_id = Column(
        Integer,
        ForeignKey("allocation_requests.id", ondelete="CASCADE"),
        nullable=False,
    )
    raw_material_id = Column(
        Integer,
        ForeignKey("raw_materials.id", ondelete="RESTRICT"),
        nullable=False,
    )
    quantity = Column(Numeric(14, 3), nullable=False)

    allocation_request = relationship("AllocationRequest", back_populates="items")
    raw_material = relationship("RawMaterial")

    __table_args__ = (
        UniqueConstraint(
            "allocation_request_id", "raw_material_id", name="uq_request_item_material"
        ),
        CheckConstraint("quantity > 0", name="ck_request_item_qty_positive"),
    )
