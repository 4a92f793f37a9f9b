"""
CloudKitchen and Outlet models.

A cloud kitchen is the tenant that owns stock batches. Outlets are the
restaurants or counters a kitchen allocates stock to.
"""

from sqlalchemy import Boolean, Column, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from .base import BaseModel


class CloudKitchen(BaseModel):
    """
    CloudKitchen model representing one tenant.

    Attributes:
        name: Display name
        code: Short unique code (e.g., "CK-BLR-01")
        address: Optional address
        is_active: Inactive kitchens reject new stock movements

    Relationships:
        outlets: One-to-Many with Outlet
    """

    __tablename__ = "cloud_kitchens"

    name = Column(String(200), nullable=False)
    code = Column(String(50), nullable=False, unique=True, index=True)
    address = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    outlets = relationship("Outlet", back_populates="cloud_kitchen")


class Outlet(BaseModel):
    """
    Outlet model.

    Attributes:
        cloud_kitchen_id: Kitchen that supplies this outlet
        name: Display name
        code: Short code unique within the kitchen
        is_active: Inactive outlets cannot receive allocations
    """

    __tablename__ = "outlets"

    cloud_kitchen_id = Column(
        Integer,
        ForeignKey("cloud_kitchens.id", ondelete="RESTRICT"),
        nullable=False,
    )
    name = Column(String(200), nullable=False)
    code = Column(String(50), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    cloud_kitchen = relationship("CloudKitchen", back_populates="outlets")

    __table_args__ = (
        Index("idx_outlet_kitchen", "cloud_kitchen_id"),
        Index("uq_outlet_kitchen_code", "cloud_kitchen_id", "code", unique=True),
    )
