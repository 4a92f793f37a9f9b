"""
AuditLog model: generic who/what/when trail for state-changing operations.
"""

from sqlalchemy import JSON, Column, Index, Integer, String

from .base import BaseModel


class AuditLog(BaseModel):
    """
    Audit log entry.

    Attributes:
        actor: User identifier
        action: Action name (e.g., "inventory_decrement", "stock_allocated")
        entity_type: Kind of record affected (inventory, stock_in, stock_out)
        entity_id: Id of the affected record, when there is one
        cloud_kitchen_id: Kitchen context
        old_values: JSON snapshot before the change
        new_values: JSON snapshot after the change
    """

    __tablename__ = "audit_logs"

    updated_at = None

    actor = Column(String(100), nullable=True)
    action = Column(String(100), nullable=False)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(Integer, nullable=True)
    cloud_kitchen_id = Column(Integer, nullable=True)
    old_values = Column(JSON, nullable=True)
    new_values = Column(JSON, nullable=True)

    __table_args__ = (
        Index("idx_audit_kitchen", "cloud_kitchen_id"),
        Index("idx_audit_action", "action"),
    )
