"""Audit Service - best-effort who/what/when trail.

Audit entries are written after, or alongside, the inventory change they
describe. A failure to write one is logged as a warning and never rolls back
that change.
"""

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import AuditLog
from .database import run_in_session, session_scope
from .logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)


def _json_safe(values: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Decimals and dates as strings so the values fit a JSON column."""
    if values is None:
        return None
    result = {}
    for key, value in values.items():
        if isinstance(value, Decimal):
            value = str(value)
        elif isinstance(value, (datetime, date)):
            value = value.isoformat()
        elif isinstance(value, dict):
            value = _json_safe(value)
        result[key] = value
    return result


def _write(
    sess: Session,
    action: str,
    entity_type: str,
    entity_id: Optional[int],
    cloud_kitchen_id: Optional[int],
    actor: Optional[str],
    old_values: Optional[Dict[str, Any]],
    new_values: Optional[Dict[str, Any]],
) -> AuditLog:
    entry = AuditLog(
        actor=actor,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        cloud_kitchen_id=cloud_kitchen_id,
        old_values=_json_safe(old_values),
        new_values=_json_safe(new_values),
    )
    sess.add(entry)
    sess.flush()
    return entry


def record_audit_event(
    action: str,
    entity_type: str,
    entity_id: Optional[int] = None,
    cloud_kitchen_id: Optional[int] = None,
    actor: Optional[str] = None,
    old_values: Optional[Dict[str, Any]] = None,
    new_values: Optional[Dict[str, Any]] = None,
    session: Optional[Session] = None,
) -> Optional[AuditLog]:
    """
    Record an audit entry, never failing the caller.

    With a caller session the entry is written inside a SAVEPOINT, so a
    failed insert is rolled back alone and the caller's transaction stays
    usable. Without one the entry gets its own transaction.

    Args:
        action: Action name (e.g., "inventory_decrement")
        entity_type: Kind of record affected
        entity_id: Affected record id
        cloud_kitchen_id: Kitchen context
        actor: User identifier
        old_values: Snapshot before the change
        new_values: Snapshot after the change
        session: Optional database session

    Returns:
        AuditLog entry, or None if it could not be written
    """
    try:
        if session is not None:
            with session.begin_nested():
                return _write(
                    session, action, entity_type, entity_id,
                    cloud_kitchen_id, actor, old_values, new_values,
                )
        with session_scope() as sess:
            return _write(
                sess, action, entity_type, entity_id,
                cloud_kitchen_id, actor, old_values, new_values,
            )
    except SQLAlchemyError as e:
        log_operation(
            logger,
            operation="record_audit_event",
            outcome="failed",
            level=logging.WARNING,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            cloud_kitchen_id=cloud_kitchen_id,
            error=str(e),
        )
        return None


def get_audit_log(
    cloud_kitchen_id: Optional[int] = None,
    action: Optional[str] = None,
    limit: Optional[int] = None,
    session: Optional[Session] = None,
) -> List[AuditLog]:
    """
    Get audit entries, newest first.

    Args:
        cloud_kitchen_id: Restrict to one kitchen
        action: Restrict to one action name
        limit: Maximum number of entries
    """

    def _impl(sess: Session) -> List[AuditLog]:
        query = sess.query(AuditLog)
        if cloud_kitchen_id is not None:
            query = query.filter(AuditLog.cloud_kitchen_id == cloud_kitchen_id)
        if action:
            query = query.filter(AuditLog.action == action)
        query = query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        if limit:
            query = query.limit(limit)
        return query.all()

    return run_in_session(_impl, session, "Failed to load audit log")
