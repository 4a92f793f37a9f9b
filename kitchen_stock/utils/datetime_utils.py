"""Datetime helpers for timezone-aware UTC timestamps.

Usage:
    from kitchen_stock.utils.datetime_utils import utc_now

    # For SQLAlchemy Column defaults
    created_at = Column(DateTime, default=utc_now)
"""

from datetime import date, datetime, timezone


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def utc_today() -> date:
    """Return the current UTC calendar date (receipt and allocation dates)."""
    return utc_now().date()
