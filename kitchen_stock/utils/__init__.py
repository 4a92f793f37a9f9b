"""Utilities package for kitchen-stock application."""

from .datetime_utils import utc_now
from .config import get_config, reset_config

__all__ = [
    "utc_now",
    "get_config",
    "reset_config",
]
