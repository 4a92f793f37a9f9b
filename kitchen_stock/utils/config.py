"""
Configuration management for the Kitchen Stock application.

This module handles:
- Database path and URL configuration
- Environment-specific configuration (development vs. production)
- Ledger policy settings (nominal adjustment cost, low stock default)

Environment variables:
    KITCHEN_STOCK_ENV: 'production' (default) or 'development'
    KITCHEN_STOCK_DATABASE_URL: Full SQLAlchemy URL, overrides the file path
    KITCHEN_STOCK_DB_TIMEOUT: SQLite busy timeout in seconds (default 30)
    KITCHEN_STOCK_ADJUSTMENT_UNIT_COST: Unit cost for adjustment batches (default 0.01)
    KITCHEN_STOCK_LOW_STOCK_THRESHOLD: Default low stock threshold (default 0)
"""

import logging
import os
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional

from .constants import DATABASE_FILENAME, DEFAULT_ADJUSTMENT_UNIT_COST

logger = logging.getLogger(__name__)

DEFAULT_DB_TIMEOUT = 30
DEFAULT_LOW_STOCK_THRESHOLD = Decimal("0")


class Config:
    """
    Application configuration manager.

    Handles database location and the policy values the ledger services read
    at call time.
    """

    def __init__(self, environment: str = "production"):
        """
        Initialize configuration.

        Args:
            environment: Environment mode - 'production' or 'development'
        """
        self.environment = environment

        if environment == "development":
            self._base_dir = self._get_project_data_dir()
        else:
            self._base_dir = self._get_user_data_dir()

        self._database_dir = self._base_dir
        self._database_path = self._database_dir / DATABASE_FILENAME

    def _get_project_data_dir(self) -> Path:
        """Project data/ directory used in development."""
        project_root = Path(__file__).parent.parent.parent
        return project_root / "data"

    def _get_user_data_dir(self) -> Path:
        """Per-user application directory used in production."""
        return Path.home() / ".kitchen_stock"

    def ensure_directories(self) -> None:
        """Create the database directory if it doesn't exist."""
        self._database_dir.mkdir(parents=True, exist_ok=True)

    @property
    def database_path(self) -> Path:
        """Full path to the SQLite database file."""
        return self._database_path

    @property
    def database_url(self) -> str:
        """
        SQLAlchemy database URL.

        KITCHEN_STOCK_DATABASE_URL wins when set, which is how a hosted
        PostgreSQL database is selected.

        Returns:
            Database URL string for SQLAlchemy
        """
        override = os.environ.get("KITCHEN_STOCK_DATABASE_URL")
        if override:
            return override
        db_path_str = str(self._database_path).replace("\\", "/")
        return f"sqlite:///{db_path_str}"

    @property
    def db_timeout(self) -> int:
        """SQLite busy timeout in seconds."""
        raw = os.environ.get("KITCHEN_STOCK_DB_TIMEOUT")
        if raw is None:
            return DEFAULT_DB_TIMEOUT
        try:
            value = int(raw)
        except ValueError:
            logger.warning(
                f"Invalid KITCHEN_STOCK_DB_TIMEOUT '{raw}', using default {DEFAULT_DB_TIMEOUT}"
            )
            return DEFAULT_DB_TIMEOUT
        if value <= 0:
            logger.warning(
                f"Invalid KITCHEN_STOCK_DB_TIMEOUT '{raw}', using default {DEFAULT_DB_TIMEOUT}"
            )
            return DEFAULT_DB_TIMEOUT
        return value

    @property
    def adjustment_unit_cost(self) -> Decimal:
        """Unit cost recorded on batches created by an adjustment increment."""
        return self._decimal_setting(
            "KITCHEN_STOCK_ADJUSTMENT_UNIT_COST", DEFAULT_ADJUSTMENT_UNIT_COST
        )

    @property
    def low_stock_default_threshold(self) -> Decimal:
        """Threshold used when neither kitchen setting nor material default exists."""
        return self._decimal_setting(
            "KITCHEN_STOCK_LOW_STOCK_THRESHOLD", DEFAULT_LOW_STOCK_THRESHOLD
        )

    def _decimal_setting(self, name: str, default: Decimal) -> Decimal:
        raw = os.environ.get(name)
        if raw is None:
            return default
        try:
            value = Decimal(raw)
        except InvalidOperation:
            logger.warning(f"Invalid {name} '{raw}', using default {default}")
            return default
        if not value.is_finite() or value < 0:
            logger.warning(f"Invalid {name} '{raw}', using default {default}")
            return default
        return value

    def database_exists(self) -> bool:
        """
        Check if database file exists.

        Returns:
            True if database file exists, False otherwise
        """
        return self._database_path.exists()

    def __repr__(self) -> str:
        """String representation of config."""
        return f"Config(environment='{self.environment}', database_path='{self._database_path}')"


# Global configuration instance
_config_instance: Optional[Config] = None


def get_config(environment: Optional[str] = None) -> Config:
    """
    Get the global configuration instance.

    Once created, the singleton's environment cannot be changed by passing
    a different environment argument; this prevents accidental database
    switching mid-session.

    Args:
        environment: Optional environment for initial creation. If None, uses
                    KITCHEN_STOCK_ENV or defaults to production. Ignored if
                    singleton already exists.

    Returns:
        Config instance
    """
    global _config_instance

    if _config_instance is None:
        if environment is None:
            environment = os.environ.get("KITCHEN_STOCK_ENV", "production")
        _config_instance = Config(environment)
    elif environment is not None and environment != _config_instance.environment:
        logger.warning(
            f"get_config() called with environment='{environment}' but singleton "
            f"already exists with environment='{_config_instance.environment}'. "
            f"Returning existing singleton to prevent database switching."
        )

    return _config_instance


def reset_config():
    """
    Reset the global configuration instance.

    Useful for testing.
    """
    global _config_instance
    _config_instance = None
