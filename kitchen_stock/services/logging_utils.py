"""Service layer logging utilities.

Provides structured logging functions for service operations, enabling
consistent log format and context across receipt, consumption and
adjustment operations.

Usage:
    from kitchen_stock.services.logging_utils import get_service_logger, log_operation

    logger = get_service_logger(__name__)

    log_operation(
        logger,
        operation="consume",
        outcome="insufficient_stock",
        level=logging.WARNING,
        cloud_kitchen_id=1,
        raw_material_id=7,
        shortfall="5.000",
    )
"""

import logging
from typing import Any


def get_service_logger(name: str) -> logging.Logger:
    """
    Get a logger configured for service operations.

    Args:
        name: Logger name (typically __name__ of the calling module)

    Returns:
        Logger named 'kitchen_stock.services.<module>'.

    Example:
        >>> get_service_logger("kitchen_stock.services.batch_ledger_service").name
        'kitchen_stock.services.batch_ledger_service'
    """
    if "." in name:
        name = name.split(".")[-1]
    return logging.getLogger(f"kitchen_stock.services.{name}")


def log_operation(
    logger: logging.Logger,
    operation: str,
    outcome: str,
    level: int = logging.INFO,
    **context: Any,
) -> None:
    """
    Log a service operation with structured context.

    The message is "<operation>: <outcome>"; the context is passed via
    ``extra`` so handlers can render it as structured fields.

    Args:
        logger: Logger instance to use
        operation: Operation name (e.g., "consume", "adjust")
        outcome: Outcome description (e.g., "success", "insufficient_stock")
        level: Log level (default: INFO)
        **context: Additional context fields (kitchen/material ids, quantities)
    """
    extra = {
        "operation": operation,
        "outcome": outcome,
        **context,
    }
    logger.log(level, f"{operation}: {outcome}", extra=extra)
