"""DTO utilities for service layer.

Provides the Decimal normalisation used at the service boundary and the
standard string formats for quantities and costs in result dictionaries.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Union

from ..utils.constants import COST_PLACES, QUANTITY_PLACES
from .exceptions import ValidationError


def to_decimal(value: Any, field_name: str = "Value") -> Decimal:
    """
    Normalise a numeric input to Decimal.

    Floats go through str() so 0.1 becomes Decimal("0.1") rather than its
    binary expansion.

    Args:
        value: int, float, str or Decimal
        field_name: Name used in the error message

    Returns:
        Decimal value

    Raises:
        ValidationError: If value is missing, not numeric, NaN or infinite

    Examples:
        >>> to_decimal(2.5)
        Decimal('2.5')
        >>> to_decimal("10")
        Decimal('10')
    """
    if value is None or isinstance(value, bool):
        raise ValidationError([f"{field_name} is required"])
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError([f"{field_name} must be a valid number, got: {value!r}"])
    if not result.is_finite():
        raise ValidationError([f"{field_name} must be a finite number, got: {value!r}"])
    return result


def quantize_quantity(value: Decimal) -> Decimal:
    """Round a quantity to the stored precision (3 places)."""
    return value.quantize(QUANTITY_PLACES, rounding=ROUND_HALF_UP)


def quantize_cost(value: Decimal) -> Decimal:
    """Round a cost to the stored precision (4 places)."""
    return value.quantize(COST_PLACES, rounding=ROUND_HALF_UP)


def cost_to_string(value: Union[Decimal, float, int, str, None]) -> str:
    """
    Convert a cost value to a 2-decimal string format.

    Examples:
        >>> cost_to_string(Decimal("12.345"))
        '12.35'
        >>> cost_to_string(None)
        '0.00'
    """
    if value is None:
        return "0.00"
    decimal_value = Decimal(str(value))
    return str(decimal_value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def quantity_to_string(value: Union[Decimal, float, int, str, None]) -> str:
    """
    Convert a quantity to a 3-decimal string format.

    Examples:
        >>> quantity_to_string(Decimal("8"))
        '8.000'
    """
    if value is None:
        return "0.000"
    return str(quantize_quantity(Decimal(str(value))))
