"""Data Transfer Objects for the stock ledger.

Typed value objects exchanged between the batch ledger and its callers.
None of these are persisted; they replace the loosely shaped dictionaries a
caller would otherwise have to interpret.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from ..utils.constants import ZERO
from .dto_utils import cost_to_string, quantity_to_string, to_decimal
from .exceptions import ValidationError


@dataclass(frozen=True)
class ConsumptionRequest:
    """Take ``quantity`` units of a raw material from a kitchen.

    Raises:
        ValidationError: If quantity is not positive
    """

    cloud_kitchen_id: int
    raw_material_id: int
    quantity: Decimal

    def __post_init__(self) -> None:
        quantity = to_decimal(self.quantity, "Quantity")
        if quantity <= 0:
            raise ValidationError([f"Quantity must be positive, got: {quantity}"])
        object.__setattr__(self, "quantity", quantity)

    @property
    def key(self):
        """Ledger key (cloud_kitchen_id, raw_material_id)."""
        return (self.cloud_kitchen_id, self.raw_material_id)


@dataclass(frozen=True)
class ConsumptionLine:
    """Quantity taken from one batch."""

    batch_id: int
    quantity: Decimal
    unit_cost: Decimal
    received_at: Optional[datetime] = None

    @property
    def cost(self) -> Decimal:
        return self.quantity * self.unit_cost


@dataclass
class ConsumptionPlan:
    """Ordered FIFO consumption of one (kitchen, material).

    Attributes:
        cloud_kitchen_id: Kitchen consumed from
        raw_material_id: Material consumed
        lines: (batch, quantity) pairs, oldest batch first
    """

    cloud_kitchen_id: int
    raw_material_id: int
    lines: List[ConsumptionLine] = field(default_factory=list)

    @property
    def quantity(self) -> Decimal:
        """Total quantity satisfied by the plan."""
        return sum((line.quantity for line in self.lines), ZERO)

    @property
    def total_cost(self) -> Decimal:
        """FIFO cost of goods: sum of quantity * unit_cost."""
        return sum((line.cost for line in self.lines), ZERO)

    @property
    def batch_ids(self) -> List[int]:
        return [line.batch_id for line in self.lines]

    def as_pairs(self) -> List[tuple]:
        """Plan as [(batch_id, quantity), ...]."""
        return [(line.batch_id, line.quantity) for line in self.lines]

    def to_dict(self) -> Dict:
        return {
            "cloud_kitchen_id": self.cloud_kitchen_id,
            "raw_material_id": self.raw_material_id,
            "quantity": quantity_to_string(self.quantity),
            "total_cost": cost_to_string(self.total_cost),
            "lines": [
                {
                    "batch_id": line.batch_id,
                    "quantity": quantity_to_string(line.quantity),
                    "unit_cost": str(line.unit_cost),
                }
                for line in self.lines
            ],
        }


@dataclass(frozen=True)
class Valuation:
    """Value of the remaining stock.

    Attributes:
        total_value: Sum of quantity_remaining * unit_cost over active batches
        total_quantity: Sum of quantity_remaining over active batches
        average_unit_cost: total_value / total_quantity, 0 when no stock
    """

    total_value: Decimal
    total_quantity: Decimal
    average_unit_cost: Decimal

    def to_dict(self) -> Dict[str, str]:
        return {
            "total_value": cost_to_string(self.total_value),
            "total_quantity": quantity_to_string(self.total_quantity),
            "average_unit_cost": str(self.average_unit_cost),
        }


@dataclass
class AdjustmentResult:
    """Outcome of an inventory adjustment.

    Attributes:
        adjustment_type: "increment", "decrement" or "none"
        old_quantity: On-hand quantity before
        new_quantity: On-hand quantity after
        adjustment_id: InventoryAdjustment record id (None for no-op)
        batch_id: Batch created by an increment
        plan: Consumption plan applied by a decrement
    """

    cloud_kitchen_id: int
    raw_material_id: int
    adjustment_type: str
    old_quantity: Decimal
    new_quantity: Decimal
    adjustment_id: Optional[int] = None
    batch_id: Optional[int] = None
    stock_in_id: Optional[int] = None
    plan: Optional[ConsumptionPlan] = None

    @property
    def delta(self) -> Decimal:
        return self.new_quantity - self.old_quantity

    @property
    def changed(self) -> bool:
        return self.delta != 0

    def to_dict(self) -> Dict:
        return {
            "cloud_kitchen_id": self.cloud_kitchen_id,
            "raw_material_id": self.raw_material_id,
            "adjustment_type": self.adjustment_type,
            "old_quantity": quantity_to_string(self.old_quantity),
            "new_quantity": quantity_to_string(self.new_quantity),
            "adjustment_amount": quantity_to_string(abs(self.delta)),
            "adjustment_id": self.adjustment_id,
            "batch_id": self.batch_id,
            "stock_in_id": self.stock_in_id,
        }


class AllocationDraft:
    """Caller-owned draft of a multi-material stock-out.

    A form builds the draft line by line and hands it to
    ``stock_out_service`` at commit time. Lines for the same material are
    merged.

    Example:
        >>> draft = AllocationDraft(cloud_kitchen_id=1)
        >>> draft.add(raw_material_id=7, quantity="2.5")
        >>> draft.add(raw_material_id=9, quantity=4)
        >>> [r.raw_material_id for r in draft.requests()]
        [7, 9]
    """

    def __init__(self, cloud_kitchen_id: int):
        self.cloud_kitchen_id = cloud_kitchen_id
        self._quantities: Dict[int, Decimal] = {}

    def add(self, raw_material_id: int, quantity) -> None:
        """Add quantity of a material; raises ValidationError if not positive."""
        request = ConsumptionRequest(self.cloud_kitchen_id, raw_material_id, quantity)
        current = self._quantities.get(raw_material_id, ZERO)
        self._quantities[raw_material_id] = current + request.quantity

    def set(self, raw_material_id: int, quantity) -> None:
        """Replace the quantity of a material line."""
        request = ConsumptionRequest(self.cloud_kitchen_id, raw_material_id, quantity)
        self._quantities[raw_material_id] = request.quantity

    def remove(self, raw_material_id: int) -> None:
        self._quantities.pop(raw_material_id, None)

    def clear(self) -> None:
        self._quantities.clear()

    def requests(self) -> List[ConsumptionRequest]:
        """Draft lines as ConsumptionRequests, in the order they were added."""
        return [
            ConsumptionRequest(self.cloud_kitchen_id, material_id, quantity)
            for material_id, quantity in self._quantities.items()
        ]

    def is_empty(self) -> bool:
        return not self._quantities

    def __len__(self) -> int:
        return len(self._quantities)
