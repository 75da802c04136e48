from __future__ import annotations

from dataclasses import dataclass, field
from typing import Generic, List, Optional, TypeVar

CommandT = TypeVar("CommandT")


@dataclass(frozen=True, slots=True)
class OrderItemDTO:
    product_id: int
    product_name: str
    unit_price: float
    discount: float = 0.0
    units: int = 1


@dataclass(frozen=True, slots=True)
class CreateOrderCommand:
    """Place a new order for the authenticated user."""

    user_id: str
    user_name: str
    order_items: List[OrderItemDTO] = field(default_factory=list)
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    zip_code: Optional[str] = None


@dataclass(frozen=True, slots=True)
class SetPaidOrderStatusCommand:
    """Mark an existing order as paid once payment validation completes."""

    order_number: int


@dataclass(frozen=True)
class IdentifiedCommand(Generic[CommandT]):
    """A command paired with the client-supplied request id used for de-duplication."""

    command: CommandT
    request_id: str
