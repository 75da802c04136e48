"""Order lifecycle vocabulary shared by the ORM models and command handlers."""

from __future__ import annotations

from enum import Enum


class OrderStatus(str, Enum):
    """Enumerates the checkpoints an order passes through."""

    SUBMITTED = "submitted"
    AWAITING_VALIDATION = "awaiting_validation"
    STOCK_CONFIRMED = "stock_confirmed"
    PAID = "paid"
    SHIPPED = "shipped"
    CANCELLED = "cancelled"


class OrderingDomainError(Exception):
    """Raised when an order cannot be built or changed as requested."""
