"""Order commands, their instrumented handlers, and the idempotency wrapper."""

from application.commands import (
    CreateOrderCommand,
    IdentifiedCommand,
    OrderItemDTO,
    SetPaidOrderStatusCommand,
)
from application.handlers import (
    CreateOrderCommandHandler,
    OperationOutcome,
    OutcomeStatus,
    SetPaidOrderStatusCommandHandler,
)
from application.idempotency import IdentifiedCommandHandler

__all__ = [
    "CreateOrderCommand",
    "CreateOrderCommandHandler",
    "IdentifiedCommand",
    "IdentifiedCommandHandler",
    "OperationOutcome",
    "OrderItemDTO",
    "OutcomeStatus",
    "SetPaidOrderStatusCommand",
    "SetPaidOrderStatusCommandHandler",
]
