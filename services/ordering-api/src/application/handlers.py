"""
Command handlers for placing orders and marking them paid.

Both handlers follow the same shape: start a monotonic timer, run the domain
logic, then either record success metrics (counters + duration histogram) or
count the failure by exception type and re-raise it untouched. Measurements go
through `OrderingMetrics`, which swallows instrument failures, so a broken
metrics pipeline never changes what the caller sees.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from shared.observability.privacy import mask_user_id

from application.commands import CreateOrderCommand, SetPaidOrderStatusCommand
from order_metrics import (
    ORDER_ITEMS_COUNTER,
    ORDER_PAID_COUNTER,
    ORDER_PLACED_COUNTER,
    ORDER_PROCESSING_ERRORS_COUNTER,
    ORDER_PROCESSING_TIME_HISTOGRAM,
    ORDER_VALUE_COUNTER,
    PAYMENT_PROCESSING_ERRORS_COUNTER,
    PAYMENT_PROCESSING_TIME_HISTOGRAM,
    OrderingMetrics,
)
from persistence.models import Order
from persistence.repository import OrderRepository

logger = logging.getLogger(__name__)

DEFAULT_PAYMENT_VALIDATION_DELAY_SECONDS = 10.0
SAVE_FAILED_ERROR = "SaveFailed"


class OutcomeStatus(str, Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    FAULT = "fault"


@dataclass(frozen=True, slots=True)
class OperationOutcome:
    """Result of one handler invocation, consumed immediately by the metrics registry."""

    status: OutcomeStatus
    elapsed_seconds: float
    error_kind: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status is OutcomeStatus.OK


def _elapsed_since(started: float) -> float:
    return time.perf_counter() - started


def _completed_outcome(saved: bool, started: float) -> OperationOutcome:
    if saved:
        return OperationOutcome(OutcomeStatus.OK, _elapsed_since(started))
    return OperationOutcome(OutcomeStatus.FAULT, _elapsed_since(started), SAVE_FAILED_ERROR)


def _line_totals(command: CreateOrderCommand) -> tuple[int, float]:
    """Sum units and (unit_price - discount) * units over the command lines as submitted."""
    units = sum(item.units for item in command.order_items)
    value = sum((item.unit_price - item.discount) * item.units for item in command.order_items)
    return units, value


class CreateOrderCommandHandler:
    def __init__(self, repository: OrderRepository, metrics: OrderingMetrics) -> None:
        self._repository = repository
        self._metrics = metrics

    async def handle(self, command: CreateOrderCommand) -> bool:
        started = time.perf_counter()
        masked_user_id = mask_user_id(command.user_id)

        try:
            order = self._build_order(command)
            logger.info(
                {
                    "event": "create_order",
                    "user_id": masked_user_id,
                    "item_count": len(order.order_items),
                    "total_units": order.total_units,
                }
            )
            self._repository.add(order)
            saved = await self._repository.save()
        except Exception as exc:
            outcome = OperationOutcome(OutcomeStatus.FAULT, _elapsed_since(started), type(exc).__name__)
            self._metrics.add(ORDER_PROCESSING_ERRORS_COUNTER, 1, {"errorType": outcome.error_kind})
            logger.error(
                {
                    "event": "create_order_failed",
                    "user_id": masked_user_id,
                    "error_type": outcome.error_kind,
                    "error": str(exc),
                    "elapsed_seconds": outcome.elapsed_seconds,
                }
            )
            raise

        outcome = _completed_outcome(saved, started)
        if not outcome.success:
            self._metrics.add(ORDER_PROCESSING_ERRORS_COUNTER, 1, {"errorType": outcome.error_kind})
            logger.error({"event": "create_order_not_saved", "user_id": masked_user_id})
        self._record_order_placed(order, masked_user_id, outcome, *_line_totals(command))
        return saved

    def _build_order(self, command: CreateOrderCommand) -> Order:
        order = Order(
            user_id=command.user_id,
            user_name=command.user_name,
            street=command.street,
            city=command.city,
            state=command.state,
            country=command.country,
            zip_code=command.zip_code,
        )
        for item in command.order_items:
            order.add_order_item(
                product_id=item.product_id,
                product_name=item.product_name,
                unit_price=item.unit_price,
                discount=item.discount,
                units=item.units,
            )
        return order

    def _record_order_placed(
        self,
        order: Order,
        masked_user_id: Optional[str],
        outcome: OperationOutcome,
        total_units: int,
        total_value: float,
    ) -> None:
        order_id = str(order.id)
        if outcome.success:
            self._metrics.add(ORDER_PLACED_COUNTER, 1, {"userId": masked_user_id or ""})
            self._metrics.add(ORDER_ITEMS_COUNTER, total_units, {"orderId": order_id})
            # Counters are integer-valued; fractional currency is truncated.
            self._metrics.add(ORDER_VALUE_COUNTER, max(int(total_value), 0), {"orderId": order_id})
        self._metrics.record(
            ORDER_PROCESSING_TIME_HISTOGRAM,
            outcome.elapsed_seconds,
            {"orderId": order_id, "userId": masked_user_id or ""},
        )


class SetPaidOrderStatusCommandHandler:
    """Transitions a submitted order to paid after a simulated payment validation wait.

    There is no rejection path: any order that can be loaded ends up paid.
    """

    def __init__(
        self,
        repository: OrderRepository,
        metrics: OrderingMetrics,
        *,
        payment_delay_seconds: float = DEFAULT_PAYMENT_VALIDATION_DELAY_SECONDS,
    ) -> None:
        self._repository = repository
        self._metrics = metrics
        self._payment_delay_seconds = max(0.0, payment_delay_seconds)

    async def handle(self, command: SetPaidOrderStatusCommand) -> bool:
        started = time.perf_counter()

        try:
            await asyncio.sleep(self._payment_delay_seconds)

            order = await self._repository.get(command.order_number)
            if order is None:
                logger.warning({"event": "set_paid_order_not_found", "order_number": command.order_number})
                return False

            order.set_paid_status()
            saved = await self._repository.save()
        except Exception as exc:
            outcome = OperationOutcome(OutcomeStatus.FAULT, _elapsed_since(started), type(exc).__name__)
            self._metrics.add(PAYMENT_PROCESSING_ERRORS_COUNTER, 1, {"errorType": outcome.error_kind})
            logger.error(
                {
                    "event": "set_paid_order_failed",
                    "order_number": command.order_number,
                    "error_type": outcome.error_kind,
                    "error": str(exc),
                    "elapsed_seconds": outcome.elapsed_seconds,
                }
            )
            raise

        outcome = _completed_outcome(saved, started)
        order_id = str(order.id)
        if outcome.success:
            self._metrics.add(ORDER_PAID_COUNTER, 1, {"orderId": order_id})
            logger.info({"event": "order_paid", "order_number": command.order_number})
        else:
            self._metrics.add(PAYMENT_PROCESSING_ERRORS_COUNTER, 1, {"errorType": outcome.error_kind})
            logger.error({"event": "set_paid_order_not_saved", "order_number": command.order_number})
        self._metrics.record(PAYMENT_PROCESSING_TIME_HISTOGRAM, outcome.elapsed_seconds, {"orderId": order_id})
        return saved
