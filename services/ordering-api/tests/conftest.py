"""Pytest configuration for ordering-api tests.

Ensures the service's own src directory and the shared services root are on
sys.path, points persistence at a throwaway SQLite file, and provides
in-memory collaborators plus an OpenTelemetry metric reader for assertions.
"""

import asyncio
import itertools
import os
import sys
import tempfile
from pathlib import Path
from typing import Any, Callable, Optional

import pytest

SERVICES_ROOT = Path(__file__).resolve().parents[2]
if str(SERVICES_ROOT) not in sys.path:
    sys.path.insert(0, str(SERVICES_ROOT))

# Ensure this service's src is first in sys.path
SERVICE_SRC = Path(__file__).resolve().parents[1] / "src"
if str(SERVICE_SRC) not in sys.path:
    sys.path.insert(0, str(SERVICE_SRC))

os.environ.setdefault("ORDERING_DB_URL", f"sqlite:///{Path(tempfile.mkdtemp()) / 'ordering-test.db'}")
os.environ.setdefault("PAYMENT_VALIDATION_DELAY_SECONDS", "0")

from opentelemetry.sdk.metrics import MeterProvider  # noqa: E402
from opentelemetry.sdk.metrics.export import InMemoryMetricReader  # noqa: E402

from order_metrics import OrderingMetrics  # noqa: E402
from persistence.models import ClientRequest, Order  # noqa: E402


class InMemoryOrderRepository:
    def __init__(
        self,
        *,
        save_error: Optional[Exception] = None,
        get_error: Optional[Exception] = None,
        save_result: bool = True,
    ) -> None:
        self.orders: dict[int, Order] = {}
        self.save_calls = 0
        self._pending: list[Order] = []
        self._ids = itertools.count(1)
        self._save_error = save_error
        self._get_error = get_error
        self._save_result = save_result

    async def get(self, order_number: int) -> Optional[Order]:
        await asyncio.sleep(0)
        if self._get_error is not None:
            raise self._get_error
        return self.orders.get(order_number)

    def add(self, order: Order) -> Order:
        order.id = next(self._ids)
        self._pending.append(order)
        return order

    def seed(self, order: Order) -> Order:
        self.add(order)
        self._flush()
        return order

    async def save(self) -> bool:
        self.save_calls += 1
        # Yield so concurrent handlers interleave at the persistence boundary.
        await asyncio.sleep(0)
        if self._save_error is not None:
            raise self._save_error
        if not self._save_result:
            self._pending.clear()
            return False
        self._flush()
        return True

    def _flush(self) -> None:
        for order in self._pending:
            self.orders[order.id] = order
        self._pending.clear()


class InMemoryRequestManager:
    def __init__(self) -> None:
        self.requests: dict[str, ClientRequest] = {}

    async def find(self, request_id: str) -> Optional[ClientRequest]:
        return self.requests.get(request_id)

    async def create_request_for_command(self, request_id: str, command_name: str) -> ClientRequest:
        record = ClientRequest(id=request_id, name=command_name)
        self.requests[request_id] = record
        return record

    async def complete(self, request_id: str, succeeded: bool) -> None:
        self.requests[request_id].succeeded = succeeded


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def metric_reader() -> InMemoryMetricReader:
    return InMemoryMetricReader()


@pytest.fixture
def meter_provider(metric_reader: InMemoryMetricReader):
    provider = MeterProvider(metric_readers=[metric_reader])
    yield provider
    provider.shutdown()


@pytest.fixture
def ordering_metrics(meter_provider: MeterProvider) -> OrderingMetrics:
    return OrderingMetrics(meter_provider.get_meter("ordering-api-tests"))


@pytest.fixture
def metric_points(metric_reader) -> Callable[[str], list[Any]]:
    """Return the data points currently collected for an exported metric name."""

    def _points(name: str) -> list[Any]:
        data = metric_reader.get_metrics_data()
        points: list[Any] = []
        if data is None:
            return points
        for resource_metrics in data.resource_metrics:
            for scope_metrics in resource_metrics.scope_metrics:
                for metric in scope_metrics.metrics:
                    if metric.name.lower() == name.lower():
                        points.extend(metric.data.data_points)
        return points

    return _points


@pytest.fixture
def counter_total(metric_points) -> Callable[[str], float]:
    def _total(name: str) -> float:
        return sum(point.value for point in metric_points(name))

    return _total


@pytest.fixture
def order_repository() -> InMemoryOrderRepository:
    return InMemoryOrderRepository()


@pytest.fixture
def request_manager() -> InMemoryRequestManager:
    return InMemoryRequestManager()


@pytest.fixture
def make_order_repository() -> Callable[..., InMemoryOrderRepository]:
    return InMemoryOrderRepository
