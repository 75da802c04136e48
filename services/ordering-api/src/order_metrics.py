"""
Ordering metrics registry.

All business instruments are created once from an OpenTelemetry ``Meter`` when
the app starts and handed to the command handlers, which look them up by key.
The SDK instruments aggregate concurrent ``add``/``record`` calls safely, so
handlers never lock around them.

Recording is best effort: a failure inside an instrument is logged and
discarded so it can never replace the outcome of the business operation that
was being measured.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Union

from opentelemetry import metrics
from opentelemetry.metrics import Counter, Histogram, Meter, NoOpMeter

logger = logging.getLogger(__name__)

METER_NAME = "ordering-api"

ORDER_PLACED_COUNTER = "orderPlacedCounter"
ORDER_ITEMS_COUNTER = "orderItemsCounter"
ORDER_VALUE_COUNTER = "orderValueCounter"
ORDER_PROCESSING_TIME_HISTOGRAM = "orderProcessingTimeHistogram"
ORDER_PROCESSING_ERRORS_COUNTER = "orderProcessingErrorsCounter"
ORDER_PAID_COUNTER = "orderPaidCounter"
PAYMENT_PROCESSING_TIME_HISTOGRAM = "paymentProcessingTimeHistogram"
PAYMENT_PROCESSING_ERRORS_COUNTER = "paymentProcessingErrorsCounter"

Attributes = Mapping[str, Union[str, int, float, bool]]


@dataclass(frozen=True, slots=True)
class InstrumentSpec:
    key: str
    kind: str
    unit: str
    description: str


# The key doubles as the exported instrument name.
INSTRUMENT_SPECS: tuple[InstrumentSpec, ...] = (
    InstrumentSpec(ORDER_PLACED_COUNTER, "counter", "count", "Total number of orders placed"),
    InstrumentSpec(ORDER_ITEMS_COUNTER, "counter", "count", "Total number of units across placed orders"),
    InstrumentSpec(ORDER_VALUE_COUNTER, "counter", "currency", "Total value of placed orders"),
    InstrumentSpec(ORDER_PROCESSING_TIME_HISTOGRAM, "histogram", "s", "Order processing time in seconds"),
    InstrumentSpec(ORDER_PROCESSING_ERRORS_COUNTER, "counter", "count", "Number of errors while processing orders"),
    InstrumentSpec(ORDER_PAID_COUNTER, "counter", "count", "Total number of orders paid"),
    InstrumentSpec(PAYMENT_PROCESSING_TIME_HISTOGRAM, "histogram", "s", "Payment processing time in seconds"),
    InstrumentSpec(PAYMENT_PROCESSING_ERRORS_COUNTER, "counter", "count", "Number of errors while processing payments"),
)


class OrderingMetrics:
    """Process-wide set of ordering instruments, addressable by key."""

    def __init__(self, meter: Meter) -> None:
        self._counters: Dict[str, Counter] = {}
        self._histograms: Dict[str, Histogram] = {}
        for spec in INSTRUMENT_SPECS:
            if spec.kind == "counter":
                self._counters[spec.key] = meter.create_counter(spec.key, unit=spec.unit, description=spec.description)
            else:
                self._histograms[spec.key] = meter.create_histogram(
                    spec.key, unit=spec.unit, description=spec.description
                )

    @classmethod
    def from_global_provider(cls) -> "OrderingMetrics":
        """Build the registry from whichever MeterProvider `setup_telemetry` installed (no-op otherwise)."""
        return cls(metrics.get_meter(METER_NAME))

    @classmethod
    def noop(cls) -> "OrderingMetrics":
        return cls(NoOpMeter(METER_NAME))

    def counter(self, key: str) -> Counter:
        return self._counters[key]

    def histogram(self, key: str) -> Histogram:
        return self._histograms[key]

    def add(self, key: str, amount: int, attributes: Optional[Attributes] = None) -> None:
        """Increment the counter registered under ``key``; never raises for instrument failures."""
        counter = self.counter(key)
        try:
            counter.add(amount, attributes=attributes)
        except Exception as exc:  # noqa: BLE001
            _log_dropped_measurement(key, exc)

    def record(self, key: str, value: float, attributes: Optional[Attributes] = None) -> None:
        """Record an observation into the histogram registered under ``key``; never raises for instrument failures."""
        histogram = self.histogram(key)
        try:
            histogram.record(value, attributes=attributes)
        except Exception as exc:  # noqa: BLE001
            _log_dropped_measurement(key, exc)


def _log_dropped_measurement(key: str, exc: Exception) -> None:
    logger.debug({"event": "metric_dropped", "metric": key, "error": repr(exc)})

