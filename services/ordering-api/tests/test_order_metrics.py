import pytest

from order_metrics import (
    INSTRUMENT_SPECS,
    ORDER_PLACED_COUNTER,
    ORDER_PROCESSING_TIME_HISTOGRAM,
    OrderingMetrics,
)


class _ExplodingInstrument:
    def add(self, amount, attributes=None):
        raise RuntimeError("exporter offline")

    def record(self, value, attributes=None):
        raise RuntimeError("exporter offline")


class _ExplodingMeter:
    def create_counter(self, name, unit="", description=""):
        return _ExplodingInstrument()

    def create_histogram(self, name, unit="", description=""):
        return _ExplodingInstrument()


class _CountingMeter:
    def __init__(self) -> None:
        self.created: list[str] = []

    def create_counter(self, name, unit="", description=""):
        self.created.append(name)
        return _ExplodingInstrument()

    def create_histogram(self, name, unit="", description=""):
        self.created.append(name)
        return _ExplodingInstrument()


def test_registry_exposes_all_eight_instruments() -> None:
    keys = [spec.key for spec in INSTRUMENT_SPECS]

    assert keys == [
        "orderPlacedCounter",
        "orderItemsCounter",
        "orderValueCounter",
        "orderProcessingTimeHistogram",
        "orderProcessingErrorsCounter",
        "orderPaidCounter",
        "paymentProcessingTimeHistogram",
        "paymentProcessingErrorsCounter",
    ]


def test_instruments_are_created_once_and_shared() -> None:
    meter = _CountingMeter()
    registry = OrderingMetrics(meter)

    assert len(meter.created) == len(INSTRUMENT_SPECS)
    assert registry.counter(ORDER_PLACED_COUNTER) is registry.counter(ORDER_PLACED_COUNTER)
    assert registry.histogram(ORDER_PROCESSING_TIME_HISTOGRAM) is registry.histogram(ORDER_PROCESSING_TIME_HISTOGRAM)


def test_unknown_key_is_a_programming_error() -> None:
    registry = OrderingMetrics.noop()

    with pytest.raises(KeyError):
        registry.add("ordersShippedCounter", 1)


def test_instrument_failures_are_swallowed() -> None:
    registry = OrderingMetrics(_ExplodingMeter())

    registry.add(ORDER_PLACED_COUNTER, 1, {"userId": "user****"})
    registry.record(ORDER_PROCESSING_TIME_HISTOGRAM, 0.5)


def test_measurements_reach_the_sdk(ordering_metrics, counter_total, metric_points) -> None:
    ordering_metrics.add(ORDER_PLACED_COUNTER, 1, {"userId": "user****"})
    ordering_metrics.add(ORDER_PLACED_COUNTER, 2, {"userId": "abcd****"})
    ordering_metrics.record(ORDER_PROCESSING_TIME_HISTOGRAM, 0.25)

    assert counter_total("orderPlacedCounter") == 3
    histogram_points = metric_points("orderProcessingTimeHistogram")
    assert len(histogram_points) == 1
    assert histogram_points[0].count == 1
    assert histogram_points[0].sum == pytest.approx(0.25)


def test_noop_registry_accepts_measurements() -> None:
    registry = OrderingMetrics.noop()

    registry.add(ORDER_PLACED_COUNTER, 1)
    registry.record(ORDER_PROCESSING_TIME_HISTOGRAM, 1.0)
