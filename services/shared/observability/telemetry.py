"""
Telemetry bootstrap utilities shared across services.

`setup_telemetry` wires OpenTelemetry tracing, metrics, FastAPI instrumentation,
and JSON logging (with trace/request IDs) using environment-driven configuration
so the stack can toggle observability without bespoke service wiring.
"""

from __future__ import annotations

import logging
import os
from contextvars import ContextVar, Token
from uuid import uuid4

from fastapi import FastAPI, Request
from opentelemetry import metrics, trace
from opentelemetry.baggage.propagation import W3CBaggagePropagator
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter as GrpcMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter as GrpcSpanExporter
from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter as HttpMetricExporter
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter as HttpSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.logging import LoggingInstrumentor
from opentelemetry.propagate import set_global_textmap
from opentelemetry.propagators.composite import CompositePropagator
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.sdk.trace.sampling import ALWAYS_ON
from opentelemetry.trace import Span, SpanContext
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator
from pythonjsonlogger import jsonlogger

from shared.telemetry_settings import TelemetrySettings, load_telemetry_settings

CORRELATION_ID_HEADER = "x-request-id"
RequestContextToken = Token

_logging_configured = False
_request_id_ctx_var: ContextVar[str | None] = ContextVar("request_id", default=None)

_PROPAGATOR_FACTORIES = {
    "tracecontext": TraceContextTextMapPropagator,
    "baggage": W3CBaggagePropagator,
}


def setup_telemetry(app: FastAPI, service_name: str) -> TelemetrySettings:
    """
    Configure tracing, metrics and logging for the provided FastAPI app.

    Call this after the app's own middleware is registered so the OpenTelemetry
    server span wraps the whole pipeline.

    Args:
        app: FastAPI app instance that should emit spans/metrics/logs.
        service_name: Logical service identifier used for OTLP resources.
    """

    settings = load_telemetry_settings(service_name)

    _configure_logging(settings.service_name, settings.enabled)

    if settings.enabled:
        resource = Resource.create({SERVICE_NAME: settings.service_name})
        _configure_propagation(settings)
        _configure_tracing(settings, resource)
        _configure_metrics(settings, resource)
        FastAPIInstrumentor.instrument_app(app)
        LoggingInstrumentor().instrument(set_logging_format=False)

    return settings


def ensure_request_id(request: Request | None, header_name: str = CORRELATION_ID_HEADER) -> str:
    """
    Retrieve the inbound request ID (x-request-id) or generate a new UUID4 value.
    """

    if request is not None:
        existing = request.headers.get(header_name) or getattr(request.state, "request_id", None)
        if existing:
            request.state.request_id = existing
            return existing

    request_id = os.getenv("REQUEST_ID_PREFIX", "") + str(uuid4())
    if request is not None:
        request.state.request_id = request_id
    return request_id


def bind_request_context(request_id: str | None) -> RequestContextToken:
    """
    Store the inbound request ID in a ContextVar so log records can include it.
    """

    return _request_id_ctx_var.set(request_id)


def reset_request_context(token: RequestContextToken | None) -> None:
    """Reset the ContextVar token emitted by `bind_request_context`."""

    if token is not None:
        _request_id_ctx_var.reset(token)


def _configure_logging(service_name: str, enable_traces: bool) -> None:
    global _logging_configured
    if _logging_configured:
        return

    formatter = jsonlogger.JsonFormatter(
        "%(asctime)s %(levelname)s %(name)s %(message)s %(trace_id)s %(span_id)s %(service_name)s %(request_id)s"
    )
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    handler.addFilter(_TelemetryLogFilter(service_name, enable_traces))

    logging.basicConfig(level=logging.INFO, handlers=[handler], force=True)
    _logging_configured = True


def _configure_propagation(settings: TelemetrySettings) -> None:
    propagators = [_PROPAGATOR_FACTORIES[name]() for name in settings.propagators]
    set_global_textmap(CompositePropagator(propagators))


def _configure_tracing(settings: TelemetrySettings, resource: Resource) -> None:
    if isinstance(trace.get_tracer_provider(), TracerProvider):
        # Already configured globally; skip duplicate setup.
        return

    # Only always_on passes settings validation.
    provider = TracerProvider(resource=resource, sampler=ALWAYS_ON)

    if settings.exporter_protocol == "http":
        exporter = HttpSpanExporter(endpoint=settings.traces_endpoint)
    else:
        exporter = GrpcSpanExporter(endpoint=settings.traces_endpoint)
    provider.add_span_processor(BatchSpanProcessor(exporter))
    if settings.console_export:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(provider)


def _configure_metrics(settings: TelemetrySettings, resource: Resource) -> None:
    if isinstance(metrics.get_meter_provider(), MeterProvider):
        return

    if settings.exporter_protocol == "http":
        exporter = HttpMetricExporter(endpoint=settings.metrics_endpoint)
    else:
        exporter = GrpcMetricExporter(endpoint=settings.metrics_endpoint)
    reader = PeriodicExportingMetricReader(exporter, export_interval_millis=settings.metric_export_interval_ms)

    metrics.set_meter_provider(MeterProvider(resource=resource, metric_readers=[reader]))


class _TelemetryLogFilter(logging.Filter):
    def __init__(self, service_name: str, traces_enabled: bool) -> None:
        super().__init__()
        self._service_name = service_name
        self._traces_enabled = traces_enabled

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: D401
        record.service_name = self._service_name
        record.request_id = _request_id_ctx_var.get()
        trace_id: str | None = None
        span_id: str | None = None

        if self._traces_enabled:
            span = trace.get_current_span()
            span_context = span.get_span_context() if isinstance(span, Span) else None
            if span_context and isinstance(span_context, SpanContext) and span_context.is_valid:
                trace_id = format(span_context.trace_id, "032x")
                span_id = format(span_context.span_id, "016x")

        record.trace_id = trace_id
        record.span_id = span_id
        return True
