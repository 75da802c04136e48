from typing import Optional

from fastapi import FastAPI
from fastapi.testclient import TestClient
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import Span, SpanKind
from starlette.middleware.authentication import AuthenticationMiddleware

from middleware.authentication import USER_ID_HEADER, USER_NAME_HEADER, OrderingUser, TrustedHeaderAuthBackend
from middleware.user_tracking import (
    RequestTelemetryContext,
    UserTrackingMiddleware,
    current_recording_span,
    tag_user_identity,
)


def _start_span(name: str = "GET /ping") -> Span:
    return TracerProvider().get_tracer("user-tracking-tests").start_span(name)


def _build_app(span: Optional[Span]) -> FastAPI:
    app = FastAPI()
    app.add_middleware(UserTrackingMiddleware, span_accessor=lambda: span)
    app.add_middleware(AuthenticationMiddleware, backend=TrustedHeaderAuthBackend())

    @app.get("/ping")
    def ping() -> dict:
        return {"status": "ok"}

    return app


def test_authenticated_request_tags_span_with_masked_identity() -> None:
    span = _start_span()
    client = TestClient(_build_app(span))

    response = client.get("/ping", headers={USER_ID_HEADER: "user1234567", USER_NAME_HEADER: "Alice"})

    assert response.status_code == 200
    attrs = dict(span.attributes or {})
    assert attrs["user_id"] == "user****"
    assert attrs["user_name"] == "Al****"
    assert "user1234567" not in attrs.values()


def test_missing_display_name_tags_only_user_id() -> None:
    span = _start_span()
    client = TestClient(_build_app(span))

    response = client.get("/ping", headers={USER_ID_HEADER: "user1234567"})

    assert response.status_code == 200
    assert dict(span.attributes or {}) == {"user_id": "user****"}


def test_anonymous_request_leaves_span_untouched() -> None:
    span = _start_span()
    client = TestClient(_build_app(span))

    response = client.get("/ping")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert dict(span.attributes or {}) == {}


def test_request_without_active_span_is_forwarded() -> None:
    client = TestClient(_build_app(None))

    response = client.get("/ping", headers={USER_ID_HEADER: "user1234567", USER_NAME_HEADER: "Alice"})

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_tag_user_identity_without_span_writes_nothing() -> None:
    context = RequestTelemetryContext(user=OrderingUser("user1234567", "Alice"), span=None)

    assert tag_user_identity(context) == {}


def test_tag_user_identity_returns_written_attributes() -> None:
    span = _start_span()
    context = RequestTelemetryContext(user=OrderingUser("ab", "Z"), span=span)

    written = tag_user_identity(context)

    assert written == {"user_id": "ab****", "user_name": "Z****"}
    assert dict(span.attributes or {}) == written


def test_current_recording_span_reads_active_context() -> None:
    tracer = TracerProvider().get_tracer("user-tracking-tests")

    assert current_recording_span() is None
    with tracer.start_as_current_span("request") as span:
        assert current_recording_span() is span


def test_instrumented_server_span_carries_masked_identity() -> None:
    exporter = InMemorySpanExporter()
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(exporter))

    app = FastAPI()
    app.add_middleware(UserTrackingMiddleware)
    app.add_middleware(AuthenticationMiddleware, backend=TrustedHeaderAuthBackend())

    @app.get("/ping")
    def ping() -> dict:
        return {"status": "ok"}

    FastAPIInstrumentor.instrument_app(app, tracer_provider=provider)
    try:
        response = TestClient(app).get("/ping", headers={USER_ID_HEADER: "user1234567", USER_NAME_HEADER: "Alice"})
    finally:
        FastAPIInstrumentor.uninstrument_app(app)

    assert response.status_code == 200
    server_spans = [span for span in exporter.get_finished_spans() if span.kind is SpanKind.SERVER]
    assert len(server_spans) == 1
    attrs = dict(server_spans[0].attributes or {})
    assert attrs["user_id"] == "user****"
    assert attrs["user_name"] == "Al****"
    assert "user1234567" not in attrs.values()
