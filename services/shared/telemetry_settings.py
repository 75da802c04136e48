from __future__ import annotations

"""
Shared helpers for configuring OpenTelemetry export across services.

Every service reads the same OTEL_* environment variables to decide whether
telemetry is installed, where spans and metrics are shipped, and how context
is propagated. Parsing and validating them in one place keeps the collector
contract identical between services and surfaces bad values at startup
instead of on the first exported batch.
"""

import os
from dataclasses import dataclass
from typing import Optional

SUPPORTED_PROTOCOLS = frozenset({"grpc", "http"})
SUPPORTED_SAMPLERS = frozenset({"always_on"})
SUPPORTED_PROPAGATORS = frozenset({"tracecontext", "baggage"})

DEFAULT_GRPC_ENDPOINT = "http://localhost:4317"
DEFAULT_HTTP_ENDPOINT = "http://localhost:4318"
DEFAULT_PROPAGATORS = ("tracecontext", "baggage")
DEFAULT_METRIC_EXPORT_INTERVAL_MS = 60000


class TelemetrySettingsError(RuntimeError):
    """Raised when telemetry configuration cannot be constructed."""


@dataclass(frozen=True, slots=True)
class TelemetrySettings:
    enabled: bool
    service_name: str
    exporter_endpoint: str
    exporter_protocol: str
    sampler: str
    propagators: tuple[str, ...]
    console_export: bool
    metric_export_interval_ms: int

    @property
    def traces_endpoint(self) -> str:
        return self._signal_endpoint("traces")

    @property
    def metrics_endpoint(self) -> str:
        return self._signal_endpoint("metrics")

    def _signal_endpoint(self, signal: str) -> str:
        # The HTTP exporters expect the full per-signal path; gRPC takes the bare endpoint.
        if self.exporter_protocol == "http":
            return f"{self.exporter_endpoint.rstrip('/')}/v1/{signal}"
        return self.exporter_endpoint


def load_telemetry_settings(service_name: str) -> TelemetrySettings:
    """
    Construct TelemetrySettings from the process environment.

    Args:
        service_name: Fallback for OTEL_SERVICE_NAME when the env var is unset/empty.
    """

    protocol = _normalize_protocol(os.getenv("OTEL_EXPORTER_OTLP_PROTOCOL"))
    default_endpoint = DEFAULT_HTTP_ENDPOINT if protocol == "http" else DEFAULT_GRPC_ENDPOINT
    endpoint = (os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT") or "").strip() or default_endpoint

    return TelemetrySettings(
        enabled=_parse_bool(os.getenv("ENABLE_TELEMETRY"), False),
        service_name=(os.getenv("OTEL_SERVICE_NAME") or "").strip() or service_name,
        exporter_endpoint=endpoint,
        exporter_protocol=protocol,
        sampler=_normalize_sampler(os.getenv("OTEL_TRACES_SAMPLER")),
        propagators=_parse_propagators(os.getenv("OTEL_PROPAGATORS")),
        console_export=_parse_bool(os.getenv("OTEL_CONSOLE_EXPORT"), False),
        metric_export_interval_ms=_parse_int(
            os.getenv("OTEL_METRIC_EXPORT_INTERVAL"),
            DEFAULT_METRIC_EXPORT_INTERVAL_MS,
            "OTEL_METRIC_EXPORT_INTERVAL",
        ),
    )


def _normalize_protocol(raw_value: Optional[str]) -> str:
    candidate = (raw_value or "").strip().lower()
    if not candidate:
        return "grpc"
    if candidate == "http/protobuf":
        candidate = "http"

    if candidate not in SUPPORTED_PROTOCOLS:
        raise TelemetrySettingsError(f"Unsupported OTLP protocol '{candidate}'")
    return candidate


def _normalize_sampler(raw_value: Optional[str]) -> str:
    candidate = (raw_value or "").strip().lower() or "always_on"
    if candidate not in SUPPORTED_SAMPLERS:
        raise TelemetrySettingsError(f"Unsupported trace sampler '{candidate}'")
    return candidate


def _parse_propagators(raw_value: Optional[str]) -> tuple[str, ...]:
    if raw_value is None or raw_value.strip() == "":
        return DEFAULT_PROPAGATORS

    names = tuple(name.strip().lower() for name in raw_value.split(",") if name.strip())
    unknown = [name for name in names if name not in SUPPORTED_PROPAGATORS]
    if unknown:
        raise TelemetrySettingsError(f"Unsupported propagators: {', '.join(unknown)}")
    return names


def _parse_bool(raw_value: Optional[str], default: bool) -> bool:
    if raw_value is None or raw_value.strip() == "":
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def _parse_int(raw_value: Optional[str], default: int, env_key: str) -> int:
    if raw_value is None or raw_value.strip() == "":
        return default

    try:
        return int(raw_value)
    except ValueError as exc:
        raise TelemetrySettingsError(f"{env_key} must be an integer (received '{raw_value}')") from exc
