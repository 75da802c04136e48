"""
Shared utilities for the ordering services.

This package contains code shared across multiple services:
- telemetry_settings: OTEL_* environment configuration
- observability: Telemetry bootstrap, logging, and identity masking
"""

from .telemetry_settings import (
    SUPPORTED_PROPAGATORS,
    SUPPORTED_PROTOCOLS,
    SUPPORTED_SAMPLERS,
    TelemetrySettings,
    TelemetrySettingsError,
    load_telemetry_settings,
)

__all__ = [
    "SUPPORTED_PROPAGATORS",
    "SUPPORTED_PROTOCOLS",
    "SUPPORTED_SAMPLERS",
    "TelemetrySettings",
    "TelemetrySettingsError",
    "load_telemetry_settings",
]
