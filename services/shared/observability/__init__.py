"""
Shared observability helpers (telemetry, privacy utilities, etc.).

Services import from this package to enable consistent instrumentation and
keep identity data masked before it reaches spans, metrics or logs.
"""

from .privacy import (
    MASK_MARKER,
    IdentityKind,
    mask_identity,
    mask_user_id,
    mask_user_name,
)
from .telemetry import (
    CORRELATION_ID_HEADER,
    RequestContextToken,
    bind_request_context,
    ensure_request_id,
    reset_request_context,
    setup_telemetry,
)

__all__ = [
    "MASK_MARKER",
    "IdentityKind",
    "mask_identity",
    "mask_user_id",
    "mask_user_name",
    "CORRELATION_ID_HEADER",
    "RequestContextToken",
    "bind_request_context",
    "ensure_request_id",
    "reset_request_context",
    "setup_telemetry",
]
