"""Request pipeline stages for the ordering API."""

from middleware.authentication import OrderingUser, TrustedHeaderAuthBackend
from middleware.user_tracking import (
    RequestTelemetryContext,
    UserTrackingMiddleware,
    current_recording_span,
    tag_user_identity,
)

__all__ = [
    "OrderingUser",
    "RequestTelemetryContext",
    "TrustedHeaderAuthBackend",
    "UserTrackingMiddleware",
    "current_recording_span",
    "tag_user_identity",
]
