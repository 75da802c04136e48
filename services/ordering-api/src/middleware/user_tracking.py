"""
Tag the active request span with masked identity attributes.

Runs after authentication and before routing, so everything exported from the
span afterwards carries `user_id` / `user_name`. Only masked values are ever
written. The stage never rejects or delays a request: without a recording span
or an authenticated principal it simply forwards the request.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from opentelemetry import trace
from opentelemetry.trace import Span
from starlette.authentication import BaseUser
from starlette.types import ASGIApp, Receive, Scope, Send

from shared.observability.privacy import IdentityKind, mask_identity

logger = logging.getLogger(__name__)

SpanAccessor = Callable[[], Optional[Span]]


def current_recording_span() -> Optional[Span]:
    """Return the span of the current execution context, or None when nothing is being recorded."""
    span = trace.get_current_span()
    if not span.is_recording():
        return None
    return span


@dataclass(frozen=True, slots=True)
class RequestTelemetryContext:
    user: Optional[BaseUser]
    span: Optional[Span]

    @classmethod
    def from_scope(cls, scope: Scope, span_accessor: SpanAccessor) -> "RequestTelemetryContext":
        # "user" is only present when AuthenticationMiddleware ran first.
        return cls(user=scope.get("user"), span=span_accessor())


def tag_user_identity(context: RequestTelemetryContext) -> dict[str, str]:
    """Attach masked identity attributes to the context's span and return what was written."""
    span, user = context.span, context.user
    if span is None or user is None or not user.is_authenticated:
        return {}

    written: dict[str, str] = {}
    candidates = (
        (IdentityKind.USER_ID, _principal_attr(user, "identity")),
        (IdentityKind.USER_NAME, _principal_attr(user, "display_name")),
    )
    for kind, raw_value in candidates:
        if not raw_value:
            continue
        masked = mask_identity(kind, raw_value)
        span.set_attribute(kind.value, masked)
        written[kind.value] = masked
    return written


def _principal_attr(user: BaseUser, name: str) -> Optional[str]:
    try:
        value = getattr(user, name)
    except NotImplementedError:
        # starlette's BaseUser leaves `identity` abstract.
        return None
    return value if isinstance(value, str) else None


class UserTrackingMiddleware:
    def __init__(self, app: ASGIApp, span_accessor: SpanAccessor = current_recording_span) -> None:
        self.app = app
        self._span_accessor = span_accessor

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http":
            try:
                tag_user_identity(RequestTelemetryContext.from_scope(scope, self._span_accessor))
            except Exception as exc:  # noqa: BLE001
                logger.debug({"event": "user_tracking_skipped", "error": repr(exc)})

        await self.app(scope, receive, send)
