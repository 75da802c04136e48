from __future__ import annotations

from typing import Optional

from starlette.authentication import AuthCredentials, AuthenticationBackend, BaseUser
from starlette.requests import HTTPConnection

USER_ID_HEADER = "x-user-id"
USER_NAME_HEADER = "x-user-name"


class OrderingUser(BaseUser):
    """Principal resolved from identity headers set by the upstream identity proxy."""

    def __init__(self, subject: str, name: Optional[str] = None) -> None:
        self._subject = subject
        self._name = name or ""

    @property
    def is_authenticated(self) -> bool:
        return True

    @property
    def display_name(self) -> str:
        return self._name

    @property
    def identity(self) -> str:
        return self._subject


class TrustedHeaderAuthBackend(AuthenticationBackend):
    """
    Authenticate callers from headers injected by a trusted gateway.

    Token validation happens before traffic reaches this service; requests
    without a subject header stay anonymous.
    """

    async def authenticate(self, conn: HTTPConnection) -> tuple[AuthCredentials, BaseUser] | None:
        subject = (conn.headers.get(USER_ID_HEADER) or "").strip()
        if not subject:
            return None

        name = (conn.headers.get(USER_NAME_HEADER) or "").strip() or None
        return AuthCredentials(["authenticated"]), OrderingUser(subject, name)
