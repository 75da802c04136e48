from enum import Enum
from typing import Optional

MASK_MARKER = "****"
USER_ID_VISIBLE_PREFIX = 4
USER_NAME_VISIBLE_PREFIX = 2


class IdentityKind(str, Enum):
    """The identity fields that may be attached to telemetry in masked form."""

    USER_ID = "user_id"
    USER_NAME = "user_name"


def mask_user_id(user_id: Optional[str]) -> Optional[str]:
    """Keep the first four characters of a user id and replace the rest with the mask marker."""

    return _mask(user_id, USER_ID_VISIBLE_PREFIX)


def mask_user_name(user_name: Optional[str]) -> Optional[str]:
    """Keep the first two characters of a user name and replace the rest with the mask marker."""

    return _mask(user_name, USER_NAME_VISIBLE_PREFIX)


def mask_identity(kind: IdentityKind, raw_value: Optional[str]) -> Optional[str]:
    """
    Mask an identity value according to its kind.

    The result depends only on ``(kind, raw_value)``, so the same input always
    yields the same masked string. Absent values (``None`` or ``""``) come back
    unchanged rather than being replaced with a fabricated placeholder.
    """

    if kind is IdentityKind.USER_ID:
        return mask_user_id(raw_value)
    if kind is IdentityKind.USER_NAME:
        return mask_user_name(raw_value)
    raise ValueError(f"Unsupported identity kind: {kind}")


def _mask(value: Optional[str], visible_prefix: int) -> Optional[str]:
    if not value:
        return value

    # Values no longer than the prefix are kept whole; the marker still signals masking.
    if len(value) > visible_prefix:
        return value[:visible_prefix] + MASK_MARKER
    return value + MASK_MARKER
