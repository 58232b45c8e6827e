"""Shared enum values used by the database models and schemas."""

from __future__ import annotations

import enum


class TokenStatus(str, enum.Enum):
    active = "active"
    used = "used"
    revoked = "revoked"


class RejectReason(str, enum.Enum):
    token_not_found = "token_not_found"
    token_expired = "token_expired"
    token_revoked = "token_revoked"
    token_reuse_blocked = "token_reuse_blocked"


# Status changes the store accepts; anything else would move a token backward.
ALLOWED_TRANSITIONS: frozenset[tuple[TokenStatus, TokenStatus]] = frozenset(
    {
        (TokenStatus.active, TokenStatus.used),
        (TokenStatus.active, TokenStatus.revoked),
        (TokenStatus.used, TokenStatus.revoked),
    }
)
