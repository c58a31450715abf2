"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and flows do
the work; these only own the domain shape.

Layer rule: no imports from api/, messaging/, media/, or core/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """A registered identity.

    password_hash is never serialized to clients -- api/models.UserResponse
    omits it. avatar_id is the media store's object id, kept so the old
    object can be destroyed when the avatar is replaced.
    """

    email: str
    name: str
    password_hash: str
    id: int | None = None
    phone: str | None = None
    avatar_url: str | None = None
    avatar_id: str | None = None
    created_at: str | None = None


@dataclass
class PendingOtp:
    """A verification code waiting to be confirmed.

    receiver is the natural key (email address or phone number). method
    records which channel the code went out on: "email" or "number".
    """

    receiver: str
    method: str
    code: int
    id: int | None = None
    updated_at: str | None = None
    expires_at: float | None = None  # epoch seconds


@dataclass
class PendingReset:
    """A single-use password-reset capability bound to one user.

    user_id is the natural key (one live reset per user). token is the
    lookup key used by the reset link.
    """

    user_id: int
    token: str
    id: int | None = None
    created_at: str | None = None
    expires_at: float | None = None  # epoch seconds


@dataclass(frozen=True)
class SessionTokens:
    """The pair handed to a client after login. Not persisted."""

    access_token: str
    renewal_token: str
