"""
auth/tokens.py -- Signed, time-bounded access and renewal tokens.

Security design decisions:
  JWT: python-jose with HS256. Access and renewal tokens are signed with two
       different secrets and carry a "typ" claim, so neither kind can stand
       in for the other even if a client swaps the cookies.

  Verification returns None on any failure -- bad signature, expired, wrong
       type, malformed subject. Callers only ever see "valid identity id" or
       "invalid"; the reason is not surfaced.

  Config: the issuer receives the Settings object at construction. It never
       reads the environment itself.

Layer rule: no imports from api/, messaging/, or media/. Import from core/
is allowed -- core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from enum import Enum

from jose import JWTError, jwt

from core.config import Settings

logger = logging.getLogger("passgate.auth.tokens")

_ALGORITHM = "HS256"


class TokenKind(str, Enum):
    access = "access"
    renewal = "renewal"


class TokenIssuer:
    """Issue and verify the two session token kinds.

    Usage:
        issuer = TokenIssuer(get_settings())
        token = issuer.issue_access_token(42)
        issuer.verify(token, TokenKind.access)   # -> 42
        issuer.verify(token, TokenKind.renewal)  # -> None
    """

    def __init__(self, settings: Settings) -> None:
        self._secrets = {
            TokenKind.access: settings.access_token_secret,
            TokenKind.renewal: settings.renewal_token_secret,
        }
        self.lifetimes = {
            TokenKind.access: settings.access_token_expire_seconds,
            TokenKind.renewal: settings.renewal_token_expire_seconds,
        }

    def _issue(self, identity_id: int, kind: TokenKind, expire_seconds: int) -> str:
        now = datetime.now(timezone.utc)
        duration = expire_seconds if expire_seconds != 0 else self.lifetimes[kind]
        payload = {
            # jose requires sub to be a string when present.
            "sub": str(identity_id),
            "typ": kind.value,
            "iat": now,
            "exp": now + timedelta(seconds=duration),
        }
        return jwt.encode(payload, self._secrets[kind], algorithm=_ALGORITHM)

    def issue_access_token(self, identity_id: int, expire_seconds: int = 0) -> str:
        """Encode a short-lived access token.

        Args:
            identity_id:    User ID stored in the DB.
            expire_seconds: Override the configured lifetime. 0 (default) uses
                            ACCESS_TOKEN_EXPIRE_SECONDS.
        """
        return self._issue(identity_id, TokenKind.access, expire_seconds)

    def issue_renewal_token(self, identity_id: int, expire_seconds: int = 0) -> str:
        """Encode a long-lived renewal token (RENEWAL_TOKEN_EXPIRE_SECONDS by default)."""
        return self._issue(identity_id, TokenKind.renewal, expire_seconds)

    def verify(self, token: str, kind: TokenKind) -> int | None:
        """Return the identity id carried by a valid token of the given kind, else None."""
        try:
            payload = jwt.decode(token, self._secrets[kind], algorithms=[_ALGORITHM])
        except JWTError:
            return None
        if payload.get("typ") != kind.value:
            return None
        try:
            return int(payload["sub"])
        except (KeyError, TypeError, ValueError):
            return None
