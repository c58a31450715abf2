"""
auth/carrier.py -- Cookie transport for the session token pair.

Cookie attributes:
  httponly=True: JS cannot read either token (XSS mitigation).
  samesite: COOKIE_SAMESITE -- "lax" for same-site deployments, "none" when
      the client app lives on another site (requires secure).
  secure: only sent over HTTPS when SECURE_COOKIES=true (set in production).
  max_age/expires: match the token lifetimes so cookie and JWT expire together.

Logout expires both cookies immediately; the browser drops them on receipt.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from core.config import Settings

ACCESS_COOKIE = "access_token"
RENEWAL_COOKIE = "renewal_token"


@dataclass(frozen=True)
class CarriedTokens:
    """Tokens as they arrived on a request. Either may be missing."""

    renewal_token: str | None
    access_token: str | None


class CookieCarrier:
    """Read and write the token pair on requests and responses."""

    def __init__(self, settings: Settings) -> None:
        self.secure = settings.secure_cookies
        self.samesite = settings.cookie_samesite
        self.access_max_age = settings.access_token_expire_seconds
        self.renewal_max_age = settings.renewal_token_expire_seconds

    def read(self, request) -> CarriedTokens:
        """Pull both tokens off the request cookies. Empty values count as absent."""
        return CarriedTokens(
            renewal_token=request.cookies.get(RENEWAL_COOKIE) or None,
            access_token=request.cookies.get(ACCESS_COOKIE) or None,
        )

    def _set(self, response, name: str, value: str, max_age: int) -> None:
        response.set_cookie(
            name,
            value=value,
            httponly=True,
            samesite=self.samesite,
            secure=self.secure,
            max_age=max_age,
            expires=datetime.now(timezone.utc) + timedelta(seconds=max_age),
        )

    def attach_access(self, response, access_token: str) -> None:
        self._set(response, ACCESS_COOKIE, access_token, self.access_max_age)

    def attach(self, response, access_token: str, renewal_token: str) -> None:
        """Write both tokens with their own lifetimes."""
        self.attach_access(response, access_token)
        self._set(response, RENEWAL_COOKIE, renewal_token, self.renewal_max_age)

    def clear(self, response) -> None:
        """Expire both cookies now (max-age=0, expires in the past)."""
        for name in (ACCESS_COOKIE, RENEWAL_COOKIE):
            response.delete_cookie(name, httponly=True, samesite=self.samesite, secure=self.secure)
