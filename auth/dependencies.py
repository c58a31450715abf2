"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

require_session() is the gate in front of every protected route. It reads the
token pair through the cookie carrier, runs the two-stage SessionVerifier and
either binds the identity id onto request.state or raises HTTP 401.

require_renewal() runs Stage R alone. Only POST /auth/refresh uses it -- an
expired access token is exactly the case refresh exists for.

Every rejection produces the same 401 body. Whether a token was expired,
forged, missing or mismatched is logged at debug level and nowhere else.

Layer rule: auth/dependencies.py may import from fastapi (for
HTTPException/Request) because this module is part of the FastAPI dependency
injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.carrier import CookieCarrier
from auth.session import Authenticated, SessionVerifier


def _unauthenticated() -> HTTPException:
    return HTTPException(
        status_code=401,
        detail={"code": "unauthenticated", "message": "Authentication required."},
    )


def require_session(request: Request) -> int:
    """Require a valid renewal token AND a valid access token for the same identity.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(identity_id: int = Depends(require_session)): ...
    """
    carrier: CookieCarrier = request.app.state.carrier
    verifier: SessionVerifier = request.app.state.session_verifier
    outcome = verifier.verify(carrier.read(request))
    if not isinstance(outcome, Authenticated):
        raise _unauthenticated()
    request.state.identity_id = outcome.identity_id
    return outcome.identity_id


def require_renewal(request: Request) -> int:
    """Require only a valid renewal token. Returns its identity id."""
    carrier: CookieCarrier = request.app.state.carrier
    verifier: SessionVerifier = request.app.state.session_verifier
    outcome = verifier.check_renewal(carrier.read(request))
    if not isinstance(outcome, Authenticated):
        raise _unauthenticated()
    return outcome.identity_id
