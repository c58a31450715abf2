"""
auth/session.py -- Two-stage session verification pipeline.

Every protected request runs this exactly once, in order:

  Stage R (renewal):  the renewal token must be present and valid. If not,
                      the request is rejected and Stage A never runs.
  Stage A (access):   the access token must be present, valid, and name the
                      same identity as the renewal token.

Stage R gates Stage A: once a renewal token expires or is cleared, a
still-unexpired access token is useless on its own.

Outcomes are terminal -- Authenticated(identity_id) or Rejected(reason).
There is no server-side session table and no retry state. The reason exists
for logs and tests only; the HTTP layer returns one 401 body for all of them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Union

from auth.carrier import CarriedTokens
from auth.tokens import TokenIssuer, TokenKind

logger = logging.getLogger("passgate.auth.session")

RENEWAL_INVALID = "renewal_invalid"
ACCESS_INVALID = "access_invalid"
IDENTITY_MISMATCH = "identity_mismatch"


@dataclass(frozen=True)
class Authenticated:
    identity_id: int


@dataclass(frozen=True)
class Rejected:
    reason: str


SessionOutcome = Union[Authenticated, Rejected]


class SessionVerifier:
    """Run Stage R then Stage A against a pair of carried tokens."""

    def __init__(self, issuer: TokenIssuer) -> None:
        self.issuer = issuer

    def check_renewal(self, tokens: CarriedTokens) -> SessionOutcome:
        """Stage R. The identity found here is only used to cross-check Stage A."""
        if not tokens.renewal_token:
            return Rejected(RENEWAL_INVALID)
        identity_id = self.issuer.verify(tokens.renewal_token, TokenKind.renewal)
        if identity_id is None:
            return Rejected(RENEWAL_INVALID)
        return Authenticated(identity_id)

    def check_access(self, tokens: CarriedTokens, renewal_identity: int) -> SessionOutcome:
        """Stage A. Only reachable after Stage R succeeded."""
        if not tokens.access_token:
            return Rejected(ACCESS_INVALID)
        identity_id = self.issuer.verify(tokens.access_token, TokenKind.access)
        if identity_id is None:
            return Rejected(ACCESS_INVALID)
        if identity_id != renewal_identity:
            return Rejected(IDENTITY_MISMATCH)
        return Authenticated(identity_id)

    def verify(self, tokens: CarriedTokens) -> SessionOutcome:
        stage_r = self.check_renewal(tokens)
        if isinstance(stage_r, Rejected):
            logger.debug("Session rejected at renewal stage: %s", stage_r.reason)
            return stage_r
        stage_a = self.check_access(tokens, stage_r.identity_id)
        if isinstance(stage_a, Rejected):
            logger.debug("Session rejected at access stage: %s", stage_a.reason)
        return stage_a
