"""Unit tests for auth/session.py -- the two-stage session pipeline.

Each stage is tested on its own, then the ordering property: Stage R runs
first and a bad renewal token rejects the request even when the access token
is perfectly valid.
"""

import pytest

from auth.carrier import CarriedTokens
from auth.session import (
    ACCESS_INVALID,
    IDENTITY_MISMATCH,
    RENEWAL_INVALID,
    Authenticated,
    Rejected,
    SessionVerifier,
)
from auth.tokens import TokenIssuer


@pytest.fixture
def issuer(settings):
    return TokenIssuer(settings)


@pytest.fixture
def verifier(issuer):
    return SessionVerifier(issuer)


class TestStageRenewal:
    def test_missing_renewal_rejected(self, verifier):
        assert verifier.check_renewal(CarriedTokens(None, None)) == Rejected(RENEWAL_INVALID)

    def test_invalid_renewal_rejected(self, verifier):
        assert verifier.check_renewal(CarriedTokens("garbage", None)) == Rejected(RENEWAL_INVALID)

    def test_access_token_in_renewal_slot_rejected(self, verifier, issuer):
        tokens = CarriedTokens(issuer.issue_access_token(1), None)
        assert verifier.check_renewal(tokens) == Rejected(RENEWAL_INVALID)

    def test_valid_renewal_passes(self, verifier, issuer):
        tokens = CarriedTokens(issuer.issue_renewal_token(5), None)
        assert verifier.check_renewal(tokens) == Authenticated(5)


class TestStageAccess:
    def test_missing_access_rejected(self, verifier):
        assert verifier.check_access(CarriedTokens("r", None), renewal_identity=1) == Rejected(ACCESS_INVALID)

    def test_expired_access_rejected(self, verifier, issuer):
        tokens = CarriedTokens("r", issuer.issue_access_token(1, expire_seconds=-5))
        assert verifier.check_access(tokens, renewal_identity=1) == Rejected(ACCESS_INVALID)

    def test_identity_must_match_renewal(self, verifier, issuer):
        tokens = CarriedTokens("r", issuer.issue_access_token(2))
        assert verifier.check_access(tokens, renewal_identity=1) == Rejected(IDENTITY_MISMATCH)

    def test_valid_access_passes(self, verifier, issuer):
        tokens = CarriedTokens("r", issuer.issue_access_token(1))
        assert verifier.check_access(tokens, renewal_identity=1) == Authenticated(1)


class TestPipeline:
    def test_both_valid(self, verifier, issuer):
        tokens = CarriedTokens(issuer.issue_renewal_token(9), issuer.issue_access_token(9))
        assert verifier.verify(tokens) == Authenticated(9)

    def test_expired_renewal_beats_valid_access(self, verifier, issuer):
        tokens = CarriedTokens(
            renewal_token=issuer.issue_renewal_token(9, expire_seconds=-1),
            access_token=issuer.issue_access_token(9),
        )
        assert verifier.verify(tokens) == Rejected(RENEWAL_INVALID)

    def test_access_stage_not_run_when_renewal_fails(self, verifier, issuer, monkeypatch):
        calls = []
        monkeypatch.setattr(verifier, "check_access", lambda *a, **kw: calls.append(a))
        verifier.verify(CarriedTokens(None, issuer.issue_access_token(9)))
        assert calls == []

    def test_valid_renewal_but_no_access(self, verifier, issuer):
        tokens = CarriedTokens(issuer.issue_renewal_token(9), None)
        assert verifier.verify(tokens) == Rejected(ACCESS_INVALID)

    def test_tokens_for_different_identities(self, verifier, issuer):
        tokens = CarriedTokens(issuer.issue_renewal_token(1), issuer.issue_access_token(2))
        assert verifier.verify(tokens) == Rejected(IDENTITY_MISMATCH)
