"""Unit tests for auth/tokens.py and auth/passwords.py.

Covers:
- access and renewal tokens round-trip to the identity id
- a token only verifies as its own kind (separate secrets + typ claim)
- expired, tampered and garbage tokens collapse to None
- bcrypt hash/verify, including malformed stored hashes
"""

from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from auth.passwords import PasswordHasher, password_fits
from auth.tokens import TokenIssuer, TokenKind


@pytest.fixture
def issuer(settings):
    return TokenIssuer(settings)


class TestTokenIssuer:
    def test_access_round_trip(self, issuer):
        token = issuer.issue_access_token(42)
        assert issuer.verify(token, TokenKind.access) == 42

    def test_renewal_round_trip(self, issuer):
        token = issuer.issue_renewal_token(42)
        assert issuer.verify(token, TokenKind.renewal) == 42

    def test_kinds_are_not_interchangeable(self, issuer):
        access = issuer.issue_access_token(42)
        renewal = issuer.issue_renewal_token(42)
        assert issuer.verify(access, TokenKind.renewal) is None
        assert issuer.verify(renewal, TokenKind.access) is None

    def test_expired_token_is_invalid(self, issuer):
        token = issuer.issue_access_token(42, expire_seconds=-10)
        assert issuer.verify(token, TokenKind.access) is None

    def test_default_lifetimes(self, issuer):
        token = issuer.issue_renewal_token(1)
        claims = jwt.get_unverified_claims(token)
        assert claims["exp"] - claims["iat"] == 30 * 24 * 3600
        token = issuer.issue_access_token(1)
        claims = jwt.get_unverified_claims(token)
        assert claims["exp"] - claims["iat"] == 3600

    def test_tampered_token_is_invalid(self, issuer):
        token = issuer.issue_access_token(42)
        head, payload, sig = token.split(".")
        flipped = sig[:-2] + ("AA" if sig[-2:] != "AA" else "BB")
        assert issuer.verify(f"{head}.{payload}.{flipped}", TokenKind.access) is None

    def test_token_from_other_secret_is_invalid(self, issuer, settings_factory):
        foreign = TokenIssuer(settings_factory(access_token_secret="f" * 64))
        token = foreign.issue_access_token(42)
        assert issuer.verify(token, TokenKind.access) is None

    def test_garbage_is_invalid(self, issuer):
        assert issuer.verify("not-a-jwt", TokenKind.access) is None
        assert issuer.verify("", TokenKind.renewal) is None

    def test_non_numeric_subject_is_invalid(self, issuer, settings):
        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {"sub": "admin", "typ": "access", "iat": now, "exp": now + timedelta(minutes=5)},
            settings.access_token_secret,
            algorithm="HS256",
        )
        assert issuer.verify(token, TokenKind.access) is None


class TestPasswordHasher:
    @pytest.fixture
    def hasher(self):
        return PasswordHasher(rounds=4)

    def test_hash_verifies(self, hasher):
        digest = hasher.hash("correct horse")
        assert digest != "correct horse"
        assert hasher.verify("correct horse", digest) is True
        assert hasher.verify("wrong horse", digest) is False

    def test_hash_is_salted(self, hasher):
        assert hasher.hash("same") != hasher.hash("same")

    def test_rounds_recorded_in_hash(self, hasher):
        assert hasher.hash("pw").startswith("$2b$04$")

    def test_malformed_hash_is_mismatch(self, hasher):
        assert hasher.verify("pw", "not-a-bcrypt-hash") is False

    def test_verify_dummy_returns_nothing(self, hasher):
        assert hasher.verify_dummy("anything") is None

    def test_password_fits_counts_utf8_bytes(self):
        assert password_fits("a" * 72) is True
        assert password_fits("a" * 73) is False
        assert password_fits("é" * 36) is True
        assert password_fits("é" * 37) is False
