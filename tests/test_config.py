"""Unit tests for core/config.py -- Settings validation rules.

Settings(...) is constructed directly with keyword arguments; init kwargs take
priority over the environment, so these tests do not depend on conftest's
environment beyond DEBUG.
"""

import pydantic
import pytest

from core.config import Settings

_A = "a" * 32
_B = "b" * 32


class TestTokenSecrets:
    def test_explicit_secrets_accepted(self):
        s = Settings(debug=False, access_token_secret=_A, renewal_token_secret=_B)
        assert s.access_token_secret == _A
        assert s.renewal_token_secret == _B

    def test_production_requires_secrets(self):
        with pytest.raises(pydantic.ValidationError, match="ACCESS_TOKEN_SECRET is required"):
            Settings(debug=False, access_token_secret="", renewal_token_secret=_B)

    def test_debug_generates_distinct_secrets(self):
        s = Settings(debug=True, access_token_secret="", renewal_token_secret="")
        assert len(s.access_token_secret) >= 32
        assert s.access_token_secret != s.renewal_token_secret

    def test_short_secret_rejected(self):
        with pytest.raises(pydantic.ValidationError, match="at least 32 characters"):
            Settings(debug=True, access_token_secret="short", renewal_token_secret=_B)

    def test_identical_secrets_rejected(self):
        with pytest.raises(pydantic.ValidationError, match="must differ"):
            Settings(debug=False, access_token_secret=_A, renewal_token_secret=_A)


class TestOtherRules:
    def test_defaults_match_token_windows(self):
        s = Settings(debug=True, access_token_secret=_A, renewal_token_secret=_B)
        assert s.access_token_expire_seconds == 3600
        assert s.renewal_token_expire_seconds == 30 * 24 * 3600

    def test_samesite_none_requires_secure(self):
        with pytest.raises(pydantic.ValidationError, match="SECURE_COOKIES"):
            Settings(
                debug=True,
                access_token_secret=_A,
                renewal_token_secret=_B,
                cookie_samesite="none",
                secure_cookies=False,
            )

    def test_samesite_none_with_secure_ok(self):
        s = Settings(
            debug=True,
            access_token_secret=_A,
            renewal_token_secret=_B,
            cookie_samesite="none",
            secure_cookies=True,
        )
        assert s.cookie_samesite == "none"

    def test_bcrypt_rounds_bounds(self):
        with pytest.raises(pydantic.ValidationError):
            Settings(debug=True, access_token_secret=_A, renewal_token_secret=_B, bcrypt_rounds=3)

    def test_frozen(self):
        s = Settings(debug=True, access_token_secret=_A, renewal_token_secret=_B)
        with pytest.raises(pydantic.ValidationError):
            s.debug = False
