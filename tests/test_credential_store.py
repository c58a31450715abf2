"""Unit tests for auth/credentials.py -- pending OTP and reset-token storage.

Covers:
- upsert by receiver / user id leaves exactly one row
- find_otp matches receiver AND code, live rows only
- delete reports whether it removed anything (consume-once)
- find_reset looks up by token; a newer request supersedes the old token
- purge_expired removes only expired rows
"""

import pytest

from auth.credentials import CredentialStore


@pytest.fixture
def store(db_url):
    s = CredentialStore(db_url)
    yield s
    s.close()


class TestOtpUpsert:
    def test_second_upsert_overwrites(self, store):
        store.upsert_otp("a@x.com", "email", 1111, ttl_seconds=600)
        store.upsert_otp("a@x.com", "email", 2222, ttl_seconds=600)
        assert store.count_otps("a@x.com") == 1
        assert store.get_otp("a@x.com").code == 2222

    def test_upsert_replaces_method(self, store):
        store.upsert_otp("+15550100", "email", 1111, ttl_seconds=600)
        store.upsert_otp("+15550100", "number", 3333, ttl_seconds=600)
        entry = store.get_otp("+15550100")
        assert entry.method == "number"
        assert entry.code == 3333

    def test_receivers_are_independent(self, store):
        store.upsert_otp("a@x.com", "email", 1111, ttl_seconds=600)
        store.upsert_otp("b@x.com", "email", 2222, ttl_seconds=600)
        assert store.get_otp("a@x.com").code == 1111
        assert store.get_otp("b@x.com").code == 2222

    def test_upsert_keeps_row_id(self, store):
        store.upsert_otp("a@x.com", "email", 1111, ttl_seconds=600)
        first_id = store.get_otp("a@x.com").id
        store.upsert_otp("a@x.com", "email", 2222, ttl_seconds=600)
        assert store.get_otp("a@x.com").id == first_id


class TestOtpLookup:
    def test_find_requires_matching_code(self, store):
        store.upsert_otp("a@x.com", "email", 4321, ttl_seconds=600)
        assert store.find_otp("a@x.com", 4321) is not None
        assert store.find_otp("a@x.com", 1234) is None
        assert store.find_otp("other@x.com", 4321) is None

    def test_overwritten_code_no_longer_matches(self, store):
        store.upsert_otp("a@x.com", "email", 1111, ttl_seconds=600)
        store.upsert_otp("a@x.com", "email", 2222, ttl_seconds=600)
        assert store.find_otp("a@x.com", 1111) is None

    def test_expired_code_does_not_match(self, store):
        store.upsert_otp("a@x.com", "email", 1111, ttl_seconds=0)
        assert store.find_otp("a@x.com", 1111) is None
        assert store.get_otp("a@x.com") is None
        # The row is still there until purged.
        assert store.count_otps("a@x.com") == 1

    def test_delete_is_consume_once(self, store):
        store.upsert_otp("a@x.com", "email", 1111, ttl_seconds=600)
        entry = store.find_otp("a@x.com", 1111)
        assert store.delete_otp(entry.id) is True
        assert store.delete_otp(entry.id) is False
        assert store.find_otp("a@x.com", 1111) is None


class TestResetTokens:
    def test_find_by_token(self, store):
        store.upsert_reset(7, "tok-1", ttl_seconds=3600)
        entry = store.find_reset("tok-1")
        assert entry is not None
        assert entry.user_id == 7

    def test_newer_request_supersedes(self, store):
        store.upsert_reset(7, "tok-1", ttl_seconds=3600)
        store.upsert_reset(7, "tok-2", ttl_seconds=3600)
        assert store.find_reset("tok-1") is None
        assert store.find_reset("tok-2").user_id == 7
        assert store.get_reset_for_user(7).token == "tok-2"

    def test_unknown_token(self, store):
        assert store.find_reset("nope") is None

    def test_expired_token_does_not_match(self, store):
        store.upsert_reset(7, "tok-1", ttl_seconds=0)
        assert store.find_reset("tok-1") is None

    def test_delete_reset(self, store):
        store.upsert_reset(7, "tok-1", ttl_seconds=3600)
        entry = store.find_reset("tok-1")
        assert store.delete_reset(entry.id) is True
        assert store.find_reset("tok-1") is None
        assert store.delete_reset(entry.id) is False


class TestPurge:
    def test_purge_removes_only_expired(self, store):
        store.upsert_otp("old@x.com", "email", 1111, ttl_seconds=0)
        store.upsert_otp("new@x.com", "email", 2222, ttl_seconds=600)
        store.upsert_reset(1, "old-token", ttl_seconds=0)
        store.upsert_reset(2, "new-token", ttl_seconds=3600)

        assert store.purge_expired() == 2
        assert store.count_otps("old@x.com") == 0
        assert store.count_otps("new@x.com") == 1
        assert store.find_reset("new-token") is not None
