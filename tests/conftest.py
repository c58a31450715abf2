"""
tests/conftest.py -- Shared test fixtures for Passgate tests.

This module provides:
  - RecordingDispatcher / InMemoryMediaStore: fakes for the outbound
    collaborators so no test touches the network or the disk
  - _patch_lifespan(): wires test components into app.state, bypassing real startup
  - client: TestClient over the real app with an isolated in-memory database
  - flows: an AuthFlows instance over isolated stores, for unit-level tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool, and because
UserStore and CredentialStore open their own engines on the same URL. Plain
:memory: DBs are per-connection and would present a blank schema to each.

The environment must be set before any api/auth/core import: get_settings()
is cached on first call, and api/main.py reads it at import time.
"""

from __future__ import annotations

import asyncio
import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set these before any api/auth/core import.
os.environ.setdefault("DEBUG", "true")  # auto-generate token secrets
os.environ.setdefault("BCRYPT_ROUNDS", "4")  # bcrypt's minimum cost keeps the suite fast
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver"]')
os.environ.setdefault("CLIENT_APP_URL", "http://app.test")

import pytest
from fastapi.testclient import TestClient

from api.main import app, build_components
from auth.credentials import CredentialStore
from auth.flows import AuthFlows
from auth.passwords import PasswordHasher
from auth.store import UserStore
from auth.tokens import TokenIssuer
from core.config import Settings, get_settings
from media.store import MediaObject

# ---------------------------------------------------------------------------
# Fakes for the external collaborators
# ---------------------------------------------------------------------------


class RecordingDispatcher:
    """Records every send instead of delivering it."""

    def __init__(self) -> None:
        self.emails: list[dict] = []
        self.sms: list[dict] = []

    def send_email(self, name, address, link=None, code=None) -> bool:
        self.emails.append({"name": name, "address": address, "link": link, "code": code})
        return True

    def send_sms(self, number, code) -> bool:
        self.sms.append({"number": number, "code": code})
        return True

    def close(self) -> None:
        pass


class InMemoryMediaStore:
    """Keeps uploaded bytes in a dict keyed by object id."""

    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.destroyed: list[str] = []

    def upload(self, upload) -> MediaObject:
        object_id = f"obj-{uuid.uuid4().hex[:8]}"
        self.objects[object_id] = upload.file.read()
        return MediaObject(url=f"https://media.test/{object_id}", object_id=object_id)

    def destroy(self, object_id: str) -> None:
        self.destroyed.append(object_id)
        self.objects.pop(object_id, None)


# ---------------------------------------------------------------------------
# Settings / store helpers
# ---------------------------------------------------------------------------


def _memory_db_url(prefix: str) -> str:
    """A fresh named shared-memory SQLite URL per call, so tests never share rows."""
    return f"sqlite:///file:{prefix}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


def make_settings(**overrides) -> Settings:
    """The cached test Settings with a fresh database and any overrides applied.

    model_copy() returns a new frozen instance; the cached one is untouched.
    """
    overrides.setdefault("database_url", _memory_db_url("test_passgate"))
    return get_settings().model_copy(update=overrides)


def _patch_lifespan(settings: Settings, dispatcher: RecordingDispatcher, media: InMemoryMediaStore):
    """Return an async context manager that replaces the real lifespan.

    The purge_task is a long-sleeping coroutine so shutdown can cancel a real
    asyncio.Task.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        build_components(app, settings, dispatcher=dispatcher, media=media)
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()
        app.state.credentials.close()
        app.state.user_store.close()

    return test_lifespan


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def media() -> InMemoryMediaStore:
    return InMemoryMediaStore()


@pytest.fixture
def db_url() -> str:
    return _memory_db_url("test_passgate")


@pytest.fixture
def settings_factory():
    """make_settings, for tests that need Settings with specific overrides."""
    return make_settings


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def client(
    settings: Settings, dispatcher: RecordingDispatcher, media: InMemoryMediaStore
) -> Generator[TestClient, None, None]:
    """TestClient over the real app with an isolated database and fake collaborators.

    Components are reachable through client.app.state (credentials,
    user_store, issuer, hasher, ...). The client keeps cookies between calls,
    so a login followed by a protected request behaves like a browser.
    """
    app.router.lifespan_context = _patch_lifespan(settings, dispatcher, media)
    with TestClient(app, raise_server_exceptions=True) as test_client:
        yield test_client


@pytest.fixture
def flows(
    settings: Settings, dispatcher: RecordingDispatcher, media: InMemoryMediaStore
) -> Generator[AuthFlows, None, None]:
    """AuthFlows over isolated stores, without the HTTP layer."""
    users = UserStore(settings.database_url)
    credentials = CredentialStore(settings.database_url)
    yield AuthFlows(
        settings,
        users=users,
        credentials=credentials,
        hasher=PasswordHasher(settings.bcrypt_rounds),
        issuer=TokenIssuer(settings),
        dispatcher=dispatcher,
        media=media,
    )
    credentials.close()
    users.close()
