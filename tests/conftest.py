"""
tests/conftest.py -- Shared test fixtures for Pocketbook tests.

This module provides:
  - make_stores(): isolated named shared-memory DBs for auth + ledger
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - api_client: TestClient plus a registered, initialized user and its JWT
  - fast_config: CredentialConfig with a low iteration count for codec tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker
thread.

Environment must be set before any app import:
  DEBUG=true                -- get_settings() auto-generates SECRET_KEY
  CREDENTIAL_ITERATIONS     -- keeps PBKDF2 fast; stored blobs carry their
                               own iteration count, so nothing else changes
  ALLOWED_HOSTS             -- TestClient sends Host: testserver
"""

from __future__ import annotations

import itertools
import os
from collections.abc import Generator
from contextlib import asynccontextmanager

os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("CREDENTIAL_ITERATIONS", "1000")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth import credentials
from auth.models import User
from auth.store import UserStore
from auth.tokens import create_access_token
from ledger.lifecycle import initialize_user
from ledger.store import LedgerStore

# Rate limits are exercised nowhere in the suite; a module that logs in a
# dozen times would otherwise hit the 10/minute login limit.
limiter.enabled = False

_unit_db_ids = itertools.count()

TEST_EMAIL = "test@account.ru"
TEST_PASSWORD = "12345678"


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def make_stores(db_suffix: str) -> tuple[UserStore, LedgerStore]:
    """Create isolated named shared-memory SQLite stores.

    Args:
        db_suffix: Unique string appended to the DB names so test modules
                   don't share state.
    """
    auth_url = f"sqlite:///file:test_auth_{db_suffix}?mode=memory&cache=shared&uri=true"
    ledger_url = f"sqlite:///file:test_ledger_{db_suffix}?mode=memory&cache=shared&uri=true"
    return UserStore(db_url=auth_url), LedgerStore(db_url=ledger_url)


def _patch_lifespan(user_store: UserStore, ledger: LedgerStore):
    """Return a lifespan that installs pre-created test stores on app.state."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.ledger = ledger
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fast_config() -> credentials.CredentialConfig:
    return credentials.CredentialConfig(iterations=1000)


@pytest.fixture
def stores() -> Generator[tuple[UserStore, LedgerStore], None, None]:
    """Fresh auth + ledger stores per test."""
    user_store, ledger = make_stores(f"unit_{next(_unit_db_ids)}")
    yield user_store, ledger
    user_store.close()
    ledger.close()


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, str, int], None, None]:
    """Yield (client, token, user_id) for API integration tests.

    The user is created and initialized (default accounts, category root)
    before the client starts, mirroring what POST /auth/register does.
    """
    user_store, ledger = make_stores(request.module.__name__.replace(".", "_"))

    uid = user_store.create_user(User(email=TEST_EMAIL, password=credentials.encode(TEST_PASSWORD)))
    initialize_user(ledger, user_store, user_store.get_by_id(uid))
    token = create_access_token(user_id=uid, email=TEST_EMAIL, expire_seconds=3600)

    app.router.lifespan_context = _patch_lifespan(user_store, ledger)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, token, uid

    user_store.close()
    ledger.close()
