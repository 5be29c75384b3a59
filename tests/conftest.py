"""
tests/conftest.py -- Shared test fixtures for FolderVault integration tests.

This module provides:
  - _make_test_stores(): creates isolated in-memory DBs for auth + metadata
  - _patch_lifespan(): wires test stores and services into app.state,
    bypassing real startup
  - api_client: TestClient over the real app with a temporary upload root
  - signup(): helper that registers a user and returns Bearer headers

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.

Environment variables must be set before any app import: get_settings() is
cached on first use and api.limiter reads it at import time.
"""

from __future__ import annotations

import asyncio
import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from pathlib import Path

# CRITICAL: set before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.credentials import CredentialManager
from auth.sessions import SessionManager
from auth.store import UserStore
from core.config import get_settings
from storage.folders import FolderStore
from storage.layout import FilesystemLayout
from storage.store import MetadataStore
from storage.uploads import FileUploadPipeline

# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_stores(db_suffix: str) -> tuple[UserStore, MetadataStore]:
    """Create isolated named shared-memory SQLite stores.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state.
    """
    auth_url = f"sqlite:///file:test_auth_{db_suffix}?mode=memory&cache=shared&uri=true"
    meta_url = f"sqlite:///file:test_meta_{db_suffix}?mode=memory&cache=shared&uri=true"
    return UserStore(auth_url), MetadataStore(meta_url)


def _patch_lifespan(user_store: UserStore, metadata: MetadataStore, upload_root: Path):
    """Return an async context manager that replaces the real lifespan.

    The sweep_task is a long-sleeping coroutine (a real asyncio.Task is
    required; MagicMock would fail on .cancel()).
    """

    @asynccontextmanager
    async def test_lifespan(app):
        settings = get_settings()
        layout = FilesystemLayout(upload_root)
        app.state.user_store = user_store
        app.state.metadata = metadata
        app.state.layout = layout
        app.state.sessions = SessionManager(
            user_store,
            CredentialManager(settings.bcrypt_rounds),
            settings.secret_key,
            ttl_seconds=settings.session_ttl_seconds,
        )
        app.state.folders = FolderStore(metadata, layout)
        app.state.uploads = FileUploadPipeline(app.state.folders, metadata, layout)
        app.state.sweep_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.sweep_task.cancel()

    return test_lifespan


def unique_email(prefix: str = "user") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}@example.com"


def signup(client: TestClient, email: str | None = None, password: str = "pw123456") -> dict[str, str]:
    """Register a user and return Authorization headers for it.

    The client's cookie jar is cleared afterwards: a valid cookie takes precedence
    over the Bearer header, and a leftover cookie from one user would make
    requests meant for another user run as the first.
    """
    resp = client.post("/api/v1/auth/signup", json={"email": email or unique_email(), "password": password})
    assert resp.status_code == 201, resp.text
    client.cookies.clear()
    return {"Authorization": f"Bearer {resp.json()['session_token']}"}


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def upload_root(tmp_path_factory) -> Path:
    return tmp_path_factory.mktemp("uploads")


@pytest.fixture(scope="module")
def api_client(request, upload_root: Path) -> Generator[TestClient, None, None]:
    """Yield a TestClient over the real app with isolated stores.

    Each test module gets its own databases and upload root.
    """
    user_store, metadata = _make_test_stores(request.module.__name__.rsplit(".", 1)[-1])
    app.router.lifespan_context = _patch_lifespan(user_store, metadata, upload_root)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client

    user_store.close()
    metadata.close()
