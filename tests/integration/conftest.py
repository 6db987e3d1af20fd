# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Fixtures for API integration tests.

The app is built with create_app() and driven through TestClient without
entering the lifespan, so the seeded in-memory store installed here is the
one every request sees.
"""

from collections.abc import Callable, Generator
from datetime import datetime

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from pydantic import SecretStr

from simonkey.api.app import create_app
from simonkey.api.dependencies import get_app_settings, get_clock
from simonkey.core.config import AdminSettings, Settings
from simonkey.domains.auth import JWTManager
from simonkey.infrastructure.documents import MemoryDocumentStore, set_document_store

ADMIN_TOKEN = "admin-test-token"


@pytest.fixture
def settings() -> Settings:
    """Application settings with an admin token configured."""
    return Settings(admin=AdminSettings(token=SecretStr(ADMIN_TOKEN)))


@pytest.fixture
def app(
    store: MemoryDocumentStore,
    settings: Settings,
    clock: Callable[[], datetime],
) -> Generator[FastAPI, None, None]:
    """Create the app over the shared in-memory store."""
    set_document_store(store)
    app = create_app()
    app.dependency_overrides[get_app_settings] = lambda: settings
    app.dependency_overrides[get_clock] = lambda: clock
    yield app
    app.dependency_overrides.clear()
    set_document_store(None)


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    """Create test client."""
    return TestClient(app)


@pytest.fixture
def caller_headers(settings: Settings) -> Callable[..., dict[str, str]]:
    """Build Authorization headers for caller tokens signed with the test settings."""
    manager = JWTManager(settings.jwt)

    def _make(user_id: str, role: str | None = None) -> dict[str, str]:
        return {"Authorization": f"Bearer {manager.create_token(user_id, role=role)}"}

    return _make


@pytest.fixture
def admin_headers() -> dict[str, str]:
    """Authorization header carrying the admin token."""
    return {"Authorization": f"Bearer {ADMIN_TOKEN}"}
