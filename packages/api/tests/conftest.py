# This project was developed with assistance from AI tools.
"""Shared fixtures for the API test suite.

``client`` talks to the real app with authentication replaced by a
super-admin and the database replaced by an AsyncMock session, so route
tests can patch the service functions they exercise.
"""

from unittest.mock import AsyncMock

import pytest
from db import get_db
from fastapi.testclient import TestClient

from src.main import app
from src.middleware.auth import get_current_user
from src.services import events

from .functional.personas import super_admin


@pytest.fixture(autouse=True)
def _reset_subscribers():
    """Keep event subscribers from leaking between tests."""
    yield
    events.clear_subscribers()


@pytest.fixture
def mock_session():
    return AsyncMock()


@pytest.fixture
def client(mock_session):
    async def fake_user():
        return super_admin()

    async def fake_db():
        yield mock_session

    app.dependency_overrides[get_current_user] = fake_user
    app.dependency_overrides[get_db] = fake_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def act_as(client):
    """Swap the persona ``client`` authenticates as."""

    def _act_as(persona):
        async def fake_user():
            return persona

        app.dependency_overrides[get_current_user] = fake_user

    return _act_as
