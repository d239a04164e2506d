# This project was developed with assistance from AI tools.
"""Tests for the health and root endpoints."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from db import get_db_service

from src import __version__
from src.main import app


@pytest.fixture
def db_health(client):
    service = MagicMock()
    service.health_check = AsyncMock()
    app.dependency_overrides[get_db_service] = lambda: service
    return service.health_check


def test_health_reports_api_and_database(client, db_health):
    db_health.return_value = {"name": "Database", "status": "healthy", "message": "Connected to PostgreSQL 16.4"}

    resp = client.get("/health/")

    assert resp.status_code == 200
    api_item, db_item = resp.json()
    assert api_item == {
        "name": "API",
        "status": "healthy",
        "message": "API is running",
        "version": __version__,
    }
    assert db_item["status"] == "healthy"
    assert db_item["version"] is None


def test_health_surfaces_unhealthy_database(client, db_health):
    db_health.return_value = {
        "name": "Database",
        "status": "unhealthy",
        "message": "Database unreachable: OSError",
    }

    resp = client.get("/health/")

    assert resp.status_code == 200
    assert resp.json()[1]["status"] == "unhealthy"


def test_root(client):
    resp = client.get("/")
    assert resp.status_code == 200
    assert "Cooperative Ledger" in resp.json()["message"]
