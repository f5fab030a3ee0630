"""Tests for application startup wiring."""

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from name_resolution.config import settings
from name_resolution.main import app


@pytest.fixture
def client(tmp_path: Path, monkeypatch):
    """Run the real lifespan against a temp database without the scheduler."""
    monkeypatch.setattr(settings, "turso_database_url", f"file:{tmp_path / 'app.db'}")
    monkeypatch.setattr(settings, "turso_auth_token", None)
    monkeypatch.setattr(settings, "batch_schedule_enabled", False)
    with TestClient(app) as test_client:
        yield test_client


def test_startup_loads_reference_data(client: TestClient):
    response = client.get("/health/")

    assert response.status_code == 200
    assert response.json()["data_versions"] == {
        "transliterations": "2025-12-14",
        "blacklist": "2025-12-14",
    }


def test_startup_creates_mapping_store(client: TestClient):
    assert client.get("/names/lookup").json() == {}
    assert client.get("/names/mappings/stats").json()["total"] == 0


def test_batch_run_without_transcript_store_is_bad_gateway(client: TestClient):
    """No transcripts table yet: the run aborts before any write."""
    response = client.post("/names/batch-runs")

    assert response.status_code == 502
    assert client.get("/names/mappings/stats").json()["total"] == 0
