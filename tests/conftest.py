"""Pytest configuration and fixtures."""

from collections.abc import AsyncIterator
from pathlib import Path

import pytest

from name_resolution.db.turso import TursoClient
from name_resolution.identity.schemas import RosterEntry
from name_resolution.identity.transliteration import TransliterationTable
from name_resolution.repositories.mapping_repo import MappingRepository


@pytest.fixture
async def db_client(tmp_path: Path) -> AsyncIterator[TursoClient]:
    """Create a temp file database client for testing."""
    db_path = tmp_path / "test_names.db"
    client = TursoClient(url=f"file:{db_path}")
    await client.connect()
    yield client
    await client.close()


@pytest.fixture
async def mapping_repo(db_client: TursoClient) -> MappingRepository:
    """Create MappingRepository with initialized tables."""
    repo = MappingRepository(db_client)
    await repo.initialize()
    return repo


@pytest.fixture
def transliterations() -> TransliterationTable:
    """Bundled transliteration table."""
    return TransliterationTable.from_json()


@pytest.fixture
def sample_roster() -> list[RosterEntry]:
    """Small CRM roster with Hebrew names and mixed enrollment."""
    return [
        RosterEntry(
            external_id="page-001",
            name="דנה כהן",
            status_label="לומד 1:1",
            is_active=True,
        ),
        RosterEntry(
            external_id="page-002",
            name="עופר לוי",
            status_label="לומד בקבוצה חמישי",
            is_active=True,
        ),
        RosterEntry(
            external_id="page-003",
            name="נועה ברק",
            status_label="הפסיק",
            is_active=False,
        ),
        RosterEntry(
            external_id="page-004",
            name="Daniel Green",
            status_label="לומד 1:1",
            is_active=True,
        ),
    ]
