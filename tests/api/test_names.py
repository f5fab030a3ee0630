"""Tests for name resolution API endpoints."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from name_resolution.adapters.notion_roster_adapter import RosterFetchError
from name_resolution.api.names import router
from name_resolution.identity.errors import (
    InvalidTransitionError,
    MappingNotFoundError,
    NothingToUndoError,
    WriteConflictError,
)
from name_resolution.identity.fuzzy_matcher import FuzzyMatcher
from name_resolution.identity.roster_matcher import RosterMatcher
from name_resolution.identity.schemas import (
    BatchRunSummary,
    BulkApproveResult,
    BulkOutcome,
    MappingHistory,
    MappingStats,
    MappingStatus,
    NameMapping,
    RosterSnapshot,
)
from name_resolution.repositories.transcript_repo import TranscriptFetchError


def _mapping(**overrides) -> NameMapping:
    values = {
        "id": 7,
        "original_name": "Noa",
        "crm_match": "נועה ברק",
        "status": MappingStatus.PENDING,
        "transcript_count": 4,
    }
    values.update(overrides)
    return NameMapping(**values)


@pytest.fixture
def mock_mapping_repo():
    """Create mock MappingRepository."""
    repo = MagicMock()
    repo.get_resolved_lookup = AsyncMock(return_value={"Dana": "דנה כהן"})
    repo.list_mappings = AsyncMock(return_value=[_mapping()])
    repo.get_stats = AsyncMock(return_value=MappingStats(total=3, pending=2, approved=1))
    return repo


@pytest.fixture
def mock_review_service():
    """Create mock ReviewService."""
    review = MagicMock()
    review.get_mapping = AsyncMock(return_value=_mapping())
    review.approve = AsyncMock()
    review.reject = AsyncMock()
    review.edit = AsyncMock()
    review.reopen = AsyncMock()
    review.undo = AsyncMock()
    review.recent_history = AsyncMock(return_value=[])
    review.mapping_history = AsyncMock(return_value=[])
    review.bulk_approve = AsyncMock(return_value=[])
    return review


@pytest.fixture
def mock_batch_resolver():
    """Create mock BatchResolver."""
    resolver = MagicMock()
    resolver.run = AsyncMock(return_value=BatchRunSummary(created=2, auto_matched=1))
    return resolver


@pytest.fixture
def mock_roster_adapter(sample_roster):
    """Create mock NotionRosterAdapter."""
    adapter = MagicMock()
    adapter.fetch_roster = AsyncMock(
        return_value=RosterSnapshot(
            entries=tuple(sample_roster), fetched_at=datetime.now(UTC)
        )
    )
    return adapter


@pytest.fixture
def test_client(
    mock_mapping_repo,
    mock_review_service,
    mock_batch_resolver,
    mock_roster_adapter,
    transliterations,
):
    """Create test client with mocked dependencies."""
    app = FastAPI()
    app.include_router(router)
    app.state.mapping_repo = mock_mapping_repo
    app.state.review_service = mock_review_service
    app.state.batch_resolver = mock_batch_resolver
    app.state.roster_adapter = mock_roster_adapter
    app.state.roster_matcher = RosterMatcher(transliterations)
    app.state.fuzzy_matcher = FuzzyMatcher()
    return TestClient(app)


class TestLookupEndpoint:
    """Tests for GET /names/lookup."""

    def test_returns_resolved_names(self, test_client):
        response = test_client.get("/names/lookup")

        assert response.status_code == 200
        assert response.json() == {"Dana": "דנה כהן"}


class TestMappingsEndpoints:
    """Tests for mapping listing endpoints."""

    def test_list_with_filter(self, test_client, mock_mapping_repo):
        response = test_client.get("/names/mappings?status=pending&limit=10&offset=20")

        assert response.status_code == 200
        assert response.json()[0]["original_name"] == "Noa"
        mock_mapping_repo.list_mappings.assert_called_once_with(
            status=MappingStatus.PENDING, limit=10, offset=20
        )

    def test_invalid_status_rejected(self, test_client):
        response = test_client.get("/names/mappings?status=unknown")

        assert response.status_code == 422

    def test_stats(self, test_client):
        response = test_client.get("/names/mappings/stats")

        assert response.status_code == 200
        assert response.json()["total"] == 3
        assert response.json()["pending"] == 2

    def test_get_mapping(self, test_client):
        response = test_client.get("/names/mappings/7")

        assert response.status_code == 200
        assert response.json()["crm_match"] == "נועה ברק"

    def test_get_missing_mapping(self, test_client, mock_review_service):
        mock_review_service.get_mapping.side_effect = MappingNotFoundError("mapping 9 not found")

        response = test_client.get("/names/mappings/9")

        assert response.status_code == 404

    def test_history(self, test_client, mock_review_service):
        mock_review_service.recent_history.return_value = [
            MappingHistory(
                id=1,
                mapping_id=7,
                original_name="Noa",
                previous_status=MappingStatus.PENDING,
                changed_by="reviewer@example.com",
            )
        ]

        response = test_client.get("/names/history?limit=5")

        assert response.status_code == 200
        assert response.json()[0]["previous_status"] == "pending"
        mock_review_service.recent_history.assert_called_once_with(5)


class TestCandidatesEndpoint:
    """Tests for GET /names/mappings/{id}/candidates."""

    def test_returns_rule_and_fuzzy_candidates(self, test_client):
        response = test_client.get("/names/mappings/7/candidates")

        assert response.status_code == 200
        data = response.json()
        assert data["original_name"] == "Noa"
        assert data["rule_matches"][0]["name"] == "נועה ברק"
        assert data["rule_matches"][0]["method"] == "transliteration"
        assert data["rule_matches"][0]["score"] == 75

    def test_crm_unavailable(self, test_client, mock_roster_adapter):
        mock_roster_adapter.fetch_roster.side_effect = RosterFetchError("CRM returned 503")

        response = test_client.get("/names/mappings/7/candidates")

        assert response.status_code == 502


class TestReviewEndpoints:
    """Tests for review workflow endpoints."""

    def test_approve(self, test_client, mock_review_service):
        mock_review_service.approve.return_value = _mapping(
            status=MappingStatus.APPROVED, resolved_name="נועה ברק"
        )

        response = test_client.post(
            "/names/mappings/7/approve", json={"actor": "reviewer@example.com"}
        )

        assert response.status_code == 200
        assert response.json()["status"] == "approved"
        mock_review_service.approve.assert_called_once_with(
            7, actor="reviewer@example.com", resolved_name=None, notes=None
        )

    def test_actor_required(self, test_client, mock_review_service):
        response = test_client.post("/names/mappings/7/approve", json={})

        assert response.status_code == 422
        mock_review_service.approve.assert_not_called()

    def test_invalid_transition_is_conflict(self, test_client, mock_review_service):
        mock_review_service.reopen.side_effect = InvalidTransitionError(
            "manual transition pending -> pending is not allowed"
        )

        response = test_client.post(
            "/names/mappings/7/reopen", json={"actor": "reviewer@example.com"}
        )

        assert response.status_code == 409

    def test_write_conflict(self, test_client, mock_review_service):
        mock_review_service.reject.side_effect = WriteConflictError("changed")

        response = test_client.post(
            "/names/mappings/7/reject",
            json={"actor": "reviewer@example.com", "reason": "meeting room"},
        )

        assert response.status_code == 409
        mock_review_service.reject.assert_called_once_with(
            7, actor="reviewer@example.com", reason="meeting room"
        )

    def test_edit(self, test_client, mock_review_service):
        mock_review_service.edit.return_value = _mapping(
            status=MappingStatus.APPROVED, resolved_name="שירה אבן"
        )

        response = test_client.post(
            "/names/mappings/7/edit",
            json={"actor": "reviewer@example.com", "resolved_name": "שירה אבן"},
        )

        assert response.status_code == 200
        assert response.json()["resolved_name"] == "שירה אבן"

    def test_edit_requires_name(self, test_client):
        response = test_client.post(
            "/names/mappings/7/edit",
            json={"actor": "reviewer@example.com", "resolved_name": ""},
        )

        assert response.status_code == 422

    def test_whitespace_name_is_unprocessable(self, test_client, mock_review_service):
        response = test_client.post(
            "/names/mappings/7/approve",
            json={"actor": "reviewer@example.com", "resolved_name": "   "},
        )

        assert response.status_code == 422
        mock_review_service.approve.assert_not_called()

    def test_names_and_actor_are_stripped(self, test_client, mock_review_service):
        mock_review_service.edit.return_value = _mapping(
            status=MappingStatus.APPROVED, resolved_name="שירה אבן"
        )

        response = test_client.post(
            "/names/mappings/7/edit",
            json={"actor": " reviewer@example.com ", "resolved_name": "  שירה אבן "},
        )

        assert response.status_code == 200
        mock_review_service.edit.assert_called_once_with(
            7, actor="reviewer@example.com", resolved_name="שירה אבן"
        )

    def test_undo(self, test_client, mock_review_service):
        mock_review_service.undo.return_value = _mapping()

        response = test_client.post(
            "/names/mappings/7/undo", json={"actor": "reviewer@example.com"}
        )

        assert response.status_code == 200
        mock_review_service.undo.assert_called_once_with(7, actor="reviewer@example.com")

    def test_nothing_to_undo(self, test_client, mock_review_service):
        mock_review_service.undo.side_effect = NothingToUndoError("nothing to undo")

        response = test_client.post(
            "/names/mappings/7/undo", json={"actor": "reviewer@example.com"}
        )

        assert response.status_code == 409
        assert "nothing to undo" in response.json()["detail"]

    def test_value_error_is_unprocessable(self, test_client, mock_review_service):
        mock_review_service.reopen.side_effect = ValueError("actor is required")

        response = test_client.post("/names/mappings/7/reopen", json={"actor": "x"})

        assert response.status_code == 422


class TestMappingHistoryEndpoint:
    """Tests for GET /names/mappings/{id}/history."""

    def test_returns_history(self, test_client, mock_review_service):
        mock_review_service.mapping_history.return_value = [
            MappingHistory(
                id=3,
                mapping_id=7,
                original_name="Noa",
                previous_status=MappingStatus.PENDING,
                changed_by="reviewer@example.com",
            )
        ]

        response = test_client.get("/names/mappings/7/history")

        assert response.status_code == 200
        assert response.json()[0]["previous_status"] == "pending"
        mock_review_service.mapping_history.assert_called_once_with(7)

    def test_missing_mapping(self, test_client, mock_review_service):
        mock_review_service.mapping_history.side_effect = MappingNotFoundError(
            "mapping 99 not found"
        )

        response = test_client.get("/names/mappings/99/history")

        assert response.status_code == 404


class TestBulkApproveEndpoint:
    """Tests for POST /names/mappings/bulk-approve."""

    def test_reports_each_item(self, test_client, mock_review_service):
        mock_review_service.bulk_approve.return_value = [
            BulkApproveResult(
                mapping_id=7,
                outcome=BulkOutcome.APPLIED,
                mapping=_mapping(status=MappingStatus.APPROVED, resolved_name="נועה ברק"),
            ),
            BulkApproveResult(
                mapping_id=8, outcome=BulkOutcome.CONFLICT, detail="changed"
            ),
        ]

        response = test_client.post(
            "/names/mappings/bulk-approve",
            json={
                "actor": "reviewer@example.com",
                "items": [{"mapping_id": 7}, {"mapping_id": 8, "resolved_name": "דנה"}],
            },
        )

        assert response.status_code == 200
        body = response.json()
        assert [r["outcome"] for r in body] == ["applied", "conflict"]
        assert body[0]["mapping"]["status"] == "approved"
        items = mock_review_service.bulk_approve.call_args.args[0]
        assert [(i.mapping_id, i.resolved_name) for i in items] == [(7, None), (8, "דנה")]
        assert mock_review_service.bulk_approve.call_args.kwargs == {
            "actor": "reviewer@example.com"
        }

    def test_empty_request_rejected(self, test_client, mock_review_service):
        response = test_client.post(
            "/names/mappings/bulk-approve",
            json={"actor": "reviewer@example.com", "items": []},
        )

        assert response.status_code == 422
        mock_review_service.bulk_approve.assert_not_called()


class TestBatchRunEndpoint:
    """Tests for POST /names/batch-runs."""

    def test_runs_batch(self, test_client, mock_batch_resolver):
        response = test_client.post("/names/batch-runs")

        assert response.status_code == 200
        assert response.json()["created"] == 2
        mock_batch_resolver.run.assert_called_once()

    @pytest.mark.parametrize(
        "error",
        [RosterFetchError("CRM returned 503"), TranscriptFetchError("locked")],
    )
    def test_fetch_failure_is_bad_gateway(self, test_client, mock_batch_resolver, error):
        mock_batch_resolver.run.side_effect = error

        response = test_client.post("/names/batch-runs")

        assert response.status_code == 502
