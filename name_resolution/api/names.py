"""Student name resolution API endpoints.

Provides the resolved-name lookup for downstream consumers, review
screens (mappings sorted by how often they were seen, recent history for
undo), the human review workflow, and on-demand batch runs.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field, StringConstraints

from name_resolution.adapters.notion_roster_adapter import (
    NotionRosterAdapter,
    RosterFetchError,
)
from name_resolution.identity.errors import (
    InvalidTransitionError,
    MappingError,
    MappingNotFoundError,
    WriteConflictError,
)
from name_resolution.identity.fuzzy_matcher import FuzzyMatcher
from name_resolution.identity.resolver import BatchResolver
from name_resolution.identity.review import ReviewService
from name_resolution.identity.roster_matcher import RosterMatcher
from name_resolution.identity.schemas import (
    BatchRunSummary,
    BulkApproveItem,
    BulkApproveResult,
    MappingHistory,
    MappingStats,
    MappingStatus,
    NameMapping,
)
from name_resolution.repositories.mapping_repo import MappingRepository
from name_resolution.repositories.transcript_repo import TranscriptFetchError

router = APIRouter(prefix="/names", tags=["names"])

NonBlankStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class ActorRequest(BaseModel):
    """Request carrying the reviewer identity."""

    actor: NonBlankStr = Field(description="Reviewer identity")


class ApproveRequest(ActorRequest):
    """Request to approve a mapping."""

    resolved_name: NonBlankStr | None = Field(
        default=None,
        description="Name to approve; defaults to the current suggestion",
    )
    notes: str | None = Field(default=None, description="Optional review note")


class RejectRequest(ActorRequest):
    """Request to reject a mapping."""

    reason: str | None = Field(default=None, description="Why this is not a student")


class EditRequest(ActorRequest):
    """Request to set an arbitrary resolved name."""

    resolved_name: NonBlankStr = Field(description="Canonical student name")


class BulkApproveEntry(BaseModel):
    """One item of a bulk approve request."""

    mapping_id: int
    resolved_name: NonBlankStr | None = None


class BulkApproveRequest(ActorRequest):
    """Request to approve many mappings at once."""

    items: list[BulkApproveEntry] = Field(min_length=1, max_length=500)


class RosterCandidate(BaseModel):
    """One roster alternative for a mapping."""

    external_id: str
    name: str
    status_label: str
    is_active: bool
    score: float = Field(description="Rule score (0-100) or fuzzy similarity (0-1)")
    method: str = Field(description="Rule name, or 'fuzzy'")


class CandidatesResponse(BaseModel):
    """Roster alternatives for review."""

    original_name: str
    rule_matches: list[RosterCandidate]
    fuzzy_matches: list[RosterCandidate]


def get_mapping_repo(request: Request) -> MappingRepository:
    """Dependency to get MappingRepository from app state."""
    return request.app.state.mapping_repo


def get_review_service(request: Request) -> ReviewService:
    """Dependency to get ReviewService from app state."""
    return request.app.state.review_service


def get_batch_resolver(request: Request) -> BatchResolver:
    """Dependency to get BatchResolver from app state."""
    return request.app.state.batch_resolver


def get_roster_adapter(request: Request) -> NotionRosterAdapter:
    """Dependency to get the CRM roster adapter from app state."""
    return request.app.state.roster_adapter


def get_roster_matcher(request: Request) -> RosterMatcher:
    """Dependency to get RosterMatcher from app state."""
    return request.app.state.roster_matcher


def get_fuzzy_matcher(request: Request) -> FuzzyMatcher:
    """Dependency to get FuzzyMatcher from app state."""
    return request.app.state.fuzzy_matcher


def _to_http_error(error: Exception) -> HTTPException:
    """Translate domain errors into HTTP responses."""
    if isinstance(error, MappingNotFoundError):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, (InvalidTransitionError, WriteConflictError)):
        return HTTPException(status_code=409, detail=str(error))
    if isinstance(error, ValueError):
        return HTTPException(status_code=422, detail=str(error))
    return HTTPException(status_code=500, detail=str(error))


@router.get("/lookup", response_model=dict[str, str])
async def get_resolved_lookup(
    repo: MappingRepository = Depends(get_mapping_repo),
) -> dict[str, str]:
    """Map original transcript names to resolved student names.

    Only approved and auto-matched mappings are included. A name missing
    from the result is not resolved yet.
    """
    return await repo.get_resolved_lookup()


@router.get("/mappings", response_model=list[NameMapping])
async def list_mappings(
    status: MappingStatus | None = None,
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    repo: MappingRepository = Depends(get_mapping_repo),
) -> list[NameMapping]:
    """List mappings, most observed first, optionally filtered by status."""
    return await repo.list_mappings(status=status, limit=limit, offset=offset)


@router.get("/mappings/stats", response_model=MappingStats)
async def get_mapping_stats(
    repo: MappingRepository = Depends(get_mapping_repo),
) -> MappingStats:
    """Count mappings per status."""
    return await repo.get_stats()


@router.get("/mappings/{mapping_id}", response_model=NameMapping)
async def get_mapping(
    mapping_id: int,
    review: ReviewService = Depends(get_review_service),
) -> NameMapping:
    """Get one mapping with its full state."""
    try:
        return await review.get_mapping(mapping_id)
    except MappingError as e:
        raise _to_http_error(e) from e


@router.get("/mappings/{mapping_id}/candidates", response_model=CandidatesResponse)
async def get_mapping_candidates(
    mapping_id: int,
    limit: int = Query(default=5, ge=1, le=20),
    review: ReviewService = Depends(get_review_service),
    roster_adapter: NotionRosterAdapter = Depends(get_roster_adapter),
    matcher: RosterMatcher = Depends(get_roster_matcher),
    fuzzy: FuzzyMatcher = Depends(get_fuzzy_matcher),
) -> CandidatesResponse:
    """Rank roster entries for a mapping to help the reviewer decide.

    Returns both rule-ladder candidates and fuzzy alternatives; the
    latter catch typos the rules do not cover.
    """
    try:
        mapping = await review.get_mapping(mapping_id)
    except MappingError as e:
        raise _to_http_error(e) from e

    try:
        snapshot = await roster_adapter.fetch_roster()
    except RosterFetchError as e:
        raise HTTPException(status_code=502, detail=str(e)) from e

    ranked = matcher.rank(mapping.original_name, snapshot.entries, limit=limit)
    fuzzy_ranked = fuzzy.find_top_matches(
        mapping.original_name, snapshot.entries, limit=limit
    )
    return CandidatesResponse(
        original_name=mapping.original_name,
        rule_matches=[
            RosterCandidate(
                external_id=c.entry.external_id,
                name=c.entry.name,
                status_label=c.entry.status_label,
                is_active=c.entry.is_active,
                score=c.score,
                method=c.rule,
            )
            for c in ranked
        ],
        fuzzy_matches=[
            RosterCandidate(
                external_id=entry.external_id,
                name=entry.name,
                status_label=entry.status_label,
                is_active=entry.is_active,
                score=score,
                method="fuzzy",
            )
            for entry, score in fuzzy_ranked
        ],
    )


@router.get("/history", response_model=list[MappingHistory])
async def get_recent_history(
    limit: int = Query(default=10, ge=1, le=100),
    review: ReviewService = Depends(get_review_service),
) -> list[MappingHistory]:
    """Most recent mapping changes, newest first (for "undo last change")."""
    return await review.recent_history(limit)


@router.get("/mappings/{mapping_id}/history", response_model=list[MappingHistory])
async def get_mapping_history(
    mapping_id: int,
    review: ReviewService = Depends(get_review_service),
) -> list[MappingHistory]:
    """Undoable changes of one mapping, newest first."""
    try:
        return await review.mapping_history(mapping_id)
    except MappingError as e:
        raise _to_http_error(e) from e


@router.post("/mappings/bulk-approve", response_model=list[BulkApproveResult])
async def bulk_approve_mappings(
    request: BulkApproveRequest,
    review: ReviewService = Depends(get_review_service),
) -> list[BulkApproveResult]:
    """Approve many mappings at once, usually accepting their suggestions.

    Each item is applied on its own; the response reports per item whether
    it was applied, hit a conflict, was invalid or was not found.
    """
    items = [
        BulkApproveItem(mapping_id=entry.mapping_id, resolved_name=entry.resolved_name)
        for entry in request.items
    ]
    try:
        return await review.bulk_approve(items, actor=request.actor)
    except ValueError as e:
        raise _to_http_error(e) from e


@router.post("/mappings/{mapping_id}/approve", response_model=NameMapping)
async def approve_mapping(
    mapping_id: int,
    request: ApproveRequest,
    review: ReviewService = Depends(get_review_service),
) -> NameMapping:
    """Approve a mapping, by default accepting the current suggestion."""
    try:
        return await review.approve(
            mapping_id,
            actor=request.actor,
            resolved_name=request.resolved_name,
            notes=request.notes,
        )
    except (MappingError, ValueError) as e:
        raise _to_http_error(e) from e


@router.post("/mappings/{mapping_id}/reject", response_model=NameMapping)
async def reject_mapping(
    mapping_id: int,
    request: RejectRequest,
    review: ReviewService = Depends(get_review_service),
) -> NameMapping:
    """Mark a mapping as not a real student."""
    try:
        return await review.reject(mapping_id, actor=request.actor, reason=request.reason)
    except (MappingError, ValueError) as e:
        raise _to_http_error(e) from e


@router.post("/mappings/{mapping_id}/edit", response_model=NameMapping)
async def edit_mapping(
    mapping_id: int,
    request: EditRequest,
    review: ReviewService = Depends(get_review_service),
) -> NameMapping:
    """Set the resolved name by hand."""
    try:
        return await review.edit(
            mapping_id, actor=request.actor, resolved_name=request.resolved_name
        )
    except (MappingError, ValueError) as e:
        raise _to_http_error(e) from e


@router.post("/mappings/{mapping_id}/reopen", response_model=NameMapping)
async def reopen_mapping(
    mapping_id: int,
    request: ActorRequest,
    review: ReviewService = Depends(get_review_service),
) -> NameMapping:
    """Send a mapping back to pending review."""
    try:
        return await review.reopen(mapping_id, actor=request.actor)
    except (MappingError, ValueError) as e:
        raise _to_http_error(e) from e


@router.post("/mappings/{mapping_id}/undo", response_model=NameMapping)
async def undo_mapping(
    mapping_id: int,
    request: ActorRequest,
    review: ReviewService = Depends(get_review_service),
) -> NameMapping:
    """Undo the most recent change to a mapping.

    Returns 409 when there is nothing to undo.
    """
    try:
        return await review.undo(mapping_id, actor=request.actor)
    except (MappingError, ValueError) as e:
        raise _to_http_error(e) from e


@router.post("/batch-runs", response_model=BatchRunSummary)
async def run_batch(
    resolver: BatchResolver = Depends(get_batch_resolver),
) -> BatchRunSummary:
    """Run the batch resolver now.

    Returns 502 if the CRM or the transcript store cannot be read; no
    mapping is modified in that case.
    """
    try:
        return await resolver.run()
    except (RosterFetchError, TranscriptFetchError) as e:
        raise HTTPException(status_code=502, detail=str(e)) from e
