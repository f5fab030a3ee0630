"""Identity resolution schemas.

Defines data models for roster entries, transcripts, match results and
the persisted name mappings with their change history.
"""

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class RosterEntry(BaseModel):
    """Student record from the CRM roster.

    A read-only snapshot of one CRM page. The CRM owns it; entries may
    change or disappear between batch runs.
    """

    model_config = ConfigDict(frozen=True)

    external_id: str = Field(description="CRM page identifier")
    name: str = Field(description="Student display name")
    status_label: str = Field(default="", description="CRM status label")
    is_active: bool = Field(default=False, description="Currently enrolled")

    @classmethod
    def from_notion_page(
        cls,
        page: dict,
        name_property: str,
        status_property: str,
        active_statuses: set[str],
    ) -> "RosterEntry | None":
        """Parse from a Notion database query result page.

        The name is read from a title (or rich text) property and the
        status from a status (or select) property.

        Args:
            page: Page object from the Notion query response
            name_property: Property holding the student name
            status_property: Property holding the enrollment status
            active_statuses: Status labels that mark an active student

        Returns:
            RosterEntry, or None when the page has no name
        """
        properties = page.get("properties") or {}
        name_prop = properties.get(name_property) or {}
        fragments = name_prop.get("title") or name_prop.get("rich_text") or []
        name = "".join(f.get("plain_text", "") for f in fragments).strip()
        if not name:
            return None

        status_prop = properties.get(status_property) or {}
        status_value = status_prop.get("status") or status_prop.get("select") or {}
        status_label = (status_value.get("name") or "").strip()

        return cls(
            external_id=page["id"],
            name=name,
            status_label=status_label,
            is_active=status_label in active_statuses,
        )


class RosterSnapshot(BaseModel):
    """Immutable roster fetched once per batch run."""

    model_config = ConfigDict(frozen=True)

    entries: tuple[RosterEntry, ...] = Field(default=())
    fetched_at: datetime = Field(description="When the roster was fetched")

    @property
    def active_count(self) -> int:
        return sum(1 for e in self.entries if e.is_active)


class TranscriptRecord(BaseModel):
    """Lesson transcript as stored by the recording sync (read-only)."""

    id: str = Field(description="Transcript identifier")
    full_text: str = Field(default="", description="Dialogue text")
    lesson_date: date | None = Field(default=None, description="Lesson date")
    title: str | None = Field(default=None, description="Recording title")


class ExtractionSource(str, Enum):
    """Where a raw name was found."""

    CONTENT = "content"
    TITLE = "title"


class ExtractedName(BaseModel):
    """Candidate student name pulled out of a transcript."""

    raw_name: str = Field(description="Cleaned raw name")
    source: ExtractionSource = Field(description="Where it was found")


class RawNameObservation(BaseModel):
    """One sighting of a raw name in one transcript."""

    raw_name: str
    transcript_id: str
    lesson_date: date | None = None


class ObservationStats(BaseModel):
    """Observations of one raw name aggregated over all transcripts."""

    raw_name: str
    transcript_count: int = Field(default=0, ge=0)
    last_seen_at: date | None = None


class MatchOutcome(str, Enum):
    """Three-way matcher outcome consumed by the batch resolver."""

    STRONG = "strong"
    SUGGESTION = "suggestion"
    NONE = "none"


class MatchResult(BaseModel):
    """Result of matching one raw name against the roster."""

    raw_name: str = Field(description="Name as extracted from transcripts")
    best: RosterEntry | None = Field(default=None, description="Winning entry")
    score: int = Field(default=0, ge=0, le=100, description="Match score")
    rule: str = Field(default="none", description="Rule that produced the score")
    outcome: MatchOutcome = Field(default=MatchOutcome.NONE)


class ScoredCandidate(BaseModel):
    """A roster entry with its score, for review screens."""

    entry: RosterEntry
    score: int = Field(ge=0, le=100)
    rule: str


class MappingStatus(str, Enum):
    """Lifecycle state of a name mapping."""

    PENDING = "pending"
    AUTO_MATCHED = "auto_matched"
    APPROVED = "approved"
    REJECTED = "rejected"


class NameMapping(BaseModel):
    """Durable mapping from a raw transcript name to a student identity."""

    id: int
    original_name: str = Field(description="Raw name as first observed")
    resolved_name: str | None = Field(default=None, description="Canonical name")
    crm_match: str | None = Field(default=None, description="Current suggestion")
    status: MappingStatus = Field(default=MappingStatus.PENDING)
    transcript_count: int = Field(default=0, ge=0)
    last_seen_at: date | None = None
    notes: str | None = None
    updated_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class MappingHistory(BaseModel):
    """Pre-mutation values of a mapping, consumed by undo."""

    id: int
    mapping_id: int
    original_name: str | None = Field(
        default=None, description="Mapping's original name, for display"
    )
    previous_resolved_name: str | None = None
    previous_status: MappingStatus | None = None
    changed_by: str | None = None
    changed_at: datetime | None = None


class MappingStats(BaseModel):
    """Row counts per mapping status."""

    total: int = 0
    pending: int = 0
    auto_matched: int = 0
    approved: int = 0
    rejected: int = 0


class BatchRunSummary(BaseModel):
    """What a batch resolver run did."""

    transcripts_scanned: int = 0
    unattributed_transcripts: int = 0
    roster_size: int = 0
    names_observed: int = 0
    created: int = 0
    auto_matched: int = 0
    suggested: int = 0
    unmatched: int = 0
    rejected: int = 0
    protected: int = 0
    conflicts: int = 0
    failed: int = 0
    failed_names: list[str] = Field(default_factory=list)


class BulkOutcome(str, Enum):
    """Per-item result of a bulk review operation."""

    APPLIED = "applied"
    CONFLICT = "conflict"
    INVALID = "invalid"
    NOT_FOUND = "not_found"


class BulkApproveItem(BaseModel):
    """One mapping to approve in a bulk request."""

    mapping_id: int
    resolved_name: str | None = Field(
        default=None, description="Name to approve; defaults to the suggestion"
    )


class BulkApproveResult(BaseModel):
    """What happened to one item of a bulk approve."""

    mapping_id: int
    outcome: BulkOutcome
    detail: str | None = None
    mapping: NameMapping | None = None
