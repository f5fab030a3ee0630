"""BatchResolver reconciles transcript names with the CRM roster.

Run pipeline:
1. Fetch transcripts and the roster snapshot (any failure aborts the run
   before a single write)
2. Extract one raw name per transcript and aggregate observations
3. For each distinct raw name, refresh counts and, unless a human has
   already decided, re-score it: blacklist -> rejected, otherwise the
   roster matcher's outcome maps to auto_matched / suggestion / no match

Re-running with unchanged inputs reproduces the same rows.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Protocol

import structlog

from name_resolution.identity.blacklist import BLACKLIST_NOTE, NameBlacklist
from name_resolution.identity.extractor import NameExtractor
from name_resolution.identity.roster_matcher import RosterMatcher
from name_resolution.identity.schemas import (
    BatchRunSummary,
    MappingStatus,
    MatchOutcome,
    NameMapping,
    ObservationStats,
    RawNameObservation,
    RosterEntry,
    RosterSnapshot,
    TranscriptRecord,
)
from name_resolution.identity.state_machine import (
    AUTOMATABLE_STATUSES,
    check_transition,
)
from name_resolution.repositories.mapping_repo import MappingRepository

logger = structlog.get_logger()


class RosterSource(Protocol):
    async def fetch_roster(self) -> RosterSnapshot: ...


class TranscriptSource(Protocol):
    async def list_transcripts(self) -> list[TranscriptRecord]: ...


@dataclass(frozen=True)
class Decision:
    """Target state for one raw name."""

    status: MappingStatus
    resolved_name: str | None
    crm_match: str | None
    notes: str | None
    outcome: str  # auto_matched | suggested | unmatched | rejected


def aggregate_observations(
    observations: Iterable[RawNameObservation],
) -> dict[str, ObservationStats]:
    """Count transcripts and latest lesson date per distinct raw name."""
    stats: dict[str, ObservationStats] = {}
    for obs in observations:
        entry = stats.setdefault(obs.raw_name, ObservationStats(raw_name=obs.raw_name))
        entry.transcript_count += 1
        if obs.lesson_date and (
            entry.last_seen_at is None or obs.lesson_date > entry.last_seen_at
        ):
            entry.last_seen_at = obs.lesson_date
    return stats


class BatchResolver:
    """Orchestrates a full resolution pass over all transcripts."""

    def __init__(
        self,
        extractor: NameExtractor,
        matcher: RosterMatcher,
        blacklist: NameBlacklist,
        mapping_repo: MappingRepository,
        roster_source: RosterSource,
        transcript_source: TranscriptSource,
        actor: str = "system:batch-resolver",
    ):
        """Initialize resolver with its collaborators.

        Args:
            extractor: Pulls raw names out of transcripts
            matcher: Scores raw names against the roster
            blacklist: Names rejected without matching
            mapping_repo: Resolution store
            roster_source: CRM roster adapter
            transcript_source: Read-only transcript store
            actor: Identity recorded on automated writes
        """
        self._extractor = extractor
        self._matcher = matcher
        self._blacklist = blacklist
        self._mappings = mapping_repo
        self._roster_source = roster_source
        self._transcripts = transcript_source
        self._actor = actor

    def collect_observations(
        self, transcripts: Iterable[TranscriptRecord]
    ) -> tuple[list[RawNameObservation], int]:
        """Extract raw names from transcripts.

        Returns:
            (observations, number of transcripts with no name found)
        """
        observations: list[RawNameObservation] = []
        unattributed = 0
        for transcript in transcripts:
            extracted = self._extractor.extract(transcript)
            if extracted is None:
                unattributed += 1
                continue
            observations.append(
                RawNameObservation(
                    raw_name=extracted.raw_name,
                    transcript_id=transcript.id,
                    lesson_date=transcript.lesson_date,
                )
            )
        return observations, unattributed

    def decide(self, raw_name: str, roster: Sequence[RosterEntry]) -> Decision:
        """Compute the target state for a raw name.

        A suggestion is never promoted to a resolved name: only strong
        matches set ``resolved_name``.
        """
        if self._blacklist.is_blocked(raw_name):
            return Decision(
                status=MappingStatus.REJECTED,
                resolved_name=None,
                crm_match=None,
                notes=BLACKLIST_NOTE,
                outcome="rejected",
            )

        result = self._matcher.match(raw_name, roster)
        if result.best is None or result.outcome == MatchOutcome.NONE:
            return Decision(
                status=MappingStatus.PENDING,
                resolved_name=None,
                crm_match=None,
                notes=None,
                outcome="unmatched",
            )

        if result.outcome == MatchOutcome.STRONG:
            notes = f"auto-match {result.score}%, rule={result.rule}"
            if result.best.status_label:
                notes += f", crm status={result.best.status_label}"
            return Decision(
                status=MappingStatus.AUTO_MATCHED,
                resolved_name=result.best.name,
                crm_match=result.best.name,
                notes=notes,
                outcome="auto_matched",
            )

        return Decision(
            status=MappingStatus.PENDING,
            resolved_name=None,
            crm_match=result.best.name,
            notes=f"suggestion {result.score}%, rule={result.rule}",
            outcome="suggested",
        )

    async def run(self) -> BatchRunSummary:
        """Run one full resolution pass.

        Returns:
            Summary of what the run did

        Raises:
            TranscriptFetchError: Transcript store unreachable (no writes)
            RosterFetchError: CRM unreachable (no writes)
        """
        transcripts = await self._transcripts.list_transcripts()
        snapshot = await self._roster_source.fetch_roster()
        roster = snapshot.entries

        observations, unattributed = self.collect_observations(transcripts)
        stats = aggregate_observations(observations)
        existing = await self._mappings.get_all()

        summary = BatchRunSummary(
            transcripts_scanned=len(transcripts),
            unattributed_transcripts=unattributed,
            roster_size=len(roster),
            names_observed=len(stats),
        )
        logger.info(
            "Batch resolver run started",
            transcripts=len(transcripts),
            unattributed=unattributed,
            names=len(stats),
            roster=len(roster),
        )

        ordered = sorted(stats.values(), key=lambda s: (-s.transcript_count, s.raw_name))
        for observed in ordered:
            try:
                await self._resolve_one(
                    observed, existing.get(observed.raw_name), roster, summary
                )
            except Exception:
                logger.exception("Failed to resolve name", raw_name=observed.raw_name)
                summary.failed += 1
                summary.failed_names.append(observed.raw_name)

        logger.info(
            "Batch resolver run complete",
            **summary.model_dump(exclude={"failed_names"}),
        )
        return summary

    async def _resolve_one(
        self,
        observed: ObservationStats,
        mapping: NameMapping | None,
        roster: Sequence[RosterEntry],
        summary: BatchRunSummary,
    ) -> None:
        name = observed.raw_name

        if mapping is not None and mapping.status not in AUTOMATABLE_STATUSES:
            await self._mappings.update_observations(
                name, observed.transcript_count, observed.last_seen_at
            )
            summary.protected += 1
            return

        decision = self.decide(name, roster)

        if mapping is None:
            created = await self._mappings.create_mapping(
                name,
                status=decision.status,
                resolved_name=decision.resolved_name,
                crm_match=decision.crm_match,
                notes=decision.notes,
                transcript_count=observed.transcript_count,
                last_seen_at=observed.last_seen_at,
                updated_by=self._actor,
            )
            if created:
                summary.created += 1
                self._count(decision, summary)
                return
            # Created concurrently; fall through to the update path
        else:
            check_transition(mapping.status, decision.status, automated=True)

        applied = await self._mappings.write_transition(
            name,
            status=decision.status,
            resolved_name=decision.resolved_name,
            changed_by=self._actor,
            from_statuses=AUTOMATABLE_STATUSES,
            crm_match=decision.crm_match,
            notes=decision.notes,
            observed=(observed.transcript_count, observed.last_seen_at),
        )
        if not applied:
            # A reviewer decided on this row during the run; it is protected now
            logger.info("Skipped name changed during run", raw_name=name)
            await self._mappings.update_observations(
                name, observed.transcript_count, observed.last_seen_at
            )
            summary.conflicts += 1
            return
        self._count(decision, summary)

    @staticmethod
    def _count(decision: Decision, summary: BatchRunSummary) -> None:
        if decision.outcome == "auto_matched":
            summary.auto_matched += 1
        elif decision.outcome == "suggested":
            summary.suggested += 1
        elif decision.outcome == "rejected":
            summary.rejected += 1
        else:
            summary.unmatched += 1
