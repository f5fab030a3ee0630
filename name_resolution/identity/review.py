"""Human review workflow for name mappings.

Approve (one at a time or in bulk), reject, edit, reopen and undo. Each
operation is a single guarded write through the resolution store, so a
failed operation leaves neither a history row nor a state change behind.
"""

import structlog

from name_resolution.identity.errors import (
    InvalidTransitionError,
    MappingNotFoundError,
    WriteConflictError,
)
from name_resolution.identity.schemas import (
    BulkApproveItem,
    BulkApproveResult,
    BulkOutcome,
    MappingHistory,
    MappingStatus,
    NameMapping,
)
from name_resolution.identity.state_machine import (
    check_resolved_name,
    check_transition,
)
from name_resolution.repositories.mapping_repo import MappingRepository

logger = structlog.get_logger()

DEFAULT_REJECT_REASON = "rejected: not a real student"


class ReviewService:
    """Reviewer operations over the mapping repository."""

    def __init__(self, mapping_repo: MappingRepository):
        self._mappings = mapping_repo

    async def get_mapping(self, mapping_id: int) -> NameMapping:
        mapping = await self._mappings.get_by_id(mapping_id)
        if mapping is None:
            raise MappingNotFoundError(f"mapping {mapping_id} not found")
        return mapping

    async def approve(
        self,
        mapping_id: int,
        actor: str,
        resolved_name: str | None = None,
        notes: str | None = None,
    ) -> NameMapping:
        """Approve a mapping.

        Args:
            mapping_id: Mapping to approve
            actor: Reviewer identity
            resolved_name: Name to approve; defaults to the current
                suggestion (crm_match) or resolved name
            notes: Optional note replacing the current one

        Returns:
            The updated mapping
        """
        mapping = await self.get_mapping(mapping_id)
        name = resolved_name or mapping.crm_match or mapping.resolved_name
        if not name:
            raise InvalidTransitionError(
                f"mapping {mapping_id} has no suggestion; provide a resolved name"
            )
        return await self._apply(
            mapping, MappingStatus.APPROVED, name.strip(), actor, notes=notes
        )

    async def reject(
        self, mapping_id: int, actor: str, reason: str | None = None
    ) -> NameMapping:
        """Mark a mapping as not a real student and clear its resolved name."""
        mapping = await self.get_mapping(mapping_id)
        return await self._apply(
            mapping,
            MappingStatus.REJECTED,
            None,
            actor,
            notes=reason or DEFAULT_REJECT_REASON,
        )

    async def edit(self, mapping_id: int, actor: str, resolved_name: str) -> NameMapping:
        """Set an arbitrary resolved name; no prior suggestion is required."""
        mapping = await self.get_mapping(mapping_id)
        return await self._apply(
            mapping,
            MappingStatus.APPROVED,
            resolved_name.strip(),
            actor,
            notes=f"edited by {actor}",
        )

    async def reopen(self, mapping_id: int, actor: str) -> NameMapping:
        """Send a decided or auto-matched mapping back to pending review."""
        mapping = await self.get_mapping(mapping_id)
        return await self._apply(mapping, MappingStatus.PENDING, None, actor)

    async def undo(self, mapping_id: int, actor: str) -> NameMapping:
        """Restore the mapping's previous state from its newest history row.

        Raises:
            NothingToUndoError: No unconsumed history for this mapping
        """
        _require_actor(actor)
        await self.get_mapping(mapping_id)
        consumed = await self._mappings.undo_latest(mapping_id, changed_by=actor)
        logger.info(
            "Mapping change undone",
            mapping_id=mapping_id,
            history_id=consumed.id,
            restored_status=consumed.previous_status,
            actor=actor,
        )
        return await self.get_mapping(mapping_id)

    async def bulk_approve(
        self, items: list[BulkApproveItem], actor: str
    ) -> list[BulkApproveResult]:
        """Approve several mappings, each as its own guarded write.

        One item failing does not stop the others; every item gets a
        result in request order.
        """
        _require_actor(actor)
        results = []
        for item in items:
            mapping, detail = None, None
            try:
                mapping = await self.approve(
                    item.mapping_id, actor, resolved_name=item.resolved_name
                )
                outcome = BulkOutcome.APPLIED
            except MappingNotFoundError as e:
                outcome, detail = BulkOutcome.NOT_FOUND, str(e)
            except WriteConflictError as e:
                outcome, detail = BulkOutcome.CONFLICT, str(e)
            except (InvalidTransitionError, ValueError) as e:
                outcome, detail = BulkOutcome.INVALID, str(e)
            results.append(
                BulkApproveResult(
                    mapping_id=item.mapping_id,
                    outcome=outcome,
                    detail=detail,
                    mapping=mapping,
                )
            )

        logger.info(
            "Bulk approve finished",
            actor=actor,
            requested=len(items),
            applied=sum(r.outcome == BulkOutcome.APPLIED for r in results),
        )
        return results

    async def recent_history(self, limit: int = 10) -> list[MappingHistory]:
        return await self._mappings.list_recent_history(limit)

    async def mapping_history(self, mapping_id: int) -> list[MappingHistory]:
        """Unconsumed history of one mapping, newest first."""
        await self.get_mapping(mapping_id)
        return await self._mappings.list_history(mapping_id)

    async def _apply(
        self,
        mapping: NameMapping,
        status: MappingStatus,
        resolved_name: str | None,
        actor: str,
        notes: str | None = None,
    ) -> NameMapping:
        _require_actor(actor)
        check_transition(mapping.status, status, automated=False)
        check_resolved_name(status, resolved_name)

        kwargs = {"notes": notes} if notes is not None else {}
        applied = await self._mappings.write_transition(
            mapping.original_name,
            status=status,
            resolved_name=resolved_name,
            changed_by=actor,
            from_statuses=frozenset({mapping.status}),
            **kwargs,
        )
        if not applied:
            raise WriteConflictError(
                f"mapping {mapping.id} changed while being updated; reload and retry"
            )

        logger.info(
            "Mapping reviewed",
            mapping_id=mapping.id,
            original_name=mapping.original_name,
            from_status=mapping.status.value,
            to_status=status.value,
            actor=actor,
        )
        return await self.get_mapping(mapping.id)


def _require_actor(actor: str) -> None:
    if not actor or not actor.strip():
        raise ValueError("actor is required")
