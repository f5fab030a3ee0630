"""Allowed status transitions for name mappings.

Automated writes (batch resolver) may only move rows that no human has
decided on. Human writes (review workflow) may revisit any row. Undo
restores recorded history and is not checked against these tables.
"""

from name_resolution.identity.errors import InvalidTransitionError
from name_resolution.identity.schemas import MappingStatus

PENDING = MappingStatus.PENDING
AUTO_MATCHED = MappingStatus.AUTO_MATCHED
APPROVED = MappingStatus.APPROVED
REJECTED = MappingStatus.REJECTED

# Statuses the batch resolver may re-score
AUTOMATABLE_STATUSES: frozenset[MappingStatus] = frozenset({PENDING, AUTO_MATCHED})

# Statuses that carry a resolved_name
RESOLVED_STATUSES: frozenset[MappingStatus] = frozenset({APPROVED, AUTO_MATCHED})

AUTOMATED_TRANSITIONS: dict[MappingStatus, frozenset[MappingStatus]] = {
    PENDING: frozenset({PENDING, AUTO_MATCHED, REJECTED}),
    AUTO_MATCHED: frozenset({AUTO_MATCHED, PENDING, REJECTED}),
    APPROVED: frozenset(),
    REJECTED: frozenset(),
}

HUMAN_TRANSITIONS: dict[MappingStatus, frozenset[MappingStatus]] = {
    PENDING: frozenset({APPROVED, REJECTED}),
    AUTO_MATCHED: frozenset({APPROVED, REJECTED, PENDING}),
    APPROVED: frozenset({APPROVED, REJECTED, PENDING}),
    REJECTED: frozenset({APPROVED, REJECTED, PENDING}),
}


def can_transition(
    current: MappingStatus, target: MappingStatus, *, automated: bool
) -> bool:
    table = AUTOMATED_TRANSITIONS if automated else HUMAN_TRANSITIONS
    return target in table[current]


def check_transition(
    current: MappingStatus, target: MappingStatus, *, automated: bool
) -> None:
    """Raise InvalidTransitionError if current -> target is not allowed."""
    if not can_transition(current, target, automated=automated):
        actor = "automated" if automated else "manual"
        raise InvalidTransitionError(
            f"{actor} transition {current.value} -> {target.value} is not allowed"
        )


def check_resolved_name(status: MappingStatus, resolved_name: str | None) -> None:
    """Enforce: resolved_name is set iff the status is approved/auto_matched."""
    has_name = bool(resolved_name and resolved_name.strip())
    if (status in RESOLVED_STATUSES) != has_name:
        if has_name:
            raise InvalidTransitionError(
                f"status {status.value} must not carry a resolved name"
            )
        raise InvalidTransitionError(f"status {status.value} requires a resolved name")
