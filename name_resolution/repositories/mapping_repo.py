"""Repository for student name mappings and their change history.

One row per distinct raw name (``original_name``) plus an append-only
history table that makes every status/name change undoable. Uses SQLite
(via TursoClient) for persistence.
"""

from datetime import date
from typing import Any

from libsql_client import ResultSet

from name_resolution.db.turso import TursoClient
from name_resolution.identity.errors import NothingToUndoError
from name_resolution.identity.schemas import (
    MappingHistory,
    MappingStats,
    MappingStatus,
    NameMapping,
)

_UNSET: Any = object()

_MAPPING_COLUMNS = (
    "id",
    "original_name",
    "resolved_name",
    "crm_match",
    "status",
    "transcript_count",
    "last_seen_at",
    "notes",
    "updated_by",
    "created_at",
    "updated_at",
)
_MAPPING_SELECT = f"SELECT {', '.join(_MAPPING_COLUMNS)} FROM name_mappings"

_HISTORY_SELECT = """
    SELECT h.id, h.mapping_id, m.original_name, h.previous_resolved_name,
           h.previous_status, h.changed_by, h.changed_at
    FROM name_mapping_history h
    LEFT JOIN name_mappings m ON m.id = h.mapping_id
"""


def _row_to_mapping(row: Any) -> NameMapping:
    return NameMapping.model_validate(
        {column: row[i] for i, column in enumerate(_MAPPING_COLUMNS)}
    )


def _row_to_history(row: Any) -> MappingHistory:
    return MappingHistory(
        id=row[0],
        mapping_id=row[1],
        original_name=row[2],
        previous_resolved_name=row[3],
        previous_status=row[4],
        changed_by=row[5],
        changed_at=row[6],
    )


def _iso(value: date | None) -> str | None:
    return value.isoformat() if value else None


class MappingRepository:
    """Repository for name mappings and mapping history.

    Every write that changes ``resolved_name`` or ``status`` of an
    existing row records the previous values first, in the same
    transaction, and is guarded by the statuses the change may start
    from. If the row moved on in the meantime nothing is written.
    """

    def __init__(self, db_client: TursoClient):
        """Initialize repository with database client.

        Args:
            db_client: TursoClient instance for database operations
        """
        self._db = db_client

    async def initialize(self) -> None:
        """Create mapping and history tables if not exists."""
        await self._db.execute_batch(
            [
                """
            CREATE TABLE IF NOT EXISTS name_mappings (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                original_name TEXT NOT NULL UNIQUE,
                resolved_name TEXT,
                crm_match TEXT,
                status TEXT NOT NULL DEFAULT 'pending'
                    CHECK (status IN ('pending', 'auto_matched', 'approved', 'rejected')),
                transcript_count INTEGER NOT NULL DEFAULT 0,
                last_seen_at TEXT,
                notes TEXT,
                updated_by TEXT,
                created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                CHECK (
                    (status IN ('approved', 'auto_matched'))
                    = (resolved_name IS NOT NULL)
                )
            )
            """,
                """
            CREATE INDEX IF NOT EXISTS idx_name_mappings_count
            ON name_mappings(transcript_count DESC)
            """,
                """
            CREATE TABLE IF NOT EXISTS name_mapping_history (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                mapping_id INTEGER NOT NULL REFERENCES name_mappings(id),
                previous_resolved_name TEXT,
                previous_status TEXT,
                changed_by TEXT,
                changed_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
            )
            """,
                """
            CREATE INDEX IF NOT EXISTS idx_mapping_history_mapping
            ON name_mapping_history(mapping_id, id)
            """,
            ]
        )

    async def get_by_id(self, mapping_id: int) -> NameMapping | None:
        result = await self._db.execute(f"{_MAPPING_SELECT} WHERE id = ?", [mapping_id])
        return _row_to_mapping(result.rows[0]) if result.rows else None

    async def get_by_name(self, original_name: str) -> NameMapping | None:
        result = await self._db.execute(
            f"{_MAPPING_SELECT} WHERE original_name = ?", [original_name]
        )
        return _row_to_mapping(result.rows[0]) if result.rows else None

    async def get_all(self) -> dict[str, NameMapping]:
        """Get every mapping keyed by original_name."""
        result = await self._db.execute(_MAPPING_SELECT)
        mappings = [_row_to_mapping(row) for row in result.rows]
        return {m.original_name: m for m in mappings}

    async def list_mappings(
        self,
        status: MappingStatus | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[NameMapping]:
        """List mappings for review, most observed first.

        Args:
            status: Optional status filter
            limit: Page size
            offset: Rows to skip

        Returns:
            Mappings sorted by transcript_count descending, then name
        """
        where = "WHERE status = ?" if status else ""
        params: list[Any] = [status.value] if status else []
        result = await self._db.execute(
            f"""
            {_MAPPING_SELECT} {where}
            ORDER BY transcript_count DESC, original_name
            LIMIT ? OFFSET ?
            """,
            [*params, limit, offset],
        )
        return [_row_to_mapping(row) for row in result.rows]

    async def get_resolved_lookup(self) -> dict[str, str]:
        """Map original_name -> resolved_name for approved/auto-matched rows.

        A missing key means "not resolved yet", not an error.
        """
        result = await self._db.execute(
            """
            SELECT original_name, resolved_name
            FROM name_mappings
            WHERE status IN ('approved', 'auto_matched')
              AND resolved_name IS NOT NULL
            """
        )
        return {row[0]: row[1] for row in result.rows}

    async def get_stats(self) -> MappingStats:
        result = await self._db.execute(
            "SELECT status, COUNT(*) FROM name_mappings GROUP BY status"
        )
        counts = {row[0]: row[1] for row in result.rows}
        return MappingStats(total=sum(counts.values()), **counts)

    async def create_mapping(
        self,
        original_name: str,
        *,
        status: MappingStatus = MappingStatus.PENDING,
        resolved_name: str | None = None,
        crm_match: str | None = None,
        notes: str | None = None,
        transcript_count: int = 0,
        last_seen_at: date | None = None,
        updated_by: str | None = None,
    ) -> bool:
        """Insert a mapping for a newly observed raw name.

        Creation is not a mutation of an existing row, so no history is
        written.

        Returns:
            True if the row was created, False if it already existed
        """
        result = await self._db.execute(
            """
            INSERT INTO name_mappings
                (original_name, resolved_name, crm_match, status,
                 transcript_count, last_seen_at, notes, updated_by)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(original_name) DO NOTHING
            """,
            [
                original_name,
                resolved_name,
                crm_match,
                status.value,
                transcript_count,
                _iso(last_seen_at),
                notes,
                updated_by,
            ],
        )
        return result.rows_affected > 0

    async def update_observations(
        self,
        original_name: str,
        transcript_count: int,
        last_seen_at: date | None,
    ) -> None:
        """Refresh aggregated observation counts (not a status change)."""
        await self._db.execute(
            """
            UPDATE name_mappings
            SET transcript_count = ?, last_seen_at = ?
            WHERE original_name = ?
            """,
            [transcript_count, _iso(last_seen_at), original_name],
        )

    async def write_transition(
        self,
        original_name: str,
        *,
        status: MappingStatus,
        resolved_name: str | None,
        changed_by: str,
        from_statuses: frozenset[MappingStatus],
        crm_match: str | None = _UNSET,
        notes: str | None = _UNSET,
        observed: tuple[int, date | None] | None = None,
    ) -> bool:
        """Apply a status/name change, recording history first.

        History is written only when ``resolved_name`` or ``status``
        actually changes. Both statements run in one transaction and share
        the same guard, so either both apply or neither does.

        Args:
            original_name: Mapping key
            status: New status
            resolved_name: New resolved name (None clears it)
            changed_by: Actor identity, stored as updated_by/changed_by
            from_statuses: Statuses the row must currently have
            crm_match: New suggestion; left untouched when omitted
            notes: New notes; left untouched when omitted
            observed: Optional (transcript_count, last_seen_at) refreshed
                under the same guard as the status change

        Returns:
            True if the row was updated, False if it is missing or its
            status is no longer one of ``from_statuses``
        """
        if not from_statuses:
            raise ValueError("from_statuses must not be empty")

        sources = sorted(s.value for s in from_statuses)
        guard = f"original_name = ? AND status IN ({', '.join('?' for _ in sources)})"

        history_sql = f"""
            INSERT INTO name_mapping_history
                (mapping_id, previous_resolved_name, previous_status, changed_by)
            SELECT id, resolved_name, status, ?
            FROM name_mappings
            WHERE {guard}
              AND (resolved_name IS NOT ? OR status IS NOT ?)
        """
        history_params = [changed_by, original_name, *sources, resolved_name, status.value]

        assignments = [
            "resolved_name = ?",
            "status = ?",
            "updated_by = ?",
            "updated_at = CURRENT_TIMESTAMP",
        ]
        params: list[Any] = [resolved_name, status.value, changed_by]
        if crm_match is not _UNSET:
            assignments.append("crm_match = ?")
            params.append(crm_match)
        if notes is not _UNSET:
            assignments.append("notes = ?")
            params.append(notes)
        if observed is not None:
            assignments.extend(["transcript_count = ?", "last_seen_at = ?"])
            params.extend([observed[0], _iso(observed[1])])

        update_sql = f"UPDATE name_mappings SET {', '.join(assignments)} WHERE {guard}"

        results: list[ResultSet] = await self._db.execute_batch(
            [
                (history_sql, history_params),
                (update_sql, [*params, original_name, *sources]),
            ]
        )
        return results[-1].rows_affected > 0

    async def get_latest_history(self, mapping_id: int) -> MappingHistory | None:
        result = await self._db.execute(
            f"{_HISTORY_SELECT} WHERE h.mapping_id = ? ORDER BY h.id DESC LIMIT 1",
            [mapping_id],
        )
        return _row_to_history(result.rows[0]) if result.rows else None

    async def list_history(self, mapping_id: int) -> list[MappingHistory]:
        result = await self._db.execute(
            f"{_HISTORY_SELECT} WHERE h.mapping_id = ? ORDER BY h.id DESC",
            [mapping_id],
        )
        return [_row_to_history(row) for row in result.rows]

    async def list_recent_history(self, limit: int = 10) -> list[MappingHistory]:
        """Most recent history rows across all mappings, newest first."""
        result = await self._db.execute(
            f"{_HISTORY_SELECT} ORDER BY h.id DESC LIMIT ?",
            [limit],
        )
        return [_row_to_history(row) for row in result.rows]

    async def undo_latest(self, mapping_id: int, changed_by: str) -> MappingHistory:
        """Restore the mapping from its newest history row and consume it.

        Restore and delete run in one transaction, guarded so that a
        history row is consumed at most once and only while it is still
        the newest for the mapping.

        Args:
            mapping_id: Mapping to roll back
            changed_by: Actor performing the undo

        Returns:
            The consumed history row

        Raises:
            NothingToUndoError: No history row, or it was consumed or
                superseded concurrently
        """
        latest = await self.get_latest_history(mapping_id)
        if latest is None:
            raise NothingToUndoError(f"nothing to undo for mapping {mapping_id}")

        still_newest = """
            EXISTS (SELECT 1 FROM name_mapping_history WHERE id = ?)
            AND NOT EXISTS (
                SELECT 1 FROM name_mapping_history WHERE mapping_id = ? AND id > ?
            )
        """
        guard_params = [latest.id, mapping_id, latest.id]
        previous_status = latest.previous_status.value if latest.previous_status else None

        results = await self._db.execute_batch(
            [
                (
                    f"""
                    UPDATE name_mappings
                    SET resolved_name = ?, status = ?, updated_by = ?,
                        updated_at = CURRENT_TIMESTAMP
                    WHERE id = ? AND {still_newest}
                    """,
                    [
                        latest.previous_resolved_name,
                        previous_status,
                        changed_by,
                        mapping_id,
                        *guard_params,
                    ],
                ),
                (
                    f"DELETE FROM name_mapping_history WHERE id = ? AND {still_newest}",
                    [latest.id, *guard_params],
                ),
            ]
        )
        if results[-1].rows_affected == 0:
            raise NothingToUndoError(
                f"history entry {latest.id} was already consumed or superseded"
            )
        return latest
