"""Read-only access to lesson transcripts.

Transcripts are written by the recording sync, which owns the
``transcripts`` table. This repository only reads it.
"""

from datetime import date

import structlog

from name_resolution.db.turso import TursoClient
from name_resolution.identity.schemas import TranscriptRecord

logger = structlog.get_logger()


class TranscriptFetchError(Exception):
    """Transcript store could not be read."""


def parse_lesson_date(value: str | None) -> date | None:
    """Parse a stored lesson date ("2025-12-08" or a full ISO timestamp)."""
    if not value:
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        logger.warning("Unparseable lesson date", value=value)
        return None


class TranscriptRepository:
    """Reads transcripts in id order, one page at a time."""

    def __init__(self, db_client: TursoClient, page_size: int = 500):
        """Initialize repository with database client.

        Args:
            db_client: TursoClient instance for database operations
            page_size: Rows fetched per query
        """
        self._db = db_client
        self._page_size = page_size

    async def list_transcripts(self) -> list[TranscriptRecord]:
        """Fetch every transcript.

        Returns:
            All transcripts ordered by id

        Raises:
            TranscriptFetchError: If the store cannot be read
        """
        transcripts: list[TranscriptRecord] = []
        offset = 0
        try:
            while True:
                result = await self._db.execute(
                    """
                    SELECT id, full_text, lesson_date, title
                    FROM transcripts
                    ORDER BY id
                    LIMIT ? OFFSET ?
                    """,
                    [self._page_size, offset],
                )
                for row in result.rows:
                    transcripts.append(
                        TranscriptRecord(
                            id=str(row[0]),
                            full_text=row[1] or "",
                            lesson_date=parse_lesson_date(row[2]),
                            title=row[3],
                        )
                    )
                if len(result.rows) < self._page_size:
                    break
                offset += self._page_size
        except Exception as e:
            raise TranscriptFetchError(f"Failed to read transcripts: {e}") from e

        logger.info("Loaded transcripts", count=len(transcripts))
        return transcripts
