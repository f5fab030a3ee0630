"""libSQL access for the resolution store.

The same client serves a Turso cloud database in production and a local
SQLite file in development and tests.
"""

import logging
from typing import Any

from libsql_client import Client, ResultSet, create_client

from name_resolution.config import settings

logger = logging.getLogger(__name__)

DEFAULT_LOCAL_URL = "file:name_resolution.db"

# Bare SQL, or (SQL, params) for statements with placeholders
BatchStatement = str | tuple[str, list[Any]]


class TursoClient:
    """Async libSQL connection used by the repositories.

    Writes that must land together (a history row plus the change it
    records) go through ``execute_batch``, which libSQL runs as a single
    transaction.
    """

    def __init__(self, url: str | None = None, auth_token: str | None = None):
        """Initialize client.

        Args:
            url: ``libsql://`` URL for Turso or ``file:`` path for SQLite.
                Defaults to TURSO_DATABASE_URL, then a local file.
            auth_token: Turso token. Defaults to TURSO_AUTH_TOKEN.
        """
        self.url = url or settings.turso_database_url or DEFAULT_LOCAL_URL
        self.auth_token = auth_token or settings.turso_auth_token
        self._client: Client | None = None

    @property
    def is_local(self) -> bool:
        return self.url.startswith("file:")

    async def connect(self) -> None:
        """Open the connection; a second call is a no-op."""
        if self._client is not None:
            return

        if self.auth_token and not self.is_local:
            self._client = create_client(url=self.url, auth_token=self.auth_token)
        else:
            self._client = create_client(url=self.url)

        if self.is_local:
            # History rows reference their mapping; SQLite checks that only on request
            await self._client.execute("PRAGMA foreign_keys = ON")

        logger.info(f"Connected to database: {self.url}")

    def _require_client(self) -> Client:
        if self._client is None:
            raise RuntimeError("Not connected. Call connect() first.")
        return self._client

    async def execute(self, sql: str, params: list[Any] | None = None) -> ResultSet:
        """Run one statement with ``?`` placeholders."""
        return await self._require_client().execute(sql, params or [])

    async def execute_batch(self, statements: list[BatchStatement]) -> list[ResultSet]:
        """Run statements in one transaction.

        Either every statement is applied or none is.

        Args:
            statements: SQL strings or ``(sql, params)`` tuples

        Returns:
            One ResultSet per statement, in order. Callers read
            ``rows_affected`` from these to detect guarded no-ops.
        """
        return await self._require_client().batch(statements)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
            logger.info("Database connection closed")

    async def is_healthy(self) -> bool:
        """True if the connection answers a trivial query."""
        if self._client is None:
            return False
        try:
            result = await self._client.execute("SELECT 1")
        except Exception:
            logger.warning("Database health check failed", exc_info=True)
            return False
        return len(result.rows) == 1
