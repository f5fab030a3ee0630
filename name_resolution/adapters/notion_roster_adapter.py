"""Adapter for loading the student roster from the Notion CRM.

Queries the CRM database page by page ("fetch next page until no cursor
is returned"). Each page request is retried with exponential backoff on
transient failures, resuming from the same cursor, so pages already
fetched are never requested again.
"""

import os
from datetime import UTC, datetime

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from name_resolution.identity.schemas import RosterEntry, RosterSnapshot

logger = structlog.get_logger()


class RosterFetchError(Exception):
    """The CRM roster could not be fetched completely."""


class RetriableCRMError(Exception):
    """Transient CRM failure (rate limit or server error)."""


# Exceptions that are retriable (transient failures)
RETRIABLE_EXCEPTIONS = (
    httpx.TransportError,
    RetriableCRMError,
)


class NotionRosterAdapter:
    """Adapter for the Notion CRM student database.

    Expected database properties (names configurable):
    - Title property with the student name
    - Status (or select) property with the enrollment status label
    """

    BASE_URL = "https://api.notion.com/v1"

    def __init__(
        self,
        api_key: str | None = None,
        database_id: str | None = None,
        *,
        name_property: str = "שם התלמיד",
        status_property: str = "סטטוס",
        active_statuses: list[str] | None = None,
        api_version: str = "2022-06-28",
        page_size: int = 100,
        max_attempts: int = 5,
        wait: wait_base | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize with Notion credentials.

        Args:
            api_key: Notion integration token.
                    Falls back to NOTION_API_KEY env var.
            database_id: CRM database ID.
                        Falls back to NOTION_CRM_DATABASE_ID env var.
            name_property: Property holding the student name
            status_property: Property holding the status label
            active_statuses: Status labels of currently enrolled students
            api_version: Notion-Version header
            page_size: Results per page (Notion maximum is 100)
            max_attempts: Attempts per page before giving up
            wait: Backoff strategy between attempts
            transport: Optional httpx transport (tests)
        """
        self._api_key = api_key or os.environ.get("NOTION_API_KEY")
        self._database_id = database_id or os.environ.get("NOTION_CRM_DATABASE_ID")
        self._name_property = name_property
        self._status_property = status_property
        self._active_statuses = set(active_statuses or [])
        self._api_version = api_version
        self._page_size = page_size
        self._max_attempts = max_attempts
        self._wait = wait or wait_exponential(multiplier=1, min=2, max=30)
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Notion-Version": self._api_version,
            "Content-Type": "application/json",
        }

    async def fetch_roster(self) -> RosterSnapshot:
        """Fetch every roster entry from the CRM.

        Returns:
            Immutable snapshot of the roster

        Raises:
            RosterFetchError: Missing credentials, a non-retriable API
                error, or retries exhausted on some page
        """
        if not self._api_key or not self._database_id:
            raise RosterFetchError(
                "No CRM credentials. Set NOTION_API_KEY and NOTION_CRM_DATABASE_ID "
                "env vars or pass them to the constructor."
            )

        entries: list[RosterEntry] = []
        cursor: str | None = None
        pages = 0

        async with httpx.AsyncClient(
            base_url=self.BASE_URL,
            headers=self._headers(),
            timeout=30.0,
            transport=self._transport,
        ) as client:
            while True:
                data = await self._fetch_page_with_retry(client, cursor)
                pages += 1
                entries.extend(self._parse_results(data))

                cursor = data.get("next_cursor")
                if not data.get("has_more") or not cursor:
                    break

        snapshot = RosterSnapshot(entries=tuple(entries), fetched_at=datetime.now(UTC))
        logger.info(
            "Fetched CRM roster",
            entries=len(snapshot.entries),
            active=snapshot.active_count,
            pages=pages,
        )
        return snapshot

    def _parse_results(self, data: dict) -> list[RosterEntry]:
        entries = []
        for page in data.get("results") or []:
            try:
                entry = RosterEntry.from_notion_page(
                    page,
                    self._name_property,
                    self._status_property,
                    self._active_statuses,
                )
            except (KeyError, TypeError, AttributeError, ValueError) as e:
                raise RosterFetchError(f"Malformed CRM page: {e!r}") from e
            if entry is not None:
                entries.append(entry)
        return entries

    async def _fetch_page_with_retry(
        self, client: httpx.AsyncClient, cursor: str | None
    ) -> dict:
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._max_attempts),
                wait=self._wait,
                retry=retry_if_exception_type(RETRIABLE_EXCEPTIONS),
                before_sleep=before_sleep_log(logger, log_level=20),  # INFO level
                reraise=True,
            ):
                with attempt:
                    return await self._fetch_page(client, cursor)
        except RETRIABLE_EXCEPTIONS as e:
            logger.error(
                "CRM roster fetch retries exhausted",
                cursor=cursor,
                attempts=self._max_attempts,
                error=str(e),
            )
            raise RosterFetchError(
                f"CRM roster fetch failed after {self._max_attempts} attempts: {e}"
            ) from e
        raise RosterFetchError("CRM roster fetch made no attempts")

    async def _fetch_page(self, client: httpx.AsyncClient, cursor: str | None) -> dict:
        body: dict = {"page_size": self._page_size}
        if cursor:
            body["start_cursor"] = cursor

        response = await client.post(f"/databases/{self._database_id}/query", json=body)

        if response.status_code == 429 or response.status_code >= 500:
            raise RetriableCRMError(
                f"CRM returned {response.status_code}: {response.text[:200]}"
            )
        if response.status_code >= 400:
            raise RosterFetchError(
                f"CRM returned {response.status_code}: {response.text[:200]}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise RosterFetchError(
                f"CRM returned a non-JSON body: {response.text[:200]}"
            ) from e
        if not isinstance(data, dict):
            raise RosterFetchError("CRM query response is not a JSON object")
        return data
