"""FastAPI application entry point."""

import logging
import os
from collections.abc import AsyncGenerator
from contextlib import AsyncExitStack, asynccontextmanager

from fastapi import FastAPI

from name_resolution.adapters.notion_roster_adapter import NotionRosterAdapter
from name_resolution.api.router import api_router
from name_resolution.config import settings
from name_resolution.db.turso import TursoClient
from name_resolution.identity.blacklist import NameBlacklist
from name_resolution.identity.extractor import NameExtractor
from name_resolution.identity.fuzzy_matcher import FuzzyMatcher
from name_resolution.identity.resolver import BatchResolver
from name_resolution.identity.review import ReviewService
from name_resolution.identity.roster_matcher import RosterMatcher
from name_resolution.identity.transliteration import TransliterationTable
from name_resolution.repositories.mapping_repo import MappingRepository
from name_resolution.repositories.transcript_repo import TranscriptRepository

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def _load_reference_data(app: FastAPI) -> None:
    """Load the transliteration table and blacklist into app state.

    Bundled data files are used unless a path override is configured.
    """
    if settings.transliterations_path:
        table = TransliterationTable.from_json(settings.transliterations_path)
    else:
        table = TransliterationTable.from_json()

    if settings.blacklist_path:
        blacklist = NameBlacklist.from_json(settings.blacklist_path)
    else:
        blacklist = NameBlacklist.from_json()

    app.state.transliterations = table
    app.state.blacklist = blacklist
    logger.info(
        f"Reference data loaded: transliterations {table.version} "
        f"({len(table)} variants), blacklist {blacklist.version}"
    )


def _get_batch_scheduler_context(resolver: BatchResolver):
    """Get batch scheduler lifespan context manager.

    Returns a no-op context if the scheduler is disabled in settings or
    via environment.
    """
    from name_resolution.identity.scheduler import batch_scheduler_lifespan

    # Allow disabling scheduler for tests
    if not settings.batch_schedule_enabled or os.environ.get("DISABLE_BATCH_SCHEDULER"):

        @asynccontextmanager
        async def noop_context():
            yield

        return noop_context()

    return batch_scheduler_lifespan(resolver, interval_hours=settings.batch_interval_hours)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan management.

    Startup:
    - Initialize database connection and mapping schema
    - Load reference data (transliterations, blacklist)
    - Wire the resolver, review service and CRM adapter
    - Start the batch scheduler

    Shutdown:
    - Stop the scheduler
    - Close database connection
    """
    # Startup
    logger.info("Starting Student Name Resolution...")

    # Initialize database
    db = TursoClient()
    await db.connect()
    app.state.db = db
    logger.info(f"Database connected: {db.url}")

    mapping_repo = MappingRepository(db)
    await mapping_repo.initialize()
    app.state.mapping_repo = mapping_repo
    logger.info("Mapping repository initialized")

    transcript_repo = TranscriptRepository(db)
    app.state.transcript_repo = transcript_repo

    _load_reference_data(app)

    # CRM adapter handles missing credentials at fetch time
    roster_adapter = NotionRosterAdapter(
        api_key=settings.notion_api_key,
        database_id=settings.notion_crm_database_id,
        name_property=settings.crm_name_property,
        status_property=settings.crm_status_property,
        active_statuses=settings.crm_active_statuses,
        api_version=settings.notion_api_version,
        page_size=settings.notion_page_size,
        max_attempts=settings.roster_fetch_max_attempts,
    )
    app.state.roster_adapter = roster_adapter

    matcher = RosterMatcher(
        app.state.transliterations,
        low_threshold=settings.match_low_threshold,
        high_threshold=settings.match_high_threshold,
        active_bonus=settings.match_active_bonus,
    )
    app.state.roster_matcher = matcher
    app.state.fuzzy_matcher = FuzzyMatcher()

    extractor = NameExtractor(
        excluded_speakers=settings.teacher_aliases,
        max_lines=settings.extraction_max_lines,
    )

    resolver = BatchResolver(
        extractor=extractor,
        matcher=matcher,
        blacklist=app.state.blacklist,
        mapping_repo=mapping_repo,
        roster_source=roster_adapter,
        transcript_source=transcript_repo,
        actor=settings.batch_actor,
    )
    app.state.batch_resolver = resolver
    app.state.review_service = ReviewService(mapping_repo)
    logger.info("Name resolution services initialized")

    async with AsyncExitStack() as stack:
        await stack.enter_async_context(_get_batch_scheduler_context(resolver))
        yield

    # Shutdown
    logger.info("Shutting down Student Name Resolution...")
    await db.close()
    logger.info("Database connection closed")


app = FastAPI(
    title=settings.app_name,
    description="Resolve transcript speaker names to CRM students",
    version=settings.app_version,
    lifespan=lifespan,
)

app.include_router(api_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "name_resolution.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
