"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from casetrace.api import crossref
from casetrace.config import CORS_ORIGINS, SUPABASE_ENABLED, SUPABASE_URL
from casetrace.pipeline.enrichment import RosterEnricher
from casetrace.pipeline.sources import (
    CaseDirectory,
    InMemoryCaseDirectory,
    InMemoryRosterSource,
    RosterSource,
)
from casetrace.pipeline.supabase_source import (
    SupabaseCaseDirectory,
    SupabaseRosterSource,
    make_client,
)

logger = logging.getLogger(__name__)


def create_app(
    roster_source: RosterSource | None = None,
    case_directory: CaseDirectory | None = None,
    **enricher_options,
) -> FastAPI:
    """Build the app. Sources passed in are used as-is; otherwise they come
    from Supabase when configured, or start out empty."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        client = None
        roster, directory = roster_source, case_directory
        if roster is None or directory is None:
            if SUPABASE_ENABLED:
                client = make_client()
                logger.info(f"Using Supabase sources at {SUPABASE_URL}")
                roster = roster or SupabaseRosterSource(client)
                directory = directory or SupabaseCaseDirectory(client)
            else:
                logger.warning("SUPABASE_URL/SUPABASE_KEY not set; serving empty in-memory rosters")
                roster = roster or InMemoryRosterSource()
                directory = directory or InMemoryCaseDirectory()
        app.state.enricher = RosterEnricher(roster, directory, **enricher_options)
        try:
            yield
        finally:
            if client is not None:
                await client.aclose()

    app = FastAPI(
        title="CaseTrace Cross-Reference Service",
        description="Cross-case identity history for accused persons and bailers",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(crossref.router, prefix="/api/crossref", tags=["Cross-reference"])

    @app.get("/api/health")
    async def health():
        return {"status": "operational", "platform": "CaseTrace"}

    return app


app = create_app()
