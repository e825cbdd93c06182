"""FundSync - FastAPI Application Entry Point.

Raisely → Storyblok profile sync service.
"""

import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from fundsync.config import settings
from fundsync.connectors.storyblok.client import StoryblokClient
from fundsync.scheduler.jobs import start_scheduler, stop_scheduler
from fundsync.api.webhook_routes import router as webhook_router
from fundsync.core.logging import get_logger
from fundsync.sync.resolver import ResolverContext

logger = get_logger("main")


IS_SERVERLESS = bool(
    os.environ.get("VERCEL") or os.environ.get("AWS_LAMBDA_FUNCTION_NAME")
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    logger.info("🚀 FundSync starting up...")
    logger.info(f"🌍 Environment: {settings.environment}")
    if not settings.storyblok_access_token or not settings.storyblok_space_id:
        logger.error("❌ Storyblok credentials missing, webhook syncs will fail")

    # Root folder ids are cached here for the life of the process
    app.state.store = StoryblokClient()
    app.state.resolver_context = ResolverContext()
    if not IS_SERVERLESS:
        start_scheduler()
    yield
    if not IS_SERVERLESS:
        stop_scheduler()
    await app.state.store.close()
    logger.info("FundSync shut down")


app = FastAPI(
    title="FundSync",
    description="Mirror Raisely fundraising profiles into a Storyblok content tree.",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(webhook_router)


@app.get("/health", tags=["System"])
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "fundsync",
        "version": "1.0.0",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
