"""BloodMatch API — FastAPI application entry point.

Invariants:
    - Routes registered explicitly (no auto-discovery)
    - Global error handlers map BloodMatchError → structured JSON responses
    - Allowed CORS origins come from Settings.cors_origins
    - Database and arrival sweeper initialized on startup via lifespan context manager

Design Decisions:
    - Sweeper stops before the engine is disposed so no sweep runs on a closed pool
    - Error handlers live in api/error_handlers.py to keep this module's imports small
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from bloodmatch.api.error_handlers import register_error_handlers
from bloodmatch.api.routes import admin, donor_actions, health, requester_requests
from bloodmatch.config import get_settings
from bloodmatch.infrastructure import database
from bloodmatch.infrastructure.observability import setup_logging
from bloodmatch.infrastructure.scheduler import shutdown_scheduler, start_scheduler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Logging, database and sweeper up; reverse order down."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    database.init_db(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )
    if settings.sweeper_enabled:
        start_scheduler(settings.sweep_interval_seconds)
    logger.info("BloodMatch API started")
    yield
    shutdown_scheduler()
    if database.db_manager:
        await database.db_manager.dispose()
    logger.info("BloodMatch API shutting down")


app = FastAPI(
    title="BloodMatch API", version="1.0.0", lifespan=lifespan,
)

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(requester_requests.router)
app.include_router(donor_actions.router)
app.include_router(admin.router)

register_error_handlers(app)
