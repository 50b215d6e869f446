"""
Message Tracker - Main Application Entry Point

Deduplication service for inbound messages: records processed message ids
in a key-value store (SQLite, Redis or in-memory) and exposes them through
an administrative API built with FastAPI.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from message_tracker.api.messages import router as messages_router, get_tracker
from message_tracker.infrastructure.database import init_database, dispose_database
from message_tracker.infrastructure.scheduler import start_scheduler, stop_scheduler, schedule_purge
from message_tracker.config.settings import get_settings

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    # Startup
    logger.info("Starting Message Tracker...")

    if settings.kv_backend.lower() == "sqlite":
        logger.info("Initializing database...")
        await init_database()
        logger.info("Database initialized")

    tracker = get_tracker()

    logger.info("Starting scheduler...")
    await start_scheduler()
    schedule_purge(tracker)

    logger.info("Application startup complete!")
    logger.info(f"Backend: {settings.kv_backend}")
    logger.info(f"Tracker config: {tracker.stats()}")

    yield

    # Shutdown
    logger.info("Shutting down...")
    await stop_scheduler()

    close = getattr(tracker.store, "close", None)
    if close is not None:
        await close()
    await dispose_database()
    logger.info("Application shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="Message Tracker",
    description="Deduplication tracker for inbound message ids",
    version="1.0.0",
    lifespan=lifespan
)

# Register routers
app.include_router(messages_router, tags=["Messages"])


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": "Message Tracker",
        "version": "1.0.0",
        "status": "running",
        "endpoints": {
            "messages": "/messages/{msg_id}",
            "check": "/messages/check",
            "stats": "/messages/stats",
            "health": "/health"
        }
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "message_tracker.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug
    )
