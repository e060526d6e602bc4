"""FastAPI application entry point — wires the front-desk core together.

Usage:
    python -m frontdesk.main

The HTTP surface is a health check only; request handlers call
``front_desk`` directly.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI

from frontdesk.audit import audit_on_event
from frontdesk.config import settings
from frontdesk.db.engine import async_session_factory, db_lifespan, redis_client
from frontdesk.desk import FrontDesk
from frontdesk.events import start_event_system, stop_event_system, subscribe, unsubscribe
from frontdesk.queue.tracker import WaitQueueTracker, redis_publisher
from frontdesk.scheduling.locks import resource_locks

# ── Logging setup ────────────────────────────────────────────────────

logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    stream=sys.stdout,
)
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
)

logger = logging.getLogger(__name__)

# ── Core wiring ──────────────────────────────────────────────────────

queue_tracker = WaitQueueTracker(session_factory=async_session_factory, locks=resource_locks)
front_desk = FrontDesk(tracker=queue_tracker)

# ── FastAPI lifespan ─────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application startup and shutdown lifecycle."""
    logger.info("Starting front desk (env=%s)", settings.environment)

    # 1. Database
    async with db_lifespan():
        logger.info("Database initialized")

        # 2. Event system
        await start_event_system()
        logger.info("Event system started")

        # 3. Audit logging (global subscriber)
        subscribe(audit_on_event)
        logger.info("Audit logging subscriber registered")

        # 4. Wait queue tracker
        queue_tracker.set_publish_fn(redis_publisher(redis_client))
        await queue_tracker.start()
        subscribe(queue_tracker.on_event, event_types=queue_tracker.watched_types)
        logger.info("Queue tracker registered")

        try:
            yield
        finally:
            # Shutdown in reverse order
            logger.info("Shutting down front desk...")

            await stop_event_system()
            logger.info("Event system stopped")

            await queue_tracker.stop()
            unsubscribe(queue_tracker.on_event)
            unsubscribe(audit_on_event)

    logger.info("Front desk shutdown complete")


# ── FastAPI app ──────────────────────────────────────────────────────

app = FastAPI(
    title="Salon Front Desk",
    description="Appointment scheduling, resource allocation and walk-in queue",
    version="0.1.0",
    lifespan=lifespan,
)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {
        "status": "ok",
        "environment": settings.environment,
    }


# ── Entry point ──────────────────────────────────────────────────────

if __name__ == "__main__":
    uvicorn.run(
        "frontdesk.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.environment == "development",
        log_level=settings.log_level.lower(),
    )
