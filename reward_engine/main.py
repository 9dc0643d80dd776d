"""
Main FastAPI application for the Reward Engine
"""
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging

from reward_engine.config import settings
from reward_engine.api import (
    system,
    events,
    achievements,
    communities,
    jobs
)
from reward_engine.db.database import init_db
from reward_engine.errors import RewardEngineError
from reward_engine.worker.celery_app import celery_app
from reward_engine.worker.queue import EventQueue

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.APP_DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    # Startup
    logger.info("Starting Reward Engine...")
    if settings.DB_CREATE_TABLES:
        init_db()
        logger.info("Database tables created")

    app.state.event_queue = EventQueue(celery_app, settings.EVENT_QUEUE_NAME)

    yield

    # Shutdown
    logger.info("Shutting down Reward Engine...")


app = FastAPI(
    title="Reward Engine",
    description="Achievement evaluation and reward issuance service",
    version="1.0.0",
    lifespan=lifespan
)


@app.exception_handler(RewardEngineError)
async def reward_engine_error_handler(request: Request, exc: RewardEngineError):
    """Map typed engine errors to a stable error body"""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code.name} {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.code.name} {exc.message}")

    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.to_dict()}
    )


# Include routers
app.include_router(system.router, tags=["System"])
app.include_router(events.router, prefix="/events", tags=["Events"])
app.include_router(achievements.router, prefix="/achievements", tags=["Achievements"])
app.include_router(communities.router, prefix="/communities", tags=["Communities"])
app.include_router(jobs.router, prefix="/jobs", tags=["Jobs"])


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": "Reward Engine",
        "version": "1.0.0",
        "status": "running"
    }
