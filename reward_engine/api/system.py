"""
System Router - Health checks and monitoring
"""
import logging
from datetime import datetime
from fastapi import APIRouter, Depends
import redis
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from reward_engine.config import settings
from reward_engine.dependencies import get_db

logger = logging.getLogger(__name__)

router = APIRouter()

# Shared connection pool; nothing connects until the first command
redis_client = redis.from_url(settings.REDIS_URL)


@router.get("/health")
async def health_check(db: Session = Depends(get_db)):
    """
    Health check endpoint.
    Reports database and Redis status and the event queue depth.
    """
    database_status = "unhealthy"
    try:
        db.execute(text("SELECT 1"))
        database_status = "healthy"
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")

    redis_status = "unhealthy"
    queue_depth = 0
    try:
        redis_client.ping()
        redis_status = "healthy"
        queue_depth = redis_client.llen(settings.EVENT_QUEUE_NAME) or 0
    except RedisError as e:
        logger.error(f"Redis health check failed: {e}")

    return {
        "database": database_status,
        "redis": redis_status,
        "event_queue_depth": queue_depth,
        "timestamp": datetime.utcnow().isoformat() + "Z"
    }
