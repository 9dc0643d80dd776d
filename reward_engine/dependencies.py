"""
FastAPI dependencies for the Reward Engine
"""
from typing import Optional
from fastapi import Depends, HTTPException, Header, Request, status
from reward_engine.db.database import get_db  # noqa: F401
from reward_engine.config import settings
from reward_engine.worker.queue import EventQueue


async def verify_api_key(x_api_key: Optional[str] = Header(None)) -> str:
    """Verify API key for internal endpoints"""
    if not x_api_key or x_api_key != settings.API_KEY:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key"
        )
    return x_api_key


async def get_current_user_id(
    x_user_id: Optional[str] = Header(None),
    api_key: str = Depends(verify_api_key)
) -> str:
    """Acting user, as authenticated by the upstream gateway"""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header"
        )
    return x_user_id


def get_event_queue(request: Request) -> EventQueue:
    """The process-wide event queue created at startup"""
    return request.app.state.event_queue
