"""
API routers package
"""
from reward_engine.api import (
    system,
    events,
    achievements,
    communities,
    jobs
)

__all__ = [
    "system",
    "events",
    "achievements",
    "communities",
    "jobs"
]
