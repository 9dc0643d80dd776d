"""
Achievements Router - Achievement definitions, manual issue and claim
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from reward_engine.api.schemas import (
    AchievementResponse, ClaimRewardRequest, CreateAchievementRequest,
    IssueRewardRequest, RewardResponse, UpdateAchievementRequest
)
from reward_engine.dependencies import get_current_user_id, get_db
from reward_engine.services.achievement_service import achievement_service

router = APIRouter()


@router.post("", response_model=AchievementResponse, status_code=status.HTTP_201_CREATED)
async def create_achievement(
    request: CreateAchievementRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """
    Create an achievement.

    - Global achievements (no community_id): system admins only
    - Community achievements: community owner or admin
    - POINTS rewards require a positive reward_amount
    """
    return achievement_service.create_achievement(
        db, user_id, request.model_dump(exclude_none=True)
    )


@router.get("/rewards", response_model=List[RewardResponse])
async def list_my_rewards(
    achievement_id: Optional[str] = Query(None),
    unclaimed_only: bool = Query(False),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """List the caller's rewards, newest first."""
    return achievement_service.list_user_rewards(
        db, user_id, achievement_id=achievement_id, unclaimed_only=unclaimed_only
    )


@router.put("/{achievement_id}", response_model=AchievementResponse)
async def update_achievement(
    achievement_id: str,
    request: UpdateAchievementRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Update an achievement; only the fields sent are changed."""
    return achievement_service.update_achievement(
        db, user_id, achievement_id, request.model_dump(exclude_unset=True)
    )


@router.post("/{achievement_id}/rewards/issue", response_model=RewardResponse, status_code=status.HTTP_201_CREATED)
async def issue_achievement_reward(
    achievement_id: str,
    request: IssueRewardRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """
    Manually grant an achievement to a user.

    Frequency limits apply as for automatic grants. Points are paid
    immediately when a wallet is known, otherwise the reward waits for a claim.
    """
    return achievement_service.issue_achievement_reward(
        db, user_id, achievement_id, request.user_id, wallet_id=request.wallet_id
    )


@router.post("/{achievement_id}/rewards/claim", response_model=RewardResponse)
async def claim_achievement_reward(
    achievement_id: str,
    request: ClaimRewardRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Claim one of the caller's unclaimed rewards. A second claim answers 409."""
    return achievement_service.claim_achievement_reward(
        db, user_id, achievement_id, request.reward_id, wallet_id=request.wallet_id
    )
