"""
Communities Router - Community point grants
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from reward_engine.api.schemas import GrantPointsRequest, TransactionResponse
from reward_engine.dependencies import get_current_user_id, get_db
from reward_engine.services.community_service import community_service

router = APIRouter()


@router.post("/{community_id}/points/grant", response_model=TransactionResponse, status_code=status.HTTP_201_CREATED)
async def grant_points(
    community_id: str,
    request: GrantPointsRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Grant points to a member's community wallet (owners and admins only)."""
    return community_service.grant_points(
        db,
        admin_id=user_id,
        community_id=community_id,
        user_id=request.user_id,
        wallet_id=request.wallet_id,
        amount=request.amount,
        description=request.description
    )
