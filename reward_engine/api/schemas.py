"""
Request/Response models shared by the API routers
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from reward_engine.db.models import (
    AchievementStatus, AggregateType, ComparisonType, RewardType,
    TransactionSubtype, TransactionType
)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Stored timestamps are naive UTC"""
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


# ============================================================
# Events
# ============================================================

class CreateEventRequest(BaseModel):
    community_id: str
    tag: str = Field(..., min_length=1, max_length=100)


class EventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    tag: str
    community_id: str
    created_by_id: str
    created_at: Optional[datetime] = None


class LogEventRequest(BaseModel):
    event_id: str
    user_id: str
    value: float = 0
    metadata: Optional[Dict[str, Any]] = None


class EventLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    event_id: str
    user_id: str
    value: float
    created_at: datetime


# ============================================================
# Achievements
# ============================================================

class AchievementFields(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    status: Optional[AchievementStatus] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    frequency_limit: Optional[int] = Field(None, ge=0)
    condition_event_id: Optional[str] = None
    condition_date_from: Optional[datetime] = None
    condition_date_to: Optional[datetime] = None
    condition_event_count_limit: Optional[int] = Field(None, gt=0)
    condition_event_aggregate_type: Optional[AggregateType] = None
    condition_event_comparison_type: Optional[ComparisonType] = None
    condition_event_value: Optional[float] = None
    reward_type: Optional[RewardType] = None
    reward_amount: Optional[Decimal] = None

    @field_validator("date_from", "date_to", "condition_date_from", "condition_date_to")
    @classmethod
    def normalize_datetime(cls, value):
        return to_naive_utc(value)


class CreateAchievementRequest(AchievementFields):
    name: str = Field(..., min_length=1, max_length=255)
    community_id: Optional[str] = None
    condition_event_id: str


class UpdateAchievementRequest(AchievementFields):
    pass


class AchievementResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: Optional[str] = None
    community_id: Optional[str] = None
    status: AchievementStatus
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    frequency_limit: int
    condition_event_id: str
    condition_date_from: Optional[datetime] = None
    condition_date_to: Optional[datetime] = None
    condition_event_count_limit: Optional[int] = None
    condition_event_aggregate_type: AggregateType
    condition_event_comparison_type: ComparisonType
    condition_event_value: float
    reward_type: RewardType
    reward_amount: Optional[Decimal] = None


class IssueRewardRequest(BaseModel):
    user_id: str
    wallet_id: Optional[str] = None


class ClaimRewardRequest(BaseModel):
    reward_id: str
    wallet_id: Optional[str] = None


class RewardResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    achievement_id: str
    wallet_id: Optional[str] = None
    event_log_id: Optional[str] = None
    issued_by_id: Optional[str] = None
    claimed_at: Optional[datetime] = None
    created_at: datetime


# ============================================================
# Communities
# ============================================================

class GrantPointsRequest(BaseModel):
    user_id: str
    wallet_id: str
    amount: Decimal = Field(..., gt=0)
    description: Optional[str] = None


class TransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    sender_id: Optional[str] = None
    receiver_id: Optional[str] = None
    receiver_wallet_id: Optional[str] = None
    community_id: Optional[str] = None
    amount: Decimal
    transaction_type: TransactionType
    transaction_subtype: TransactionSubtype
    description: Optional[str] = None
    created_at: datetime


# ============================================================
# Jobs
# ============================================================

class FailedJobResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    task_id: Optional[str] = None
    payload: Dict[str, Any]
    error: Optional[str] = None
    attempts: int
    created_at: datetime
    requeued_at: Optional[datetime] = None
