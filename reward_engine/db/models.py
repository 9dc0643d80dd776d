"""
SQLAlchemy ORM Models for the Reward Engine
"""
import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Column, Integer, String, Text, Float, Boolean, DateTime,
    ForeignKey, JSON, Numeric, UniqueConstraint, Index, Enum
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from reward_engine.db.database import Base


def new_id() -> str:
    return str(uuid.uuid4())


def _enum_column(enum_cls, **kwargs):
    """Enum stored as VARCHAR so new members never need a type migration"""
    return Column(Enum(enum_cls, native_enum=False, length=30), **kwargs)


# ============================================================
# ENUMS
# ============================================================

class UserRole(str, enum.Enum):
    USER = "USER"
    ADMIN = "ADMIN"
    SYSTEM_ADMIN = "SYSTEM_ADMIN"


class CommunityRole(str, enum.Enum):
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"


class AchievementStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    ARCHIVED = "ARCHIVED"


class AggregateType(str, enum.Enum):
    COUNT = "COUNT"
    SUM = "SUM"
    AVG = "AVG"
    MIN = "MIN"
    MAX = "MAX"
    CUSTOM = "CUSTOM"


class ComparisonType(str, enum.Enum):
    EQUAL = "EQUAL"
    GREATER_THAN = "GREATER_THAN"
    GREATER_THAN_OR_EQUAL = "GREATER_THAN_OR_EQUAL"
    LESS_THAN = "LESS_THAN"
    LESS_THAN_OR_EQUAL = "LESS_THAN_OR_EQUAL"


class RewardType(str, enum.Enum):
    POINTS = "POINTS"
    BADGE = "BADGE"
    COUPON = "COUPON"
    POINTS_CUSTOM = "POINTS_CUSTOM"


class TransactionType(str, enum.Enum):
    PAYMENT = "PAYMENT"
    REWARD = "REWARD"
    GRANT = "GRANT"


class TransactionSubtype(str, enum.Enum):
    POINTS = "POINTS"
    BALANCE = "BALANCE"


class TransactionStatus(str, enum.Enum):
    COMPLETED = "COMPLETED"


# ============================================================
# USERS & COMMUNITIES
# ============================================================

class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255))
    email = Column(String(255), unique=True, nullable=False)
    role = _enum_column(UserRole, default=UserRole.USER, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    # Relationships
    wallets = relationship("Wallet", back_populates="owner")
    rewards = relationship("AchievementReward", back_populates="user", foreign_keys="AchievementReward.user_id")


class Community(Base):
    __tablename__ = "communities"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    created_by_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, server_default=func.now())

    # Relationships
    members = relationship("CommunityMember", back_populates="community")


class CommunityMember(Base):
    __tablename__ = "community_members"

    id = Column(Integer, primary_key=True, autoincrement=True)
    community_id = Column(String(36), ForeignKey("communities.id"), nullable=False)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    role = _enum_column(CommunityRole, default=CommunityRole.MEMBER, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (
        UniqueConstraint('community_id', 'user_id', name='unique_community_member'),
    )

    # Relationships
    community = relationship("Community", back_populates="members")


# ============================================================
# EVENTS
# ============================================================

class Event(Base):
    __tablename__ = "events"

    id = Column(String(36), primary_key=True, default=new_id)
    tag = Column(String(100), nullable=False)
    community_id = Column(String(36), ForeignKey("communities.id"), nullable=False)
    created_by_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (
        UniqueConstraint('community_id', 'tag', name='unique_community_event_tag'),
    )

    # Relationships
    logs = relationship("EventLog", back_populates="event")
    achievements = relationship("Achievement", back_populates="condition_event")


class EventLog(Base):
    __tablename__ = "event_logs"

    id = Column(String(36), primary_key=True, default=new_id)
    event_id = Column(String(36), ForeignKey("events.id"), nullable=False)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    value = Column(Float, nullable=False, default=0)
    log_metadata = Column("metadata", JSON)
    created_by_id = Column(String(36), ForeignKey("users.id"))
    # Set client-side: aggregation windows and ordering need sub-second precision
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index('idx_event_log_user_event_date', 'user_id', 'event_id', 'created_at'),
    )

    # Relationships
    event = relationship("Event", back_populates="logs")


# ============================================================
# ACHIEVEMENTS
# ============================================================

class Achievement(Base):
    __tablename__ = "achievements"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    community_id = Column(String(36), ForeignKey("communities.id"))  # null = global
    created_by_id = Column(String(36), ForeignKey("users.id"))
    status = _enum_column(AchievementStatus, default=AchievementStatus.ACTIVE, nullable=False)

    # Validity window
    date_from = Column(DateTime)
    date_to = Column(DateTime)
    frequency_limit = Column(Integer, nullable=False, default=0)  # 0 = unlimited

    # Condition
    condition_event_id = Column(String(36), ForeignKey("events.id"), nullable=False)
    condition_date_from = Column(DateTime)
    condition_date_to = Column(DateTime)
    condition_event_count_limit = Column(Integer)  # null = all matching logs
    condition_event_aggregate_type = _enum_column(
        AggregateType, default=AggregateType.COUNT, nullable=False
    )
    condition_event_comparison_type = _enum_column(
        ComparisonType, default=ComparisonType.GREATER_THAN_OR_EQUAL, nullable=False
    )
    condition_event_value = Column(Float, nullable=False, default=1)

    # Reward
    reward_type = _enum_column(RewardType, default=RewardType.POINTS, nullable=False)
    reward_amount = Column(Numeric(18, 2))

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, onupdate=func.now())

    __table_args__ = (
        Index('idx_achievement_event_status', 'condition_event_id', 'status'),
    )

    # Relationships
    condition_event = relationship("Event", back_populates="achievements")
    rewards = relationship("AchievementReward", back_populates="achievement")


class AchievementReward(Base):
    __tablename__ = "achievement_rewards"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    achievement_id = Column(String(36), ForeignKey("achievements.id"), nullable=False)
    wallet_id = Column(String(36), ForeignKey("wallets.id"))
    event_log_id = Column(String(36), ForeignKey("event_logs.id"))
    issued_by_id = Column(String(36), ForeignKey("users.id"))
    claimed_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint('user_id', 'achievement_id', 'event_log_id', name='unique_reward_per_occurrence'),
        Index('idx_achievement_reward_user', 'user_id', 'achievement_id'),
    )

    # Relationships
    user = relationship("User", back_populates="rewards", foreign_keys=[user_id])
    achievement = relationship("Achievement", back_populates="rewards")
    wallet = relationship("Wallet")


# ============================================================
# LEDGER
# ============================================================

class Wallet(Base):
    __tablename__ = "wallets"

    id = Column(String(36), primary_key=True, default=new_id)
    owner_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    community_id = Column(String(36), ForeignKey("communities.id"))
    token = Column(String(50), default="POINTS")
    balance = Column(Numeric(18, 2), nullable=False, default=0)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, onupdate=func.now())

    __table_args__ = (
        Index('idx_wallet_owner_community', 'owner_id', 'community_id'),
    )

    # Relationships
    owner = relationship("User", back_populates="wallets")


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=new_id)
    sender_id = Column(String(36), ForeignKey("users.id"))
    receiver_id = Column(String(36), ForeignKey("users.id"))
    sender_wallet_id = Column(String(36), ForeignKey("wallets.id"))
    receiver_wallet_id = Column(String(36), ForeignKey("wallets.id"))
    community_id = Column(String(36), ForeignKey("communities.id"))
    amount = Column(Numeric(18, 2), nullable=False)
    transaction_type = _enum_column(TransactionType, nullable=False)
    transaction_subtype = _enum_column(TransactionSubtype, nullable=False)
    status = _enum_column(TransactionStatus, default=TransactionStatus.COMPLETED, nullable=False)
    description = Column(Text)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index('idx_transaction_receiver_wallet', 'receiver_wallet_id'),
    )


# ============================================================
# WORKER
# ============================================================

class FailedEventJob(Base):
    """Event jobs parked after exhausting their retries"""
    __tablename__ = "failed_event_jobs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    task_id = Column(String(255))
    payload = Column(JSON, nullable=False)
    error = Column(Text)
    attempts = Column(Integer, default=0)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    requeued_at = Column(DateTime)
