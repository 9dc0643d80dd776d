import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("API_KEY", "test-api-key")

from datetime import datetime
from decimal import Decimal

import pytest

from reward_engine.db.database import Base, SessionLocal, engine
from reward_engine.db.models import (
    Achievement, AchievementStatus, AggregateType, Community, CommunityMember,
    CommunityRole, ComparisonType, Event, EventLog, RewardType, User,
    UserRole, Wallet
)


class Factory:
    """Builds committed rows for tests"""

    def __init__(self, db):
        self.db = db
        self._seq = 0

    def _save(self, obj):
        self.db.add(obj)
        self.db.commit()
        self.db.refresh(obj)
        return obj

    def user(self, role=UserRole.USER, name=None):
        self._seq += 1
        return self._save(User(
            name=name or f"user{self._seq}",
            email=f"user{self._seq}@example.com",
            role=role
        ))

    def community(self, owner, name="Coffee Club"):
        return self._save(Community(name=name, created_by_id=owner.id))

    def member(self, community, user, role=CommunityRole.MEMBER):
        return self._save(CommunityMember(community_id=community.id, user_id=user.id, role=role))

    def event(self, community, creator=None, tag="purchase_completed"):
        return self._save(Event(
            tag=tag,
            community_id=community.id,
            created_by_id=creator.id if creator else community.created_by_id
        ))

    def wallet(self, owner, community=None, balance=0):
        return self._save(Wallet(
            owner_id=owner.id,
            community_id=community.id if community else None,
            balance=Decimal(str(balance))
        ))

    def achievement(self, event, **overrides):
        fields = dict(
            name="Regular customer",
            community_id=event.community_id,
            status=AchievementStatus.ACTIVE,
            frequency_limit=0,
            condition_event_id=event.id,
            condition_event_aggregate_type=AggregateType.COUNT,
            condition_event_comparison_type=ComparisonType.GREATER_THAN_OR_EQUAL,
            condition_event_value=1,
            reward_type=RewardType.POINTS,
            reward_amount=Decimal("10"),
        )
        fields.update(overrides)
        return self._save(Achievement(**fields))

    def log(self, event, user, value=0, created_at=None):
        return self._save(EventLog(
            event_id=event.id,
            user_id=user.id,
            value=value,
            created_at=created_at or datetime.utcnow()
        ))


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def factory(db):
    return Factory(db)


@pytest.fixture
def setup(factory):
    """A community with an owner, a member with a community wallet and a purchase event"""
    owner = factory.user(name="owner")
    community = factory.community(owner)
    member = factory.user(name="member")
    factory.member(community, member)
    wallet = factory.wallet(member, community)
    event = factory.event(community)
    return {
        "owner": owner,
        "community": community,
        "member": member,
        "wallet": wallet,
        "event": event,
    }
