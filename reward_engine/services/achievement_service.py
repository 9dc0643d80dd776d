"""
Achievement Service - Achievement definitions and the manual reward paths
"""
import logging
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session

from reward_engine.db.models import (
    Achievement, AchievementReward, Event, RewardType
)
from reward_engine.errors import (
    AccessDeniedError, AchievementNotFoundError, InvalidAchievementError,
    RewardNotFoundError
)
from reward_engine.services.community_service import community_service
from reward_engine.services.reward_issuance_service import reward_issuance_service

logger = logging.getLogger(__name__)

# Fields an update may change; ownership fields are fixed at creation
UPDATABLE_FIELDS = {
    "name", "description", "status", "date_from", "date_to", "frequency_limit",
    "condition_event_id", "condition_date_from", "condition_date_to",
    "condition_event_count_limit", "condition_event_aggregate_type",
    "condition_event_comparison_type", "condition_event_value",
    "reward_type", "reward_amount",
}


class AchievementService:
    """Service for managing achievements and admin-issued rewards"""

    def create_achievement(
        self,
        db: Session,
        user_id: str,
        data: Dict[str, Any]
    ) -> Achievement:
        """
        Create an achievement.

        Only system admins may create global achievements (no community);
        community achievements need edit access on the community.
        """
        self._require_manage_access(db, user_id, data.get("community_id"))
        self._validate(db, data)

        achievement = Achievement(**data, created_by_id=user_id)
        db.add(achievement)
        db.commit()
        db.refresh(achievement)

        logger.info(f"User {user_id} created achievement {achievement.id}")
        return achievement

    def update_achievement(
        self,
        db: Session,
        user_id: str,
        achievement_id: str,
        data: Dict[str, Any]
    ) -> Achievement:
        achievement = self.get_achievement(db, achievement_id)
        self._require_manage_access(db, user_id, achievement.community_id)

        unknown = set(data) - UPDATABLE_FIELDS
        if unknown:
            raise InvalidAchievementError(
                "Fields cannot be updated",
                data={"fields": sorted(unknown)}
            )

        merged = {field: getattr(achievement, field) for field in UPDATABLE_FIELDS}
        merged.update(data)
        merged["community_id"] = achievement.community_id
        self._validate(db, merged)

        for field, value in data.items():
            setattr(achievement, field, value)
        db.commit()
        db.refresh(achievement)

        logger.info(f"User {user_id} updated achievement {achievement_id}")
        return achievement

    def get_achievement(self, db: Session, achievement_id: str) -> Achievement:
        achievement = db.query(Achievement).filter(Achievement.id == achievement_id).first()
        if not achievement:
            raise AchievementNotFoundError(
                "Achievement not found",
                data={"achievement_id": achievement_id}
            )
        return achievement

    def issue_achievement_reward(
        self,
        db: Session,
        admin_id: str,
        achievement_id: str,
        user_id: str,
        wallet_id: Optional[str] = None
    ) -> AchievementReward:
        """Manually grant an achievement; the caller must manage it"""
        achievement = self.get_achievement(db, achievement_id)
        self._require_manage_access(db, admin_id, achievement.community_id)

        return reward_issuance_service.issue(
            db,
            user_id,
            achievement,
            wallet_id=wallet_id,
            issued_by_id=admin_id
        )

    def claim_achievement_reward(
        self,
        db: Session,
        user_id: str,
        achievement_id: str,
        reward_id: str,
        wallet_id: Optional[str] = None
    ) -> AchievementReward:
        """Claim one of the user's rewards for this achievement"""
        reward = db.query(AchievementReward).filter(
            AchievementReward.id == reward_id,
            AchievementReward.user_id == user_id,
            AchievementReward.achievement_id == achievement_id
        ).first()

        if not reward:
            raise RewardNotFoundError(
                "Reward not found",
                data={"reward_id": reward_id, "achievement_id": achievement_id, "user_id": user_id}
            )

        return reward_issuance_service.claim(db, user_id, reward_id, wallet_id)

    def list_user_rewards(
        self,
        db: Session,
        user_id: str,
        achievement_id: Optional[str] = None,
        unclaimed_only: bool = False
    ) -> List[AchievementReward]:
        query = db.query(AchievementReward).filter(AchievementReward.user_id == user_id)

        if achievement_id:
            query = query.filter(AchievementReward.achievement_id == achievement_id)
        if unclaimed_only:
            query = query.filter(AchievementReward.claimed_at.is_(None))

        return query.order_by(AchievementReward.created_at.desc()).all()

    def _require_manage_access(self, db: Session, user_id: str, community_id: Optional[str]):
        if community_id is None:
            if not community_service.is_system_admin(db, user_id):
                raise AccessDeniedError(
                    "Only system admins can manage achievements outside of communities",
                    data={"user_id": user_id}
                )
            return

        community_service.require_edit_access(db, community_id, user_id)

    def _validate(self, db: Session, data: Dict[str, Any]):
        """Reject internally inconsistent achievement definitions"""
        event_id = data.get("condition_event_id")
        if not event_id:
            raise InvalidAchievementError(
                "Event conditions require condition_event_id",
                data={"field": "condition_event_id"}
            )

        event = db.query(Event).filter(Event.id == event_id).first()
        if not event:
            raise InvalidAchievementError(
                "Condition event not found",
                data={"condition_event_id": event_id}
            )

        community_id = data.get("community_id")
        if community_id is not None and event.community_id != community_id:
            raise InvalidAchievementError(
                "Condition event belongs to another community",
                data={"condition_event_id": event_id, "community_id": community_id}
            )

        reward_type = data.get("reward_type") or RewardType.POINTS
        reward_amount = data.get("reward_amount")
        if reward_type == RewardType.POINTS and (reward_amount is None or reward_amount <= 0):
            raise InvalidAchievementError(
                "Reward type POINTS requires a positive reward_amount",
                data={"field": "reward_amount"}
            )

        for start, end in (("date_from", "date_to"), ("condition_date_from", "condition_date_to")):
            if data.get(start) and data.get(end) and data[start] > data[end]:
                raise InvalidAchievementError(
                    f"{start} must not be after {end}",
                    data={start: data[start].isoformat(), end: data[end].isoformat()}
                )

        if (data.get("frequency_limit") or 0) < 0:
            raise InvalidAchievementError(
                "frequency_limit must not be negative",
                data={"field": "frequency_limit"}
            )

        count_limit = data.get("condition_event_count_limit")
        if count_limit is not None and count_limit <= 0:
            raise InvalidAchievementError(
                "condition_event_count_limit must be positive",
                data={"field": "condition_event_count_limit"}
            )


# Singleton instance
achievement_service = AchievementService()
