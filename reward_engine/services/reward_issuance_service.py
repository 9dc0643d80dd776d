"""
Reward Issuance Service - Grants achievement rewards and pays them out

Issuing and claiming each run as a single database transaction: the
frequency-limit re-check, the wallet credit with its ledger row and the
AchievementReward write either all land or none do.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from reward_engine.db.database import atomic
from reward_engine.db.models import (
    Achievement, AchievementReward, RewardType, TransactionSubtype,
    TransactionType, User, Wallet
)
from reward_engine.errors import (
    DuplicateRewardError, FrequencyLimitReachedError, InvalidAchievementError,
    RewardAlreadyClaimedError, RewardNotFoundError, UnsupportedRewardTypeError,
    UserNotFoundError, WalletNotFoundError
)
from reward_engine.services.ledger_service import LedgerEntry, apply_ledger_credit
from reward_engine.services.wallet_service import wallet_service

logger = logging.getLogger(__name__)


class RewardIssuanceService:
    """Creates AchievementReward rows and the ledger credits behind them"""

    def issue(
        self,
        db: Session,
        user_id: str,
        achievement: Achievement,
        wallet_id: Optional[str] = None,
        event_log_id: Optional[str] = None,
        issued_by_id: Optional[str] = None
    ) -> AchievementReward:
        """
        Grant an achievement to a user.

        Points rewards with a resolvable wallet are paid immediately and
        marked claimed. Anything else is recorded unclaimed for a later
        claim. Raises FrequencyLimitReachedError when the user already holds
        the maximum number of grants and DuplicateRewardError when this
        occurrence was already rewarded.
        """
        achievement_id = achievement.id

        try:
            with atomic(db):
                self._lock_user(db, user_id)
                self._check_frequency_limit(db, user_id, achievement)

                reward = AchievementReward(
                    user_id=user_id,
                    achievement_id=achievement_id,
                    event_log_id=event_log_id,
                    issued_by_id=issued_by_id
                )

                if achievement.reward_type == RewardType.POINTS:
                    wallet = wallet_service.resolve_reward_wallet(
                        db, user_id, achievement.community_id, wallet_id
                    )
                    if wallet is not None:
                        self._pay_points(db, user_id, achievement, wallet)
                        reward.wallet_id = wallet.id
                        reward.claimed_at = datetime.utcnow()
                    else:
                        logger.info(
                            f"No wallet for user {user_id} in community {achievement.community_id}, "
                            f"achievement {achievement_id} granted unclaimed"
                        )
                else:
                    logger.info(
                        f"Achievement {achievement_id} has {achievement.reward_type.value} reward, "
                        f"granted unclaimed"
                    )

                db.add(reward)
                db.flush()
        except IntegrityError as e:
            raise DuplicateRewardError(
                "Reward already issued for this occurrence",
                data={
                    "user_id": user_id,
                    "achievement_id": achievement_id,
                    "event_log_id": event_log_id
                }
            ) from e

        logger.info(f"Issued achievement {achievement_id} to user {user_id} (reward {reward.id})")
        return reward

    def claim(
        self,
        db: Session,
        user_id: str,
        reward_id: str,
        wallet_id: Optional[str] = None
    ) -> AchievementReward:
        """
        Pay out an unclaimed reward.

        Points are credited to ``wallet_id`` (or the user's wallet in the
        achievement's community). Badge and coupon rewards are marked claimed
        without touching any balance.
        """
        with atomic(db):
            reward = db.query(AchievementReward).filter(
                AchievementReward.id == reward_id,
                AchievementReward.user_id == user_id
            ).with_for_update().first()

            if not reward:
                raise RewardNotFoundError(
                    "Reward not found",
                    data={"reward_id": reward_id, "user_id": user_id}
                )
            if reward.claimed_at is not None:
                raise self._already_claimed(reward)

            achievement = reward.achievement
            if achievement.reward_type == RewardType.POINTS_CUSTOM:
                raise UnsupportedRewardTypeError(
                    "Custom points rewards cannot be claimed yet",
                    data={"reward_id": reward_id, "reward_type": achievement.reward_type.value}
                )

            values = {"claimed_at": datetime.utcnow()}
            wallet = None

            if achievement.reward_type == RewardType.POINTS:
                wallet = wallet_service.resolve_reward_wallet(
                    db, user_id, achievement.community_id, wallet_id
                )
                if wallet is None:
                    raise WalletNotFoundError(
                        "No wallet to pay the reward into",
                        data={"reward_id": reward_id, "user_id": user_id}
                    )
                values["wallet_id"] = wallet.id

            # Conditional write: of two racing claims only one flips claimed_at
            result = db.execute(
                update(AchievementReward)
                .where(
                    AchievementReward.id == reward.id,
                    AchievementReward.claimed_at.is_(None)
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise self._already_claimed(reward)

            if wallet is not None:
                self._pay_points(db, user_id, achievement, wallet)
            else:
                logger.warning(
                    f"Unhandled payout for {achievement.reward_type.value} reward {reward_id}, "
                    f"marked claimed without balance change"
                )

        db.refresh(reward)
        logger.info(f"User {user_id} claimed reward {reward_id}")
        return reward

    def count_rewards(self, db: Session, user_id: str, achievement_id: str) -> int:
        return db.query(func.count(AchievementReward.id)).filter(
            AchievementReward.user_id == user_id,
            AchievementReward.achievement_id == achievement_id
        ).scalar() or 0

    def _lock_user(self, db: Session, user_id: str) -> User:
        # Serializes concurrent grants for one user until commit
        user = db.query(User).filter(User.id == user_id).with_for_update().first()
        if not user:
            raise UserNotFoundError("User not found", data={"user_id": user_id})
        return user

    def _check_frequency_limit(self, db: Session, user_id: str, achievement: Achievement):
        limit = achievement.frequency_limit or 0
        if limit <= 0:
            return

        existing = self.count_rewards(db, user_id, achievement.id)
        if existing >= limit:
            raise FrequencyLimitReachedError(
                "Achievement frequency limit reached",
                data={
                    "user_id": user_id,
                    "achievement_id": achievement.id,
                    "frequency_limit": limit,
                    "existing_rewards": existing
                }
            )

    def _pay_points(self, db: Session, user_id: str, achievement: Achievement, wallet: Wallet):
        if achievement.reward_amount is None:
            raise InvalidAchievementError(
                "Points achievement has no reward amount",
                data={"achievement_id": achievement.id}
            )

        apply_ledger_credit(
            db,
            wallet.id,
            achievement.reward_amount,
            LedgerEntry(
                receiver_id=user_id,
                transaction_type=TransactionType.REWARD,
                transaction_subtype=TransactionSubtype.POINTS,
                description=f"Achievement reward: {achievement.name}",
                community_id=achievement.community_id
            )
        )

    def _already_claimed(self, reward: AchievementReward) -> RewardAlreadyClaimedError:
        return RewardAlreadyClaimedError(
            "Reward already claimed",
            data={"reward_id": reward.id, "user_id": reward.user_id}
        )


# Singleton instance
reward_issuance_service = RewardIssuanceService()
