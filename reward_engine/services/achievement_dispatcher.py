"""
Achievement Dispatcher - Turns one "user performed event X" job into rewards

For each job:
- Loads the event, the triggering event log (the user's newest log for the
  event when the job names none) and every active, currently valid
  achievement bound to the event, with the user's existing grant count
- Skips achievements whose frequency limit is already used up
- Evaluates the rest against the user's aggregated event logs
- Issues a reward for each satisfied achievement

Achievements are handled independently: any error on one is recorded and
the loop moves on. Transient database errors are re-raised after the loop
as TransientJobError so the worker retries the whole job; grants that
already went through are not repeated thanks to the issuance checks.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from celery.exceptions import SoftTimeLimitExceeded
from sqlalchemy import func, or_
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from reward_engine.db.models import (
    Achievement, AchievementReward, AchievementStatus, Event, EventLog
)
from reward_engine.errors import (
    ErrorCode, EventLogNotFoundError, EventNotFoundError, RewardEngineError,
    TransientJobError, UnsupportedConditionError
)
from reward_engine.services.condition_evaluator import aggregate_for_achievement, evaluate
from reward_engine.services.reward_issuance_service import reward_issuance_service

logger = logging.getLogger(__name__)


@dataclass
class DispatchResult:
    """Outcome of one processed job"""
    event_id: str
    user_id: str
    evaluated: int = 0
    issued: List[str] = field(default_factory=list)
    skipped: List[Dict[str, str]] = field(default_factory=list)
    failed: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "user_id": self.user_id,
            "evaluated": self.evaluated,
            "issued": self.issued,
            "skipped": self.skipped,
            "failed": self.failed,
        }


class AchievementDispatcher:
    """Evaluates the achievements an event may have unlocked"""

    def __init__(self, issuance=reward_issuance_service):
        self.issuance = issuance

    def process(
        self,
        db: Session,
        event_id: str,
        user_id: str,
        event_log_id: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> DispatchResult:
        """Process one event job; see the module docstring"""
        now = now or datetime.utcnow()
        result = DispatchResult(event_id=event_id, user_id=user_id)

        event = db.query(Event).filter(Event.id == event_id).first()
        if not event:
            raise EventNotFoundError("Event not found", data={"event_id": event_id})

        if event_log_id is not None:
            self._load_event_log(db, event_id, user_id, event_log_id)
        else:
            event_log_id = self._latest_event_log_id(db, event_id, user_id)

        candidates = self.load_candidates(db, event_id, user_id, now)
        logger.info(f"Event {event_id} for user {user_id}: {len(candidates)} candidate achievements")

        transient_errors = []

        # Ids are read up front; a commit expires the rows and one may vanish mid-job
        candidate_ids = [achievement.id for achievement, _ in candidates]

        for achievement_id, (achievement, reward_count) in zip(candidate_ids, candidates):
            try:
                self._handle_achievement(db, achievement, reward_count, user_id, event_log_id, result)
            except SoftTimeLimitExceeded:
                db.rollback()
                raise
            except OperationalError as e:
                db.rollback()
                logger.error(f"Transient error on achievement {achievement_id}: {e}")
                transient_errors.append(achievement_id)
                result.failed.append({"achievement_id": achievement_id, "error": "TRANSIENT_FAILURE"})
            except RewardEngineError as e:
                db.rollback()
                if isinstance(e, UnsupportedConditionError):
                    logger.warning(f"Unhandled condition on achievement {achievement_id}: {e.message}")
                else:
                    logger.warning(f"Achievement {achievement_id} abandoned for user {user_id}: {e.message}")
                result.failed.append({"achievement_id": achievement_id, "error": e.code.name})
            except Exception:
                db.rollback()
                logger.exception(f"Unexpected error on achievement {achievement_id} for user {user_id}")
                result.failed.append({"achievement_id": achievement_id, "error": ErrorCode.UNKNOWN.name})

        if transient_errors:
            raise TransientJobError(
                "Transient failure while processing achievements",
                data={"event_id": event_id, "user_id": user_id, "achievement_ids": transient_errors}
            )

        logger.info(
            f"Event {event_id} for user {user_id}: evaluated {result.evaluated}, "
            f"issued {len(result.issued)}, skipped {len(result.skipped)}, failed {len(result.failed)}"
        )
        return result

    def load_candidates(
        self,
        db: Session,
        event_id: str,
        user_id: str,
        now: datetime
    ) -> List[Tuple[Achievement, int]]:
        """Active achievements valid at ``now`` with the user's grant count for each"""
        reward_counts = db.query(
            AchievementReward.achievement_id.label("achievement_id"),
            func.count(AchievementReward.id).label("reward_count")
        ).filter(
            AchievementReward.user_id == user_id
        ).group_by(AchievementReward.achievement_id).subquery()

        rows = db.query(
            Achievement,
            func.coalesce(reward_counts.c.reward_count, 0)
        ).outerjoin(
            reward_counts, reward_counts.c.achievement_id == Achievement.id
        ).filter(
            Achievement.condition_event_id == event_id,
            Achievement.status == AchievementStatus.ACTIVE,
            or_(Achievement.date_from.is_(None), Achievement.date_from <= now),
            or_(Achievement.date_to.is_(None), Achievement.date_to >= now)
        ).order_by(Achievement.created_at).all()

        return [(achievement, int(count)) for achievement, count in rows]

    def _handle_achievement(
        self,
        db: Session,
        achievement: Achievement,
        reward_count: int,
        user_id: str,
        event_log_id: Optional[str],
        result: DispatchResult
    ):
        limit = achievement.frequency_limit or 0
        if limit > 0 and reward_count >= limit:
            result.skipped.append({"achievement_id": achievement.id, "reason": "FREQUENCY_LIMIT_REACHED"})
            return

        aggregate = aggregate_for_achievement(db, user_id, achievement)
        result.evaluated += 1

        if not evaluate(achievement, aggregate):
            result.skipped.append({"achievement_id": achievement.id, "reason": "CONDITION_NOT_MET"})
            return

        reward = self.issuance.issue(db, user_id, achievement, event_log_id=event_log_id)
        result.issued.append(reward.id)

    def _latest_event_log_id(self, db: Session, event_id: str, user_id: str) -> Optional[str]:
        # Jobs without a log id are keyed on the newest log so a redelivery dedups
        row = db.query(EventLog.id).filter(
            EventLog.user_id == user_id,
            EventLog.event_id == event_id
        ).order_by(EventLog.created_at.desc(), EventLog.id.desc()).first()
        return row[0] if row else None

    def _load_event_log(
        self,
        db: Session,
        event_id: str,
        user_id: str,
        event_log_id: str
    ) -> EventLog:
        # Scoped to the job's user so a stale or foreign log is never acted on
        event_log = db.query(EventLog).filter(
            EventLog.id == event_log_id,
            EventLog.user_id == user_id,
            EventLog.event_id == event_id
        ).first()

        if not event_log:
            raise EventLogNotFoundError(
                "Event log not found for user",
                data={"event_log_id": event_log_id, "user_id": user_id, "event_id": event_id}
            )
        return event_log


# Singleton instance
achievement_dispatcher = AchievementDispatcher()
