"""
Condition Evaluator - Decides whether an achievement's event condition holds

The aggregate over a user's event logs is computed in a single query
(count, sum, avg, min and max together) and the comparison itself is a pure
function of that snapshot, so it can be exercised without a database.
"""
import logging
import operator
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Optional, Union

from sqlalchemy import func
from sqlalchemy.orm import Session

from reward_engine.db.models import (
    Achievement, AggregateType, ComparisonType, EventLog
)
from reward_engine.errors import UnsupportedConditionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EventAggregate:
    """Aggregate of the event log values inside a condition window"""
    count: int = 0
    sum: Optional[float] = None
    avg: Optional[float] = None
    min: Optional[float] = None
    max: Optional[float] = None


COMPARATORS: Dict[ComparisonType, Callable[[float, float], bool]] = {
    ComparisonType.EQUAL: operator.eq,
    ComparisonType.GREATER_THAN: operator.gt,
    ComparisonType.GREATER_THAN_OR_EQUAL: operator.ge,
    ComparisonType.LESS_THAN: operator.lt,
    ComparisonType.LESS_THAN_OR_EQUAL: operator.le,
}

AGGREGATE_SELECTORS: Dict[AggregateType, Callable[[EventAggregate], float]] = {
    AggregateType.COUNT: lambda agg: agg.count,
    AggregateType.SUM: lambda agg: agg.sum or 0,
    AggregateType.AVG: lambda agg: agg.avg or 0,
    AggregateType.MIN: lambda agg: agg.min or 0,
    AggregateType.MAX: lambda agg: agg.max or 0,
}


def aggregate_event_logs(
    db: Session,
    user_id: str,
    event_id: str,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    limit: Optional[int] = None
) -> EventAggregate:
    """
    Aggregate the most recent event logs of one user for one event.

    Window bounds are inclusive and either may be open. ``limit`` keeps
    only the newest ``limit`` logs; None means all of them.
    """
    query = db.query(EventLog.value.label("value")).filter(
        EventLog.user_id == user_id,
        EventLog.event_id == event_id
    )

    if date_from is not None:
        query = query.filter(EventLog.created_at >= date_from)
    if date_to is not None:
        query = query.filter(EventLog.created_at <= date_to)

    recent = query.order_by(EventLog.created_at.desc()).limit(limit).subquery()

    row = db.query(
        func.count(),
        func.sum(recent.c.value),
        func.avg(recent.c.value),
        func.min(recent.c.value),
        func.max(recent.c.value)
    ).select_from(recent).one()

    return EventAggregate(
        count=row[0] or 0,
        sum=_as_float(row[1]),
        avg=_as_float(row[2]),
        min=_as_float(row[3]),
        max=_as_float(row[4])
    )


def aggregate_for_achievement(
    db: Session,
    user_id: str,
    achievement: Achievement
) -> EventAggregate:
    """Aggregate using the achievement's condition window and count limit"""
    return aggregate_event_logs(
        db,
        user_id=user_id,
        event_id=achievement.condition_event_id,
        date_from=achievement.condition_date_from,
        date_to=achievement.condition_date_to,
        limit=achievement.condition_event_count_limit
    )


def select_comparison_value(
    aggregate_type: Union[AggregateType, str],
    aggregate: EventAggregate
) -> float:
    """Pick the scalar the condition compares against its threshold"""
    try:
        aggregate_type = AggregateType(aggregate_type)
    except ValueError:
        raise UnsupportedConditionError(
            f"Unknown aggregate type {aggregate_type!r}",
            data={"aggregate_type": str(aggregate_type)}
        )

    if aggregate_type is AggregateType.CUSTOM:
        raise UnsupportedConditionError(
            "Custom aggregate conditions are not evaluated by the generic comparator",
            data={"aggregate_type": aggregate_type.value}
        )

    return AGGREGATE_SELECTORS[aggregate_type](aggregate)


def compare(
    comparison_type: Union[ComparisonType, str, None],
    value: float,
    threshold: float
) -> bool:
    """Apply the comparison; unknown comparison types never pass"""
    try:
        comparator = COMPARATORS[ComparisonType(comparison_type)]
    except (ValueError, KeyError):
        logger.warning(f"Unknown comparison type {comparison_type!r}, condition fails closed")
        return False

    return comparator(value, threshold)


def evaluate(achievement: Achievement, aggregate: EventAggregate) -> bool:
    """
    Decide whether the aggregate satisfies the achievement's condition.

    Raises UnsupportedConditionError for CUSTOM aggregates.
    """
    value = select_comparison_value(achievement.condition_event_aggregate_type, aggregate)
    threshold = achievement.condition_event_value

    if threshold is None:
        logger.warning(f"Achievement {achievement.id} has no condition value, condition fails closed")
        return False

    return compare(achievement.condition_event_comparison_type, value, float(threshold))


def _as_float(value) -> Optional[float]:
    return float(value) if value is not None else None
