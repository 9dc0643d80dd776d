"""
Typed errors raised by the reward engine.

Every error carries a stable numeric code, the offending identifiers in
``data`` and the HTTP status the API layer should answer with. ``retryable``
tells the worker whether repeating the job can succeed.
"""
from enum import IntEnum
from typing import Any, Dict, Optional


class ErrorCode(IntEnum):
    UNKNOWN = 0

    # general errors
    INVALID_REQUEST_DATA = 104
    INVALID_ACCESS_CONTROL = 106
    USER_NOT_FOUND = 102

    # community errors
    INVALID_COMMUNITY = 200
    INVALID_COMMUNITY_ACCESS = 203

    # wallet errors
    INVALID_WALLET_ID = 300
    WALLET_COMMUNITY_MISMATCH = 301

    # event errors
    EVENT_NOT_FOUND = 400
    EVENT_LOG_NOT_FOUND = 401

    # achievement errors
    ACHIEVEMENT_NOT_FOUND = 500
    INVALID_ACHIEVEMENT = 501
    REWARD_NOT_FOUND = 502
    REWARD_ALREADY_CLAIMED = 503
    FREQUENCY_LIMIT_REACHED = 504
    DUPLICATE_REWARD = 505
    UNSUPPORTED_CONDITION = 506
    UNSUPPORTED_REWARD_TYPE = 507

    # infrastructure errors
    QUEUE_UNAVAILABLE = 900
    TRANSIENT_FAILURE = 901


class RewardEngineError(Exception):
    """Base error with a stable code and structured data"""

    default_code = ErrorCode.UNKNOWN
    status_code = 500
    retryable = False

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        data: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code if code is not None else self.default_code
        self.data = data or {}
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": int(self.code),
            "name": self.code.name,
            "message": self.message,
            "data": self.data,
        }


# ============================================================
# Transient infrastructure errors
# ============================================================

class QueueUnavailableError(RewardEngineError):
    default_code = ErrorCode.QUEUE_UNAVAILABLE
    status_code = 503
    retryable = True


class TransientJobError(RewardEngineError):
    default_code = ErrorCode.TRANSIENT_FAILURE
    status_code = 503
    retryable = True


# ============================================================
# Missing references
# ============================================================

class NotFoundError(RewardEngineError):
    status_code = 404


class UserNotFoundError(NotFoundError):
    default_code = ErrorCode.USER_NOT_FOUND


class CommunityNotFoundError(NotFoundError):
    default_code = ErrorCode.INVALID_COMMUNITY


class EventNotFoundError(NotFoundError):
    default_code = ErrorCode.EVENT_NOT_FOUND


class EventLogNotFoundError(NotFoundError):
    default_code = ErrorCode.EVENT_LOG_NOT_FOUND


class AchievementNotFoundError(NotFoundError):
    default_code = ErrorCode.ACHIEVEMENT_NOT_FOUND


class WalletNotFoundError(NotFoundError):
    default_code = ErrorCode.INVALID_WALLET_ID


class RewardNotFoundError(NotFoundError):
    default_code = ErrorCode.REWARD_NOT_FOUND


# ============================================================
# Business-rule violations
# ============================================================

class AccessDeniedError(RewardEngineError):
    default_code = ErrorCode.INVALID_ACCESS_CONTROL
    status_code = 403


class InvalidRequestError(RewardEngineError):
    default_code = ErrorCode.INVALID_REQUEST_DATA
    status_code = 400


class InvalidAchievementError(RewardEngineError):
    default_code = ErrorCode.INVALID_ACHIEVEMENT
    status_code = 400


class WalletCommunityMismatchError(RewardEngineError):
    default_code = ErrorCode.WALLET_COMMUNITY_MISMATCH
    status_code = 400


class RewardAlreadyClaimedError(RewardEngineError):
    default_code = ErrorCode.REWARD_ALREADY_CLAIMED
    status_code = 409


class FrequencyLimitReachedError(RewardEngineError):
    default_code = ErrorCode.FREQUENCY_LIMIT_REACHED
    status_code = 409


class DuplicateRewardError(RewardEngineError):
    default_code = ErrorCode.DUPLICATE_REWARD
    status_code = 409


# ============================================================
# Unhandled variants
# ============================================================

class UnsupportedConditionError(RewardEngineError):
    default_code = ErrorCode.UNSUPPORTED_CONDITION
    status_code = 501


class UnsupportedRewardTypeError(RewardEngineError):
    default_code = ErrorCode.UNSUPPORTED_REWARD_TYPE
    status_code = 501
