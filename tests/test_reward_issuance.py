from decimal import Decimal

import pytest

from reward_engine.db.models import AchievementReward, RewardType, Transaction, TransactionType
from reward_engine.errors import (
    DuplicateRewardError, FrequencyLimitReachedError, RewardAlreadyClaimedError,
    RewardNotFoundError, UnsupportedRewardTypeError, UserNotFoundError,
    WalletCommunityMismatchError, WalletNotFoundError
)
from reward_engine.services import ledger_service
from reward_engine.services.reward_issuance_service import reward_issuance_service


def balance_of(db, wallet):
    db.refresh(wallet)
    return wallet.balance


class TestIssue:

    def test_points_paid_into_community_wallet(self, setup, factory, db):
        achievement = factory.achievement(setup["event"], name="Loyal", reward_amount=Decimal("25"))

        reward = reward_issuance_service.issue(db, setup["member"].id, achievement)

        assert reward.wallet_id == setup["wallet"].id
        assert reward.claimed_at is not None
        assert balance_of(db, setup["wallet"]) == Decimal("25")

        transaction = db.query(Transaction).one()
        assert transaction.amount == Decimal("25")
        assert transaction.receiver_id == setup["member"].id
        assert transaction.receiver_wallet_id == setup["wallet"].id
        assert transaction.transaction_type == TransactionType.REWARD
        assert transaction.description == "Achievement reward: Loyal"

    def test_no_wallet_grants_unclaimed(self, setup, factory, db):
        stranger = factory.user()
        achievement = factory.achievement(setup["event"])

        reward = reward_issuance_service.issue(db, stranger.id, achievement)

        assert reward.claimed_at is None
        assert reward.wallet_id is None
        assert db.query(Transaction).count() == 0

    def test_global_achievement_uses_global_wallet(self, setup, factory, db):
        global_wallet = factory.wallet(setup["member"], balance=1)
        achievement = factory.achievement(setup["event"], community_id=None)

        reward = reward_issuance_service.issue(db, setup["member"].id, achievement)

        assert reward.wallet_id == global_wallet.id
        assert balance_of(db, global_wallet) == Decimal("11")
        assert balance_of(db, setup["wallet"]) == Decimal("0")

    def test_badge_reward_granted_unclaimed(self, setup, factory, db):
        achievement = factory.achievement(setup["event"], reward_type=RewardType.BADGE, reward_amount=None)

        reward = reward_issuance_service.issue(db, setup["member"].id, achievement)

        assert reward.claimed_at is None
        assert balance_of(db, setup["wallet"]) == Decimal("0")

    def test_explicit_wallet_from_other_community_rejected(self, setup, factory, db):
        other_community = factory.community(setup["owner"], name="Other")
        other_wallet = factory.wallet(setup["member"], other_community)
        achievement = factory.achievement(setup["event"])

        with pytest.raises(WalletCommunityMismatchError):
            reward_issuance_service.issue(db, setup["member"].id, achievement, wallet_id=other_wallet.id)

        assert db.query(AchievementReward).count() == 0

    def test_explicit_wallet_of_other_user_rejected(self, setup, factory, db):
        achievement = factory.achievement(setup["event"])

        with pytest.raises(WalletNotFoundError):
            reward_issuance_service.issue(db, setup["owner"].id, achievement, wallet_id=setup["wallet"].id)

    def test_unknown_user_rejected(self, setup, factory, db):
        achievement = factory.achievement(setup["event"])

        with pytest.raises(UserNotFoundError):
            reward_issuance_service.issue(db, "ghost", achievement)

    def test_frequency_limit_revalidated(self, setup, factory, db):
        achievement = factory.achievement(setup["event"], frequency_limit=2)

        reward_issuance_service.issue(db, setup["member"].id, achievement)
        reward_issuance_service.issue(db, setup["member"].id, achievement)
        with pytest.raises(FrequencyLimitReachedError):
            reward_issuance_service.issue(db, setup["member"].id, achievement)

        assert db.query(AchievementReward).count() == 2
        assert balance_of(db, setup["wallet"]) == Decimal("20")

    def test_same_occurrence_rewarded_once(self, setup, factory, db):
        achievement = factory.achievement(setup["event"])
        log = factory.log(setup["event"], setup["member"])

        reward_issuance_service.issue(db, setup["member"].id, achievement, event_log_id=log.id)
        with pytest.raises(DuplicateRewardError):
            reward_issuance_service.issue(db, setup["member"].id, achievement, event_log_id=log.id)

        assert db.query(AchievementReward).count() == 1
        assert db.query(Transaction).count() == 1
        assert balance_of(db, setup["wallet"]) == Decimal("10")

    def test_ledger_failure_rolls_back_whole_issuance(self, setup, factory, db, monkeypatch):
        achievement = factory.achievement(setup["event"])

        def broken_insert(*args, **kwargs):
            raise RuntimeError("ledger insert failed")

        monkeypatch.setattr(ledger_service, "_insert_transaction", broken_insert)

        with pytest.raises(RuntimeError):
            reward_issuance_service.issue(db, setup["member"].id, achievement)

        assert balance_of(db, setup["wallet"]) == Decimal("0")
        assert db.query(Transaction).count() == 0
        assert db.query(AchievementReward).count() == 0


class TestClaim:

    def test_claim_pays_once(self, setup, factory, db):
        stranger = factory.user()
        achievement = factory.achievement(setup["event"], community_id=None)
        reward = reward_issuance_service.issue(db, stranger.id, achievement)
        wallet = factory.wallet(stranger)

        claimed = reward_issuance_service.claim(db, stranger.id, reward.id, wallet.id)

        assert claimed.claimed_at is not None
        assert claimed.wallet_id == wallet.id
        assert balance_of(db, wallet) == Decimal("10")
        assert db.query(Transaction).filter(Transaction.receiver_wallet_id == wallet.id).count() == 1

    def test_double_claim_rejected_without_balance_effect(self, setup, factory, db):
        stranger = factory.user()
        achievement = factory.achievement(setup["event"], community_id=None)
        reward = reward_issuance_service.issue(db, stranger.id, achievement)
        wallet = factory.wallet(stranger)

        reward_issuance_service.claim(db, stranger.id, reward.id, wallet.id)
        with pytest.raises(RewardAlreadyClaimedError):
            reward_issuance_service.claim(db, stranger.id, reward.id, wallet.id)

        assert balance_of(db, wallet) == Decimal("10")
        assert db.query(Transaction).count() == 1

    def test_auto_paid_reward_cannot_be_claimed(self, setup, factory, db):
        achievement = factory.achievement(setup["event"])
        reward = reward_issuance_service.issue(db, setup["member"].id, achievement)

        with pytest.raises(RewardAlreadyClaimedError):
            reward_issuance_service.claim(db, setup["member"].id, reward.id, setup["wallet"].id)

        assert balance_of(db, setup["wallet"]) == Decimal("10")

    def test_claim_by_other_user_not_found(self, setup, factory, db):
        stranger = factory.user()
        achievement = factory.achievement(setup["event"])
        reward = reward_issuance_service.issue(db, stranger.id, achievement)

        with pytest.raises(RewardNotFoundError):
            reward_issuance_service.claim(db, setup["member"].id, reward.id, setup["wallet"].id)

    def test_claim_into_wrong_community_wallet(self, setup, factory, db):
        stranger = factory.user()
        other_community = factory.community(setup["owner"], name="Other")
        wrong_wallet = factory.wallet(stranger, other_community)
        achievement = factory.achievement(setup["event"])
        reward = reward_issuance_service.issue(db, stranger.id, achievement)

        with pytest.raises(WalletCommunityMismatchError):
            reward_issuance_service.claim(db, stranger.id, reward.id, wrong_wallet.id)

        db.refresh(reward)
        assert reward.claimed_at is None
        assert balance_of(db, wrong_wallet) == Decimal("0")

    def test_claim_without_wallet_falls_back_to_community_wallet(self, setup, factory, db):
        stranger = factory.user()
        achievement = factory.achievement(setup["event"])
        reward = reward_issuance_service.issue(db, stranger.id, achievement)
        wallet = factory.wallet(stranger, setup["community"])

        claimed = reward_issuance_service.claim(db, stranger.id, reward.id)

        assert claimed.wallet_id == wallet.id
        assert balance_of(db, wallet) == Decimal("10")

    def test_badge_claim_acknowledged_without_balance_change(self, setup, factory, db):
        achievement = factory.achievement(setup["event"], reward_type=RewardType.BADGE, reward_amount=None)
        reward = reward_issuance_service.issue(db, setup["member"].id, achievement)

        claimed = reward_issuance_service.claim(db, setup["member"].id, reward.id, setup["wallet"].id)

        assert claimed.claimed_at is not None
        assert balance_of(db, setup["wallet"]) == Decimal("0")
        assert db.query(Transaction).count() == 0

    def test_custom_points_claim_not_supported(self, setup, factory, db):
        achievement = factory.achievement(setup["event"], reward_type=RewardType.POINTS_CUSTOM)
        reward = reward_issuance_service.issue(db, setup["member"].id, achievement)

        with pytest.raises(UnsupportedRewardTypeError):
            reward_issuance_service.claim(db, setup["member"].id, reward.id, setup["wallet"].id)

        db.refresh(reward)
        assert reward.claimed_at is None
