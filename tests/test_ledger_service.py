from decimal import Decimal

import pytest

from reward_engine.db.database import atomic
from reward_engine.db.models import Transaction, TransactionSubtype, TransactionType, Wallet
from reward_engine.errors import WalletNotFoundError
from reward_engine.services import ledger_service
from reward_engine.services.ledger_service import LedgerEntry, apply_ledger_credit


def test_credit_increments_balance_and_records_transaction(factory, db):
    user = factory.user()
    wallet = factory.wallet(user, balance=5)

    with atomic(db):
        transaction = apply_ledger_credit(
            db, wallet.id, Decimal("12.50"), LedgerEntry(receiver_id=user.id, description="bonus")
        )

    db.refresh(wallet)
    assert wallet.balance == Decimal("17.50")
    assert transaction.amount == Decimal("12.50")
    assert transaction.receiver_id == user.id
    assert transaction.receiver_wallet_id == wallet.id
    assert transaction.transaction_type == TransactionType.REWARD
    assert transaction.transaction_subtype == TransactionSubtype.POINTS
    assert db.query(Transaction).count() == 1


def test_unknown_wallet_raises(factory, db):
    user = factory.user()

    with pytest.raises(WalletNotFoundError):
        with atomic(db):
            apply_ledger_credit(db, "missing-wallet", 10, LedgerEntry(receiver_id=user.id))

    assert db.query(Transaction).count() == 0


def test_failure_between_writes_leaves_nothing_applied(factory, db, monkeypatch):
    user = factory.user()
    wallet = factory.wallet(user, balance=100)

    def broken_insert(*args, **kwargs):
        raise RuntimeError("ledger insert failed")

    monkeypatch.setattr(ledger_service, "_insert_transaction", broken_insert)

    with pytest.raises(RuntimeError):
        with atomic(db):
            apply_ledger_credit(db, wallet.id, 50, LedgerEntry(receiver_id=user.id))

    assert db.query(Wallet).filter(Wallet.id == wallet.id).one().balance == Decimal("100")
    assert db.query(Transaction).count() == 0


def test_consecutive_credits_accumulate(factory, db):
    user = factory.user()
    wallet = factory.wallet(user)

    for _ in range(3):
        with atomic(db):
            apply_ledger_credit(db, wallet.id, 10, LedgerEntry(receiver_id=user.id))

    db.refresh(wallet)
    assert wallet.balance == Decimal("30")
    assert db.query(Transaction).filter(Transaction.receiver_wallet_id == wallet.id).count() == 3
