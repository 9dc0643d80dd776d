"""
Ledger Service - The one place a wallet balance changes

A balance increment and the Transaction row that justifies it are always
written together. The caller owns the database transaction: nothing here
commits, so a failure anywhere in the caller's unit rolls back both writes.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Union

from sqlalchemy import update
from sqlalchemy.orm import Session

from reward_engine.db.models import (
    Transaction, TransactionStatus, TransactionSubtype, TransactionType, Wallet
)
from reward_engine.errors import WalletNotFoundError

logger = logging.getLogger(__name__)


@dataclass
class LedgerEntry:
    """Descriptive fields of the Transaction row recording a credit"""
    receiver_id: str
    transaction_type: TransactionType = TransactionType.REWARD
    transaction_subtype: TransactionSubtype = TransactionSubtype.POINTS
    description: Optional[str] = None
    sender_id: Optional[str] = None
    sender_wallet_id: Optional[str] = None
    community_id: Optional[str] = None


def apply_ledger_credit(
    db: Session,
    wallet_id: str,
    amount: Union[Decimal, int, float, str],
    entry: LedgerEntry
) -> Transaction:
    """
    Credit ``amount`` to a wallet and record it in the ledger.

    Must run inside the caller's transaction. Raises WalletNotFoundError
    when the wallet does not exist.
    """
    amount = Decimal(str(amount))

    _increment_balance(db, wallet_id, amount)
    transaction = _insert_transaction(db, wallet_id, amount, entry)

    logger.info(
        f"Ledger credit of {amount} to wallet {wallet_id} "
        f"({entry.transaction_type.value}/{entry.transaction_subtype.value})"
    )
    return transaction


def _increment_balance(db: Session, wallet_id: str, amount: Decimal) -> None:
    # Relative update: concurrent credits serialize on the row in the database
    result = db.execute(
        update(Wallet)
        .where(Wallet.id == wallet_id)
        .values(balance=Wallet.balance + amount)
        .execution_options(synchronize_session=False)
    )

    if result.rowcount != 1:
        raise WalletNotFoundError("Wallet not found", data={"wallet_id": wallet_id})


def _insert_transaction(
    db: Session,
    wallet_id: str,
    amount: Decimal,
    entry: LedgerEntry
) -> Transaction:
    transaction = Transaction(
        sender_id=entry.sender_id,
        receiver_id=entry.receiver_id,
        sender_wallet_id=entry.sender_wallet_id,
        receiver_wallet_id=wallet_id,
        community_id=entry.community_id,
        amount=amount,
        transaction_type=entry.transaction_type,
        transaction_subtype=entry.transaction_subtype,
        status=TransactionStatus.COMPLETED,
        description=entry.description
    )
    db.add(transaction)
    db.flush()
    return transaction
