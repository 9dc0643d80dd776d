"""
Wallet Service - Wallet lookups used by the ledger-mutating paths
"""
import logging
from typing import Optional
from sqlalchemy.orm import Session

from reward_engine.db.models import Wallet
from reward_engine.errors import WalletCommunityMismatchError, WalletNotFoundError

logger = logging.getLogger(__name__)


class WalletService:
    """Resolves which wallet a credit should land in"""

    def find_owned_wallet(
        self,
        db: Session,
        user_id: str,
        wallet_id: str
    ) -> Wallet:
        """Get a wallet owned by the user or raise WalletNotFoundError"""
        wallet = db.query(Wallet).filter(
            Wallet.id == wallet_id,
            Wallet.owner_id == user_id
        ).first()

        if not wallet:
            raise WalletNotFoundError(
                "Wallet not found or not owned by user",
                data={"wallet_id": wallet_id, "user_id": user_id}
            )
        return wallet

    def find_community_wallet(
        self,
        db: Session,
        user_id: str,
        community_id: Optional[str]
    ) -> Optional[Wallet]:
        """Get the user's wallet scoped to a community (None = the global wallet)"""
        return db.query(Wallet).filter(
            Wallet.owner_id == user_id,
            Wallet.community_id.is_(None) if community_id is None else Wallet.community_id == community_id
        ).order_by(Wallet.created_at).first()

    def resolve_reward_wallet(
        self,
        db: Session,
        user_id: str,
        community_id: Optional[str],
        wallet_id: Optional[str] = None
    ) -> Optional[Wallet]:
        """
        Pick the wallet a reward pays into.

        An explicit wallet must belong to the user and, for community
        rewards, to that community. Without one, the user's wallet in the
        community is used; None when the user has no such wallet.
        """
        if wallet_id is None:
            return self.find_community_wallet(db, user_id, community_id)

        wallet = self.find_owned_wallet(db, user_id, wallet_id)

        if community_id is not None and wallet.community_id != community_id:
            raise WalletCommunityMismatchError(
                "Wallet does not belong to the reward's community",
                data={
                    "wallet_id": wallet_id,
                    "wallet_community_id": wallet.community_id,
                    "community_id": community_id
                }
            )
        return wallet


# Singleton instance
wallet_service = WalletService()
