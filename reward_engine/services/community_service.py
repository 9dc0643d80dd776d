"""
Community Service - Community access checks and admin point grants
"""
import logging
from decimal import Decimal
from typing import Optional
from sqlalchemy.orm import Session

from reward_engine.db.database import atomic
from reward_engine.db.models import (
    Community, CommunityMember, CommunityRole, Transaction, TransactionSubtype,
    TransactionType, User, UserRole
)
from reward_engine.errors import (
    AccessDeniedError, CommunityNotFoundError, InvalidRequestError,
    WalletCommunityMismatchError
)
from reward_engine.services.ledger_service import LedgerEntry, apply_ledger_credit
from reward_engine.services.wallet_service import wallet_service

logger = logging.getLogger(__name__)

EDIT_ROLES = (CommunityRole.OWNER, CommunityRole.ADMIN)


class CommunityService:
    """Access control over communities and community point issuance"""

    def find_by_id_with_edit_access(
        self,
        db: Session,
        community_id: str,
        user_id: str
    ) -> Optional[Community]:
        """Get the community if the user created it or administers it"""
        community = db.query(Community).filter(Community.id == community_id).first()
        if not community:
            return None

        if community.created_by_id == user_id:
            return community

        membership = db.query(CommunityMember).filter(
            CommunityMember.community_id == community_id,
            CommunityMember.user_id == user_id,
            CommunityMember.role.in_(EDIT_ROLES)
        ).first()

        return community if membership else None

    def require_edit_access(self, db: Session, community_id: str, user_id: str) -> Community:
        """Like find_by_id_with_edit_access but raises instead of returning None"""
        community = self.find_by_id_with_edit_access(db, community_id, user_id)
        if community:
            return community

        if not db.query(Community.id).filter(Community.id == community_id).first():
            raise CommunityNotFoundError("Community not found", data={"community_id": community_id})

        raise AccessDeniedError(
            "Invalid community or access",
            data={"community_id": community_id, "user_id": user_id}
        )

    def is_system_admin(self, db: Session, user_id: str) -> bool:
        user = db.query(User).filter(User.id == user_id).first()
        return bool(user and user.role == UserRole.SYSTEM_ADMIN)

    def grant_points(
        self,
        db: Session,
        admin_id: str,
        community_id: str,
        user_id: str,
        wallet_id: str,
        amount: Decimal,
        description: Optional[str] = None
    ) -> Transaction:
        """
        Grant community points to a member's wallet.

        The admin needs edit access on the community and the wallet must be
        the user's wallet for that community.
        """
        amount = Decimal(str(amount))
        if amount <= 0:
            raise InvalidRequestError(
                "Grant amount must be positive",
                data={"amount": str(amount)}
            )

        self.require_edit_access(db, community_id, admin_id)

        with atomic(db):
            wallet = wallet_service.find_owned_wallet(db, user_id, wallet_id)
            if wallet.community_id != community_id:
                raise WalletCommunityMismatchError(
                    "Wallet does not belong to the community",
                    data={"wallet_id": wallet_id, "community_id": community_id}
                )

            transaction = apply_ledger_credit(
                db,
                wallet.id,
                amount,
                LedgerEntry(
                    receiver_id=user_id,
                    sender_id=admin_id,
                    transaction_type=TransactionType.GRANT,
                    transaction_subtype=TransactionSubtype.POINTS,
                    description=description or "Community points grant",
                    community_id=community_id
                )
            )

        logger.info(f"Admin {admin_id} granted {amount} points to user {user_id} in community {community_id}")
        return transaction


# Singleton instance
community_service = CommunityService()
