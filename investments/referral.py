import logging
from decimal import Decimal

from models import TransactionType
from investments.config import ReferralConfig
from investments.ledger import apply_ledger_mutation

logger = logging.getLogger(__name__)


class ReferralCascade:
    """
    Direct-referrer commission paid once per settled locked contract.
    Only the investor's immediate referrer is paid; there is no deeper level.
    """

    @staticmethod
    def order_id_for(contract) -> str:
        return f"{contract.order_id}-T"

    @staticmethod
    def apply(uow, contract, investor):
        """
        Runs inside the settlement unit of work, after the investor is locked.
        Returns the commission paid, or None when nothing applies.
        """
        if not contract.category.is_locked:
            return None
        if investor.is_promotor or not investor.referred_by:
            return None

        referrer = uow.lock_user(investor.referred_by)
        order_id = ReferralCascade.order_id_for(contract)
        if uow.entry_for(order_id) is not None:
            logger.info(f"Referral bonus already paid for {contract.order_id}")
            return None

        amount = Decimal(contract.amount)
        commission = ReferralConfig.commission_for(amount)
        if commission <= 0:
            return None

        apply_ledger_mutation(
            uow,
            referrer,
            commission,
            TransactionType.TEAM.value,
            order_id,
            message=f"Team bonus from {investor.name} ({contract.order_id})",
        )

        if amount >= ReferralConfig.SPIN_TICKET_THRESHOLD:
            referrer.spin_ticket = (referrer.spin_ticket or 0) + ReferralConfig.SPIN_TICKETS_PER_GRANT

        logger.info(
            f"Referral bonus {commission} paid to user {referrer.id} for contract {contract.order_id}"
        )
        return commission
