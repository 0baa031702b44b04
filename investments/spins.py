import logging
import random
from decimal import Decimal
from typing import Dict, List

from models import SpinPrize, TransactionType, UserSpin
from investments.config import to_money
from investments.exceptions import ValidationError
from investments.ledger import apply_ledger_mutation
from utils import generate_order_id, utcnow

logger = logging.getLogger(__name__)


class SpinWheel:
    """Redeems the spin tickets referral bonuses grant, one weighted prize per ticket."""

    def __init__(self, uow, rng=None):
        self.uow = uow
        self.rng = rng or random.SystemRandom()

    def _active_prizes(self) -> List[SpinPrize]:
        return (
            self.uow.session.query(SpinPrize)
            .filter_by(status="Active")
            .order_by(SpinPrize.amount.asc(), SpinPrize.id.asc())
            .all()
        )

    def prize_list(self) -> List[Dict]:
        prizes = self._active_prizes()
        total = sum(max(p.chance_weight or 0, 0) for p in prizes)
        return [
            {
                "id": p.id,
                "amount": str(to_money(p.amount)),
                "code": p.code,
                "chance": round(p.chance_weight / total * 100, 2) if total and p.chance_weight > 0 else 0,
            }
            for p in prizes
        ]

    def pick(self, prizes):
        weighted = [p for p in prizes if (p.chance_weight or 0) > 0]
        total = sum(p.chance_weight for p in weighted)
        if total <= 0:
            raise ValidationError("No prizes are available right now")

        roll = self.rng.randint(1, total)
        running = 0
        for prize in weighted:
            running += prize.chance_weight
            if roll <= running:
                return prize
        return weighted[-1]

    def spin(self, principal, now=None) -> Dict:
        now = now or utcnow()
        with self.uow.transaction():
            user = self.uow.lock_user(principal.user_id)
            if (user.spin_ticket or 0) <= 0:
                raise ValidationError("You have no spin tickets left")

            prize = self.pick(self._active_prizes())
            previous_balance = Decimal(user.balance)
            user.spin_ticket -= 1

            amount = to_money(prize.amount)
            order_id = None
            if amount > 0:
                order_id = generate_order_id(user.id, prefix="SPN")
                apply_ledger_mutation(
                    self.uow, user, amount, TransactionType.BONUS.value, order_id,
                    message="Spin wheel prize",
                )
            self.uow.add(UserSpin(
                user_id=user.id, prize_id=prize.id, amount=amount,
                code=prize.code, order_id=order_id, won_at=now,
            ))

        logger.info(f"User {principal.user_id} spun {prize.code} for {amount}")
        return {
            "spin_result": {"amount": str(amount), "code": prize.code},
            "balance_info": {
                "previous_balance": str(to_money(previous_balance)),
                "prize_amount": str(amount),
                "current_balance": str(to_money(user.balance)),
            },
            "spin_ticket": user.spin_ticket,
        }
