import logging
from decimal import Decimal
from typing import Dict, List, Optional

from models import Investment, InvestmentStatus, TransactionType
from investments.config import ContractConfig
from investments.ledger import apply_ledger_mutation
from utils import utcnow

logger = logging.getLogger(__name__)


class AccrualScheduler:
    """
    Daily accrual for Running contracts.

    ``process_one`` advances a single contract by one period inside its own
    unit of work; ``run`` is the batch loop an external timer calls. A
    contract that fails is logged and skipped so it cannot hold up the rest.
    """

    def __init__(self, uow):
        self.uow = uow

    def due_contract_ids(self, now=None) -> List[int]:
        now = now or utcnow()
        rows = (
            self.uow.session.query(Investment.id)
            .filter(
                Investment.status == InvestmentStatus.RUNNING.value,
                Investment.next_return_at.isnot(None),
                Investment.next_return_at <= now,
                Investment.total_paid < Investment.duration,
            )
            .order_by(Investment.next_return_at)
            .all()
        )
        return [row.id for row in rows]

    @staticmethod
    def _is_due(contract, now) -> bool:
        return (
            contract.status == InvestmentStatus.RUNNING.value
            and contract.next_return_at is not None
            and contract.next_return_at <= now
            and contract.total_paid < contract.duration
        )

    def process_one(self, contract_id: int, now=None) -> Optional[Dict]:
        """
        Apply exactly one accrual period. Safe to call again for the same
        contract: once the period is applied the contract is no longer due.
        """
        now = now or utcnow()
        with self.uow.transaction():
            contract = self.uow.lock_contract_by_id(contract_id)
            if not self._is_due(contract, now):
                return None

            user = self.uow.lock_user(contract.user_id)
            period = contract.total_paid + 1
            daily_profit = Decimal(contract.daily_profit)
            paid_out = Decimal("0")

            if not contract.category.is_locked:
                apply_ledger_mutation(
                    self.uow, user, daily_profit, TransactionType.RETURN.value,
                    f"{contract.order_id}-R{period}",
                    message=f"Daily return {period}/{contract.duration} for {contract.order_id}",
                )
                paid_out += daily_profit
            elif period == contract.duration:
                lump_sum = daily_profit * contract.duration
                apply_ledger_mutation(
                    self.uow, user, lump_sum, TransactionType.RETURN.value,
                    f"{contract.order_id}-P",
                    message=f"Accumulated profit for {contract.order_id}",
                )
                paid_out += lump_sum

            contract.total_paid = period
            contract.total_returned = Decimal(contract.total_returned or 0) + daily_profit
            contract.last_return_at = now
            contract.next_return_at = contract.next_return_at + ContractConfig.ACCRUAL_PERIOD

            completed = period >= contract.duration
            if completed:
                contract.status = InvestmentStatus.COMPLETED.value
                apply_ledger_mutation(
                    self.uow, user, Decimal(contract.amount), TransactionType.RETURN.value,
                    f"{contract.order_id}-C",
                    message=f"Capital return for {contract.order_id}",
                )
                paid_out += Decimal(contract.amount)

            result = {
                "contract_id": contract.id,
                "order_id": contract.order_id,
                "period": period,
                "paid_out": paid_out,
                "completed": completed,
            }

        if completed:
            logger.info(f"Contract {result['order_id']} completed after {period} periods")
        return result

    def run(self, now=None) -> Dict:
        now = now or utcnow()
        processed = completed = failed = 0
        total_paid_out = Decimal("0")

        contract_ids = self.due_contract_ids(now)
        if not contract_ids:
            logger.info("No contracts due for accrual.")

        for contract_id in contract_ids:
            try:
                result = self.process_one(contract_id, now)
            except Exception as e:
                failed += 1
                logger.error(f"Accrual failed for contract {contract_id}: {e}", exc_info=True)
                continue

            if result is None:
                continue
            processed += 1
            total_paid_out += result["paid_out"]
            if result["completed"]:
                completed += 1

        logger.info(
            f"Accrual run finished. Processed: {processed}, Completed: {completed}, "
            f"Failed: {failed}, Paid out: {total_paid_out}"
        )
        return {
            "processed": processed,
            "completed": completed,
            "failed": failed,
            "total_paid_out": str(total_paid_out),
        }
