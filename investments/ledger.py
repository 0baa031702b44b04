import logging
from decimal import Decimal
from typing import Tuple

from models import Transaction, TransactionFlow, TransactionStatus, User
from investments.config import to_money
from investments.exceptions import InsufficientBalanceError, LedgerError

logger = logging.getLogger(__name__)


def apply_ledger_mutation(uow, user: User, signed_amount, transaction_type: str,
                          order_id: str, message: str = None,
                          charge=Decimal("0"),
                          status: str = TransactionStatus.SUCCESS.value) -> Tuple[Decimal, Transaction]:
    """
    Change a user's balance and record the matching ledger entry.

    This is the only place that writes ``User.balance``. ``user`` must have
    been loaded through ``uow.lock_user`` in the current unit of work.

    A positive amount credits the balance (flow "debit"), a negative amount
    debits it (flow "credit"). If an entry with ``order_id`` already exists
    nothing is applied and the existing entry is returned, so replays are
    harmless.

    Returns (new_balance, entry).
    """
    amount = to_money(signed_amount)
    if amount == 0:
        raise LedgerError("Ledger amount must be non-zero")

    existing = uow.entry_for(order_id)
    if existing is not None:
        logger.info(f"Ledger replay ignored for order {order_id} (user {user.id})")
        return Decimal(user.balance), existing

    current = Decimal(user.balance or 0)
    new_balance = current + amount
    if new_balance < 0:
        logger.warning(
            f"Insufficient balance for user {user.id}: balance={current}, change={amount}, order={order_id}"
        )
        raise InsufficientBalanceError()

    user.balance = new_balance
    entry = Transaction(
        user_id=user.id,
        amount=abs(amount),
        charge=to_money(charge),
        order_id=order_id,
        transaction_flow=(TransactionFlow.DEBIT if amount > 0 else TransactionFlow.CREDIT).value,
        transaction_type=transaction_type,
        message=message,
        status=status,
        affects_balance=True,
    )
    uow.add(entry)
    uow.flush()

    logger.info(
        f"Ledger {transaction_type} {amount} for user {user.id} order={order_id} balance={new_balance}"
    )
    return new_balance, entry


def record_external_entry(uow, user_id: int, amount, transaction_type: str, order_id: str,
                          message: str = None, status: str = TransactionStatus.PENDING.value) -> Transaction:
    """Record money that moves outside the balance, e.g. a purchase paid at the gateway."""
    entry = Transaction(
        user_id=user_id,
        amount=to_money(amount),
        order_id=order_id,
        transaction_flow=TransactionFlow.CREDIT.value,
        transaction_type=transaction_type,
        message=message,
        status=status,
        affects_balance=False,
    )
    uow.add(entry)
    return entry


def set_entry_status(uow, order_id: str, status: str):
    entry = uow.entry_for(order_id)
    if entry is not None:
        entry.status = status
    return entry
