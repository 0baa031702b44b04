import logging
from contextlib import contextmanager

from models import User, Investment, Withdrawal, Transaction, Payment
from investments.exceptions import NotFoundError

logger = logging.getLogger(__name__)


class UnitOfWork:
    """
    Transaction boundary around one SQLAlchemy session.

    Services receive a UnitOfWork instead of reaching for a global session.
    Inside ``with uow.transaction():`` the ``lock_*`` helpers take an
    exclusive row lock (SELECT ... FOR UPDATE) that is held until the block
    commits or rolls back. Locks are always taken contract/withdrawal first,
    then the owning user, then any referrer. When two users are locked
    together they are taken in ascending id order.
    """

    def __init__(self, session):
        self.session = session

    @contextmanager
    def transaction(self):
        try:
            yield self
            self.session.commit()
        except Exception:
            self.session.rollback()
            logger.debug("Unit of work rolled back", exc_info=True)
            raise

    # ===== exclusive access =====

    def _lock(self, model, **criteria):
        return (
            self.session.query(model)
            .filter_by(**criteria)
            .with_for_update()
            .populate_existing()
            .one_or_none()
        )

    def lock_user(self, user_id: int) -> User:
        user = self._lock(User, id=user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    def lock_users(self, *user_ids):
        """Lock several users in ascending id order. Returns them keyed by id."""
        return {user_id: self.lock_user(user_id) for user_id in sorted(set(user_ids))}

    def lock_contract(self, order_id: str) -> Investment:
        contract = self._lock(Investment, order_id=order_id)
        if contract is None:
            raise NotFoundError("Investment not found")
        return contract

    def lock_contract_by_id(self, contract_id: int) -> Investment:
        contract = self._lock(Investment, id=contract_id)
        if contract is None:
            raise NotFoundError("Investment not found")
        return contract

    def lock_withdrawal(self, withdrawal_id: int) -> Withdrawal:
        withdrawal = self._lock(Withdrawal, id=withdrawal_id)
        if withdrawal is None:
            raise NotFoundError("Withdrawal not found")
        return withdrawal

    def lock_withdrawal_by_order(self, order_id: str) -> Withdrawal:
        withdrawal = self._lock(Withdrawal, order_id=order_id)
        if withdrawal is None:
            raise NotFoundError("Withdrawal not found")
        return withdrawal

    # ===== plain reads =====

    def get(self, model, ident):
        return self.session.get(model, ident)

    def entry_for(self, order_id: str):
        return self.session.query(Transaction).filter_by(order_id=order_id).one_or_none()

    def payment_for(self, order_id: str):
        return self.session.query(Payment).filter_by(order_id=order_id).one_or_none()

    def add(self, obj):
        self.session.add(obj)
        return obj

    def flush(self):
        self.session.flush()
