import logging
from decimal import Decimal
from typing import Dict, Optional

from models import (
    Investment, InvestmentStatus, Payment, PaymentMethod, PaymentStatus, Product,
    TransactionStatus, TransactionType, User,
)
from investments.config import ContractConfig, to_money, vip_level_for
from investments.exceptions import (
    GatewayError, InsufficientBalanceError, InvalidStateError, NotFoundError,
    PurchaseLimitError, ValidationError, VipLevelError,
)
from investments.gateway import INQUIRY_FAILED, INQUIRY_SETTLED
from investments.ledger import apply_ledger_mutation, record_external_entry, set_entry_status
from investments.referral import ReferralCascade
from utils import generate_customer_no, generate_order_id, utcnow

logger = logging.getLogger(__name__)


class InvestmentService:
    """
    Investment contract lifecycle:
    Pending -> Running -> Completed / Suspended / Cancelled, and Pending -> Cancelled.

    Every state change re-reads the contract under a row lock and returns
    early when it is no longer in the expected state. That guard is what lets
    a webhook, a user inquiry and the expiry sweep race on the same contract.
    """

    def __init__(self, uow, gateway, brand: str = "Invest"):
        self.uow = uow
        self.gateway = gateway
        self.brand = brand

    # ==========================================================
    #                  PURCHASE
    # ==========================================================
    def create_contract(self, principal, product_id: int, payment_method: Optional[str] = None,
                        channel: Optional[str] = None, now=None) -> Dict:
        now = now or utcnow()
        user = self.uow.get(User, principal.user_id)
        if user is None:
            raise NotFoundError("User not found")
        if not user.is_active:
            raise ValidationError("Account is not active")

        product = self.uow.get(Product, product_id)
        self._validate_product(user, product)

        if user.is_promotor:
            return self._purchase_from_balance(user.id, product, now)

        method, channel = self._validate_payment_method(payment_method, channel, Decimal(product.amount))
        return self._purchase_via_gateway(user, product, method, channel, now)

    def _validate_product(self, user, product):
        if product is None or product.status != "Active":
            raise ValidationError("Product is not available")
        if product.category is None or product.category.status != "Active":
            raise ValidationError("Product is not available")
        if (user.level or 0) < (product.required_vip or 0):
            raise VipLevelError(f"VIP {product.required_vip} is required for this product")
        self._check_purchase_limit(user.id, product)

    def _check_purchase_limit(self, user_id, product):
        if not product.purchase_limit or product.purchase_limit <= 0:
            return
        purchased = (
            self.uow.session.query(Investment)
            .filter(
                Investment.user_id == user_id,
                Investment.product_id == product.id,
                Investment.status.in_(ContractConfig.LIMIT_COUNTED_STATUSES),
            )
            .count()
        )
        if purchased >= product.purchase_limit:
            raise PurchaseLimitError()

    @staticmethod
    def _validate_payment_method(method, channel, amount):
        method = (method or "").strip().upper()
        if method == PaymentMethod.QRIS.value:
            if amount > ContractConfig.QRIS_MAX_AMOUNT:
                raise ValidationError(f"QRIS payments are limited to {ContractConfig.QRIS_MAX_AMOUNT}")
            return method, "QRIS"

        if method == PaymentMethod.BANK.value:
            channel = (channel or "").strip().upper()
            if channel not in ContractConfig.VA_BANK_CODES:
                raise ValidationError("Unsupported bank channel")
            if amount < ContractConfig.BANK_MIN_AMOUNT:
                raise ValidationError(f"Bank transfer minimum is {ContractConfig.BANK_MIN_AMOUNT}")
            return method, channel

        raise ValidationError("Payment method must be QRIS or BANK")

    def _new_contract(self, user_id, product, order_id, status):
        return Investment(
            user_id=user_id,
            product_id=product.id,
            category_id=product.category_id,
            amount=to_money(product.amount),
            daily_profit=to_money(product.daily_profit),
            duration=product.duration,
            total_paid=0,
            total_returned=Decimal("0.00"),
            order_id=order_id,
            status=status,
        )

    def _purchase_from_balance(self, user_id, product, now) -> Dict:
        """Internal accounts pay from balance and start running immediately."""
        amount = to_money(product.amount)
        with self.uow.transaction():
            user = self.uow.lock_user(user_id)
            # Recounted under the lock; a concurrent purchase may have committed meanwhile
            self._check_purchase_limit(user.id, product)
            if Decimal(user.balance) < amount:
                raise InsufficientBalanceError()

            order_id = generate_order_id(user.id)
            apply_ledger_mutation(
                self.uow, user, -amount, TransactionType.INVESTMENT.value, order_id,
                message=f"Investment {product.name}",
            )

            contract = self._new_contract(user.id, product, order_id, InvestmentStatus.RUNNING.value)
            contract.next_return_at = now + ContractConfig.ACCRUAL_PERIOD
            self.uow.add(contract)
            self.uow.flush()

            payment = self.uow.add(Payment(
                investment_id=contract.id,
                order_id=order_id,
                amount=amount,
                payment_method=PaymentMethod.BALANCE.value,
                status=PaymentStatus.SUCCESS.value,
            ))
            self._record_investment_totals(user, contract, product.category)

        logger.info(f"Promotor purchase {order_id} by user {user_id} running")
        return self._purchase_result(contract, product, payment)

    def _purchase_via_gateway(self, user, product, method, channel, now) -> Dict:
        amount = to_money(product.amount)
        expires_at = now + ContractConfig.PAYMENT_EXPIRY

        with self.uow.transaction():
            order_id = generate_order_id(user.id)
            contract = self.uow.add(
                self._new_contract(user.id, product, order_id, InvestmentStatus.PENDING.value)
            )
            self.uow.flush()
            self.uow.add(Payment(
                investment_id=contract.id,
                order_id=order_id,
                amount=amount,
                payment_method=method,
                payment_channel=channel,
                expired_at=expires_at,
                status=PaymentStatus.PENDING.value,
            ))
            record_external_entry(
                self.uow, user.id, amount, TransactionType.INVESTMENT.value, order_id,
                message=f"Investment {product.name}",
            )

        # No locks are held while the gateway call is in flight
        try:
            if method == PaymentMethod.QRIS.value:
                minted = self.gateway.create_qr(order_id, amount, expires_at=expires_at)
            else:
                minted = self.gateway.create_virtual_account(
                    order_id,
                    generate_customer_no(user.id),
                    f"{user.name} - {self.brand}",
                    amount,
                    ContractConfig.bank_code_for(channel),
                    expires_at=expires_at,
                )
        except GatewayError as e:
            logger.error(f"Payment creation failed for {order_id}: {e.detail}")
            raise

        with self.uow.transaction():
            payment = self.uow.payment_for(order_id)
            payment.payment_code = minted.payment_code
            payment.expired_at = minted.expired_at or expires_at

        contract = self.uow.session.query(Investment).filter_by(order_id=order_id).one()
        logger.info(f"Purchase {order_id} by user {user.id} awaiting {method} payment")
        return self._purchase_result(contract, product, payment)

    @staticmethod
    def _purchase_result(contract, product, payment) -> Dict:
        category = product.category
        return {
            "order_id": contract.order_id,
            "amount": str(to_money(contract.amount)),
            "status": contract.status,
            "product": product.to_dict(),
            "category": {
                "id": category.id,
                "name": category.name,
                "profit_type": category.profit_type,
            },
            "payment": payment.to_dict(),
        }

    @staticmethod
    def _record_investment_totals(user, contract, category):
        amount = Decimal(contract.amount)
        user.total_invest = Decimal(user.total_invest or 0) + amount
        user.investment_status = "Active"
        if category.is_locked:
            user.total_invest_vip = Decimal(user.total_invest_vip or 0) + amount
            user.level = vip_level_for(user.total_invest_vip)

    # ==========================================================
    #                  SETTLEMENT
    # ==========================================================
    def settle_contract(self, order_id: str, now=None) -> bool:
        """Flip a paid contract to Running. Returns False when it was not Pending."""
        now = now or utcnow()
        with self.uow.transaction():
            contract = self.uow.lock_contract(order_id)
            if contract.status != InvestmentStatus.PENDING.value:
                logger.info(f"Settlement skipped for {order_id}: status {contract.status}")
                return False

            user = self.uow.lock_user(contract.user_id)
            set_entry_status(self.uow, order_id, TransactionStatus.SUCCESS.value)
            payment = self.uow.payment_for(order_id)
            if payment is not None and payment.status == PaymentStatus.PENDING.value:
                payment.status = PaymentStatus.SUCCESS.value

            contract.status = InvestmentStatus.RUNNING.value
            contract.last_return_at = None
            contract.next_return_at = now + ContractConfig.ACCRUAL_PERIOD

            self._record_investment_totals(user, contract, contract.category)
            ReferralCascade.apply(self.uow, contract, user)

        logger.info(f"Contract {order_id} settled and running")
        return True

    def fail_contract(self, order_id: str) -> bool:
        with self.uow.transaction():
            contract = self.uow.lock_contract(order_id)
            if contract.status != InvestmentStatus.PENDING.value:
                logger.info(f"Failure skipped for {order_id}: status {contract.status}")
                return False

            payment = self.uow.payment_for(order_id)
            if payment is not None and payment.status == PaymentStatus.PENDING.value:
                payment.status = PaymentStatus.FAILED.value
            contract.status = InvestmentStatus.CANCELLED.value
            set_entry_status(self.uow, order_id, TransactionStatus.FAILED.value)

        logger.warning(f"Contract {order_id} cancelled after failed payment")
        return True

    # ==========================================================
    #                  EXPIRY
    # ==========================================================
    def expire_pending_payments(self, now=None) -> Dict:
        now = now or utcnow()
        expired = cancelled = failed = 0

        order_ids = [
            row.order_id for row in
            self.uow.session.query(Payment.order_id)
            .filter(Payment.status == PaymentStatus.PENDING.value,
                    Payment.expired_at.isnot(None),
                    Payment.expired_at <= now)
            .all()
        ]

        for order_id in order_ids:
            try:
                with self.uow.transaction():
                    contract = self.uow.lock_contract(order_id)
                    payment = self.uow.payment_for(order_id)
                    if payment is None or payment.status != PaymentStatus.PENDING.value:
                        continue

                    payment.status = PaymentStatus.EXPIRED.value
                    if contract.status == InvestmentStatus.PENDING.value:
                        contract.status = InvestmentStatus.CANCELLED.value
                        cancelled += 1
                    set_entry_status(self.uow, order_id, TransactionStatus.FAILED.value)
                    expired += 1
            except Exception as e:
                failed += 1
                logger.error(f"Expiry failed for payment {order_id}: {e}", exc_info=True)
                continue

        if expired:
            logger.info(f"Expired {expired} payments, cancelled {cancelled} contracts")
        return {"expired": expired, "cancelled": cancelled, "failed": failed}

    # ==========================================================
    #                  QUERIES
    # ==========================================================
    def _owned_contract(self, principal, order_id):
        contract = (
            self.uow.session.query(Investment)
            .filter_by(order_id=order_id, user_id=principal.user_id)
            .one_or_none()
        )
        if contract is None:
            raise NotFoundError("Payment not found")
        return contract

    def payment_details(self, principal, order_id: str, now=None) -> Dict:
        """
        Payment details for the owner. A Pending, unexpired payment is checked
        with the gateway first so a missed webhook cannot strand the contract.
        """
        now = now or utcnow()
        contract = self._owned_contract(principal, order_id)
        payment = contract.payment
        if payment is None:
            raise NotFoundError("Payment not found")

        if (payment.status == PaymentStatus.PENDING.value
                and payment.expired_at is not None and payment.expired_at > now):
            try:
                outcome = self.gateway.inquiry(order_id, payment.payment_method)
            except GatewayError as e:
                logger.warning(f"Inquiry failed for {order_id}: {e.detail}")
                outcome = None

            if outcome == INQUIRY_SETTLED:
                self.settle_contract(order_id, now=now)
            elif outcome == INQUIRY_FAILED:
                self.fail_contract(order_id)

            contract = self._owned_contract(principal, order_id)
            payment = contract.payment

        return {"investment": contract.to_dict(), "payment": payment.to_dict()}

    def list_contracts(self, principal, status: Optional[str] = None):
        query = self.uow.session.query(Investment).filter_by(user_id=principal.user_id)
        if status:
            query = query.filter_by(status=status)
        return query.order_by(Investment.id.desc()).all()

    # ==========================================================
    #                  ADMIN
    # ==========================================================
    def set_contract_status(self, contract_id: int, status: str, now=None) -> Investment:
        """Suspend a running contract or resume a suspended one."""
        now = now or utcnow()
        with self.uow.transaction():
            contract = self.uow.lock_contract_by_id(contract_id)
            current = contract.status

            if status == InvestmentStatus.SUSPENDED.value and current == InvestmentStatus.RUNNING.value:
                contract.status = status
            elif status == InvestmentStatus.RUNNING.value and current == InvestmentStatus.SUSPENDED.value:
                contract.status = status
                if contract.next_return_at is None or contract.next_return_at < now:
                    contract.next_return_at = now + ContractConfig.ACCRUAL_PERIOD
            else:
                raise InvalidStateError(f"Cannot change contract from {current} to {status}")

        logger.info(f"Contract {contract.order_id} moved from {current} to {status}")
        return contract
