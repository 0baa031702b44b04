import logging
from datetime import datetime, time as dtime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Dict
from zoneinfo import ZoneInfo

from models import (
    BankAccount, Setting, TransactionStatus, TransactionType, User, Withdrawal,
    WithdrawalStatus,
)
from investments.config import WithdrawalConfig, to_money
from investments.exceptions import (
    DailyLimitError, GatewayError, InsufficientBalanceError, InvalidStateError,
    NotFoundError, ValidationError, WithdrawalWindowError,
)
from investments.ledger import apply_ledger_mutation, set_entry_status
from utils import generate_order_id, mask_account_number, utcnow

logger = logging.getLogger(__name__)

UTC = ZoneInfo("UTC")

# Payout webhook status codes
PAYOUT_SUCCESS = "00"
PAYOUT_FAILED = "06"


class WithdrawalService:
    """
    Withdrawal engine: Pending -> Success / Failed.

    Funds are held (debited through the ledger) when the request is made.
    They leave for good on Success and come back exactly once, as a refund
    entry, when an administrator rejects the withdrawal.
    """

    def __init__(self, uow, gateway, config):
        self.uow = uow
        self.gateway = gateway
        self.config = config
        self.tz = ZoneInfo(config.get("PLATFORM_TIMEZONE", "Asia/Jakarta"))

    # ==========================================================
    #                  SETTINGS & CHECKS
    # ==========================================================
    def settings(self) -> Setting:
        row = self.uow.session.query(Setting).order_by(Setting.id).first()
        if row is not None:
            return row
        return Setting(
            min_withdraw=Decimal(str(self.config.get("MIN_WITHDRAW", "50000"))),
            max_withdraw=Decimal(str(self.config.get("MAX_WITHDRAW", "10000000"))),
            withdraw_charge=Decimal(str(self.config.get("WITHDRAW_CHARGE", "10"))),
            auto_withdraw=bool(self.config.get("AUTO_WITHDRAW", False)),
        )

    def local_time(self, now: datetime) -> datetime:
        return now.replace(tzinfo=UTC).astimezone(self.tz)

    def check_window(self, now: datetime):
        local = self.local_time(now)
        if local.weekday() in WithdrawalConfig.CLOSED_WEEKDAYS:
            raise WithdrawalWindowError()
        if not (WithdrawalConfig.OPEN_HOUR <= local.hour < WithdrawalConfig.CLOSE_HOUR):
            raise WithdrawalWindowError()

    def _local_day_bounds(self, now: datetime):
        """Start and end of the platform-local calendar day, as naive UTC."""
        local = self.local_time(now)
        start = datetime.combine(local.date(), dtime.min, tzinfo=self.tz)
        end = start + timedelta(days=1)
        return (start.astimezone(UTC).replace(tzinfo=None),
                end.astimezone(UTC).replace(tzinfo=None))

    def _withdrew_today(self, user_id: int, now: datetime) -> bool:
        start, end = self._local_day_bounds(now)
        return (
            self.uow.session.query(Withdrawal.id)
            .filter(
                Withdrawal.user_id == user_id,
                Withdrawal.created_at >= start,
                Withdrawal.created_at < end,
                Withdrawal.status != WithdrawalStatus.FAILED.value,
            )
            .first()
            is not None
        )

    @staticmethod
    def _parse_amount(amount) -> Decimal:
        try:
            value = to_money(amount)
        except (InvalidOperation, TypeError, ValueError):
            raise ValidationError("Invalid amount format")
        if value <= 0:
            raise ValidationError("Amount must be greater than zero")
        # Payouts move whole rupiah
        if value != value.to_integral_value():
            raise ValidationError("Amount must be a whole number of rupiah")
        return value

    # ==========================================================
    #                  REQUEST
    # ==========================================================
    def create_withdrawal(self, principal, amount, bank_account_id: int, now=None) -> Withdrawal:
        now = now or utcnow()
        settings = self.settings()
        auto_withdraw = bool(settings.auto_withdraw)

        user = self.uow.get(User, principal.user_id)
        if user is None:
            raise NotFoundError("User not found")
        if not user.is_active:
            raise ValidationError("Account is not active")

        amount = self._parse_amount(amount)
        if amount < Decimal(settings.min_withdraw):
            raise ValidationError(f"Minimum withdrawal is {to_money(settings.min_withdraw)}")
        if amount > Decimal(settings.max_withdraw):
            raise ValidationError(f"Maximum withdrawal is {to_money(settings.max_withdraw)}")

        self.check_window(now)

        account = self.uow.get(BankAccount, bank_account_id)
        if account is None or account.user_id != user.id:
            raise NotFoundError("Bank account not found")
        bank = account.bank
        if bank is None or bank.status != "Active":
            raise ValidationError("This bank is currently unavailable")

        charge = WithdrawalConfig.calculate_fee(amount, settings.withdraw_charge)
        final_amount = amount - charge
        promotor = user.is_promotor
        status = WithdrawalStatus.SUCCESS.value if promotor else WithdrawalStatus.PENDING.value
        message = f"Withdrawal to {bank.name} {mask_account_number(account.account_number)}"

        with self.uow.transaction():
            user = self.uow.lock_user(principal.user_id)
            # Checked under the user lock so concurrent requests serialize here
            if self._withdrew_today(user.id, now):
                raise DailyLimitError()
            if Decimal(user.balance) < amount:
                raise InsufficientBalanceError()

            order_id = generate_order_id(user.id, prefix="WDR")
            apply_ledger_mutation(
                self.uow, user, -amount, TransactionType.WITHDRAWAL.value, order_id,
                message=message, charge=charge, status=status,
            )
            withdrawal = self.uow.add(Withdrawal(
                user_id=user.id,
                bank_account_id=account.id,
                amount=amount,
                charge=charge,
                final_amount=final_amount,
                order_id=order_id,
                status=status,
                created_at=now,
            ))

        logger.info(f"Withdrawal {order_id} of {amount} held for user {principal.user_id} ({status})")

        if auto_withdraw and not promotor:
            try:
                self._send_payout(withdrawal)
            except GatewayError as e:
                # The hold stays; an administrator reconciles it
                logger.error(f"Auto payout failed for {order_id}: {e.detail}")

        return withdrawal

    def _send_payout(self, withdrawal):
        account = withdrawal.bank_account
        bank = account.bank if account else None
        if bank is None:
            raise GatewayError(detail=f"bank data missing for withdrawal {withdrawal.order_id}")

        self.gateway.payout(
            withdrawal.order_id,
            account.account_number,
            bank.code,
            int(Decimal(withdrawal.final_amount)),
            callback_url=self.config.get("PAKAILINK_PAYOUT_CALLBACK_URL"),
            bank_type=bank.type,
        )
        logger.info(f"Payout requested for withdrawal {withdrawal.order_id}")

    # ==========================================================
    #                  ADMIN DECISIONS
    # ==========================================================
    def approve_withdrawal(self, withdrawal_id: int) -> Dict:
        withdrawal = self.uow.get(Withdrawal, withdrawal_id)
        if withdrawal is None:
            raise NotFoundError("Withdrawal not found")
        if withdrawal.status != WithdrawalStatus.PENDING.value:
            raise InvalidStateError("Only pending withdrawals can be approved")

        if self.settings().auto_withdraw:
            # Outcome arrives through the payout webhook
            self._send_payout(withdrawal)
            return {"order_id": withdrawal.order_id, "status": withdrawal.status, "mode": "gateway"}

        with self.uow.transaction():
            withdrawal = self.uow.lock_withdrawal(withdrawal_id)
            if withdrawal.status != WithdrawalStatus.PENDING.value:
                raise InvalidStateError("Only pending withdrawals can be approved")
            withdrawal.status = WithdrawalStatus.SUCCESS.value
            set_entry_status(self.uow, withdrawal.order_id, TransactionStatus.SUCCESS.value)

        logger.info(f"Withdrawal {withdrawal.order_id} approved for manual transfer")
        return {"order_id": withdrawal.order_id, "status": withdrawal.status, "mode": "manual"}

    def reject_withdrawal(self, withdrawal_id: int) -> Dict:
        """Mark Failed and refund the full requested amount, once."""
        with self.uow.transaction():
            withdrawal = self.uow.lock_withdrawal(withdrawal_id)
            if withdrawal.status != WithdrawalStatus.PENDING.value:
                raise InvalidStateError("Only pending withdrawals can be rejected")

            user = self.uow.lock_user(withdrawal.user_id)
            withdrawal.status = WithdrawalStatus.FAILED.value
            set_entry_status(self.uow, withdrawal.order_id, TransactionStatus.FAILED.value)
            apply_ledger_mutation(
                self.uow, user, Decimal(withdrawal.amount), TransactionType.REFUND.value,
                f"{withdrawal.order_id}-RF",
                message=f"Refund for withdrawal {withdrawal.order_id}",
            )

        logger.info(f"Withdrawal {withdrawal.order_id} rejected and refunded")
        return {"id": withdrawal.id, "order_id": withdrawal.order_id, "status": withdrawal.status}

    # ==========================================================
    #                  PAYOUT WEBHOOK
    # ==========================================================
    def reconcile_payout(self, order_id: str, status_code: str) -> str:
        """
        00 finalizes the withdrawal as Success. 06 puts it back in the admin
        queue as Pending without refunding. Anything else is ignored.
        """
        code = (status_code or "").strip()
        if code not in (PAYOUT_SUCCESS, PAYOUT_FAILED):
            return "ignored"

        with self.uow.transaction():
            withdrawal = self.uow.lock_withdrawal_by_order(order_id)
            if withdrawal.status != WithdrawalStatus.PENDING.value:
                logger.info(f"Payout callback for {order_id} ignored: status {withdrawal.status}")
                return "skipped"

            if code == PAYOUT_SUCCESS:
                withdrawal.status = WithdrawalStatus.SUCCESS.value
                set_entry_status(self.uow, order_id, TransactionStatus.SUCCESS.value)
                result = "success"
            else:
                set_entry_status(self.uow, order_id, TransactionStatus.PENDING.value)
                result = "returned_to_pending"

        logger.info(f"Payout callback for {order_id}: {result}")
        return result

    def list_withdrawals(self, principal):
        return (
            self.uow.session.query(Withdrawal)
            .filter_by(user_id=principal.user_id)
            .order_by(Withdrawal.id.desc())
            .all()
        )
