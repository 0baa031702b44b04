# models.py — Flask-SQLAlchemy models for the investment ledger
from datetime import datetime
from decimal import Decimal
import enum
from flask_login import UserMixin
from sqlalchemy import UniqueConstraint, Index, text
from extensions import db

# ===========================================================
# ENUM DEFINITIONS
# ===========================================================

class UserStatus(enum.Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"
    SUSPENDED = "Suspended"


class UserMode(enum.Enum):
    REAL = "real"
    PROMOTOR = "promotor"


class ProfitType(enum.Enum):
    LOCKED = "locked"
    UNLOCKED = "unlocked"


class InvestmentStatus(enum.Enum):
    PENDING = "Pending"
    RUNNING = "Running"
    COMPLETED = "Completed"
    SUSPENDED = "Suspended"
    CANCELLED = "Cancelled"


class PaymentStatus(enum.Enum):
    PENDING = "Pending"
    SUCCESS = "Success"
    FAILED = "Failed"
    EXPIRED = "Expired"


class PaymentMethod(enum.Enum):
    QRIS = "QRIS"
    BANK = "BANK"
    BALANCE = "BALANCE"


class WithdrawalStatus(enum.Enum):
    PENDING = "Pending"
    SUCCESS = "Success"
    FAILED = "Failed"


class TransactionStatus(enum.Enum):
    PENDING = "Pending"
    SUCCESS = "Success"
    FAILED = "Failed"


class TransactionFlow(enum.Enum):
    DEBIT = "debit"    # funds entering the balance
    CREDIT = "credit"  # funds leaving the balance


class TransactionType(enum.Enum):
    INVESTMENT = "investment"
    RETURN = "return"
    WITHDRAWAL = "withdrawal"
    TEAM = "team"
    REFUND = "refund"
    TRANSFER = "transfer"
    RECEIVE = "receive"
    BONUS = "bonus"


def _money(value):
    return str(Decimal(value or 0).quantize(Decimal("0.01")))


def _iso(value):
    return value.isoformat() if value else None


# ===========================================================
# BASE MIXIN FOR COMMON FIELDS
# ===========================================================

class BaseMixin:
    """Provides created_at and updated_at timestamps to inheriting models."""
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

# ===========================================================
# USER
# ===========================================================

class User(UserMixin, db.Model, BaseMixin):
    """Balance holder. `balance` is written only by the ledger primitive."""
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    phone = db.Column(db.String(20), unique=True, nullable=False)
    role = db.Column(db.String(20), nullable=False, default="user", index=True)
    mode = db.Column(db.String(20), nullable=False, default=UserMode.REAL.value)
    status = db.Column(db.String(20), nullable=False, default=UserStatus.ACTIVE.value)

    balance = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal("0.00"), server_default=text("0.00"))
    level = db.Column(db.Integer, nullable=False, default=0)
    total_invest = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal("0.00"), server_default=text("0.00"))
    total_invest_vip = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal("0.00"), server_default=text("0.00"))
    spin_ticket = db.Column(db.Integer, nullable=False, default=0)
    investment_status = db.Column(db.String(20), nullable=False, default="Inactive")

    referred_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    referrer = db.relationship('User', remote_side=[id])

    investments = db.relationship('Investment', back_populates='user', lazy='dynamic')
    bank_accounts = db.relationship('BankAccount', back_populates='user')

    @property
    def is_active(self):
        return self.status == UserStatus.ACTIVE.value

    @property
    def is_promotor(self):
        return self.mode == UserMode.PROMOTOR.value

    @property
    def is_admin(self):
        return self.role == "admin"

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "balance": _money(self.balance),
            "level": self.level,
            "total_invest": _money(self.total_invest),
            "total_invest_vip": _money(self.total_invest_vip),
            "spin_ticket": self.spin_ticket,
            "investment_status": self.investment_status,
            "status": self.status,
        }

    def __repr__(self):
        return f"<User {self.id} {self.phone}>"

# ===========================================================
# CATALOG
# ===========================================================

class Category(db.Model, BaseMixin):
    """Groups products and decides how profit is paid out."""
    __tablename__ = 'categories'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(80), unique=True, nullable=False)
    profit_type = db.Column(db.String(20), nullable=False, default=ProfitType.UNLOCKED.value)
    status = db.Column(db.String(20), nullable=False, default="Active")

    products = db.relationship('Product', back_populates='category')

    @property
    def is_locked(self):
        return self.profit_type == ProfitType.LOCKED.value


class Product(db.Model, BaseMixin):
    __tablename__ = 'products'
    id = db.Column(db.Integer, primary_key=True)
    category_id = db.Column(db.Integer, db.ForeignKey('categories.id'), nullable=False)
    name = db.Column(db.String(120), nullable=False)
    amount = db.Column(db.Numeric(18, 2), nullable=False)
    daily_profit = db.Column(db.Numeric(18, 2), nullable=False)
    duration = db.Column(db.Integer, nullable=False)
    required_vip = db.Column(db.Integer, nullable=False, default=0)
    purchase_limit = db.Column(db.Integer, nullable=False, default=0)  # 0 = unlimited
    status = db.Column(db.String(20), nullable=False, default="Active")

    category = db.relationship('Category', back_populates='products')

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "amount": _money(self.amount),
            "daily_profit": _money(self.daily_profit),
            "duration": self.duration,
            "required_vip": self.required_vip,
            "purchase_limit": self.purchase_limit,
        }

# ===========================================================
# INVESTMENT CONTRACTS & PAYMENTS
# ===========================================================

class Investment(db.Model, BaseMixin):
    """One purchased product with its own accrual schedule. Never deleted."""
    __tablename__ = 'investments'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey('products.id'), nullable=False)
    category_id = db.Column(db.Integer, db.ForeignKey('categories.id'), nullable=False)
    amount = db.Column(db.Numeric(18, 2), nullable=False)
    daily_profit = db.Column(db.Numeric(18, 2), nullable=False)
    duration = db.Column(db.Integer, nullable=False)
    total_paid = db.Column(db.Integer, nullable=False, default=0)
    total_returned = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal("0.00"))
    last_return_at = db.Column(db.DateTime, nullable=True)
    next_return_at = db.Column(db.DateTime, nullable=True)
    order_id = db.Column(db.String(64), nullable=False)
    status = db.Column(db.String(20), nullable=False, default=InvestmentStatus.PENDING.value)

    user = db.relationship('User', back_populates='investments')
    product = db.relationship('Product')
    category = db.relationship('Category')
    payment = db.relationship('Payment', uselist=False, back_populates='investment')

    __table_args__ = (
        UniqueConstraint('order_id', name='uq_investments_order_id'),
        Index('idx_investment_due', 'status', 'next_return_at'),
        Index('idx_investment_user_product', 'user_id', 'product_id', 'status'),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "category_id": self.category_id,
            "category_name": self.category.name if self.category else None,
            "amount": _money(self.amount),
            "daily_profit": _money(self.daily_profit),
            "duration": self.duration,
            "total_paid": self.total_paid,
            "total_returned": _money(self.total_returned),
            "last_return_at": _iso(self.last_return_at),
            "next_return_at": _iso(self.next_return_at),
            "status": self.status,
        }


class Payment(db.Model, BaseMixin):
    __tablename__ = 'payments'
    id = db.Column(db.Integer, primary_key=True)
    investment_id = db.Column(db.Integer, db.ForeignKey('investments.id'), nullable=False, unique=True)
    order_id = db.Column(db.String(64), nullable=False)
    amount = db.Column(db.Numeric(18, 2), nullable=False)
    payment_method = db.Column(db.String(20), nullable=False)
    payment_channel = db.Column(db.String(40), nullable=True)
    payment_code = db.Column(db.Text, nullable=True)
    expired_at = db.Column(db.DateTime, nullable=True)
    status = db.Column(db.String(20), nullable=False, default=PaymentStatus.PENDING.value)

    investment = db.relationship('Investment', back_populates='payment')

    __table_args__ = (
        UniqueConstraint('order_id', name='uq_payments_order_id'),
        Index('idx_payment_status_expiry', 'status', 'expired_at'),
    )

    def to_dict(self):
        return {
            "order_id": self.order_id,
            "amount": _money(self.amount),
            "payment_method": self.payment_method,
            "payment_channel": self.payment_channel,
            "payment_code": self.payment_code,
            "expired_at": _iso(self.expired_at),
            "status": self.status,
        }

# ===========================================================
# LEDGER
# ===========================================================

class Transaction(db.Model, BaseMixin):
    """
    Ledger entry. `order_id` is the idempotency key for the balance change it
    records. Rows with affects_balance=False document money that never passed
    through the balance (a purchase paid at the gateway).
    """
    __tablename__ = 'transactions'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    amount = db.Column(db.Numeric(18, 2), nullable=False)
    charge = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal("0.00"))
    order_id = db.Column(db.String(80), nullable=False)
    transaction_flow = db.Column(db.String(10), nullable=False)
    transaction_type = db.Column(db.String(20), nullable=False)
    message = db.Column(db.String(255), nullable=True)
    status = db.Column(db.String(20), nullable=False, default=TransactionStatus.SUCCESS.value)
    affects_balance = db.Column(db.Boolean, nullable=False, default=True)

    user = db.relationship('User')

    __table_args__ = (
        UniqueConstraint('order_id', name='uq_transactions_order_id'),
        Index('idx_transaction_user_type', 'user_id', 'transaction_type'),
    )

    @property
    def signed_amount(self):
        if not self.affects_balance:
            return Decimal("0.00")
        amount = Decimal(self.amount)
        return amount if self.transaction_flow == TransactionFlow.DEBIT.value else -amount

    def to_dict(self):
        return {
            "id": self.id,
            "order_id": self.order_id,
            "amount": _money(self.amount),
            "charge": _money(self.charge),
            "transaction_flow": self.transaction_flow,
            "transaction_type": self.transaction_type,
            "message": self.message,
            "status": self.status,
            "created_at": _iso(self.created_at),
        }

# ===========================================================
# WITHDRAWALS
# ===========================================================

class Bank(db.Model, BaseMixin):
    __tablename__ = 'banks'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(80), nullable=False)
    short_name = db.Column(db.String(20), nullable=True)
    code = db.Column(db.String(20), nullable=False)  # gateway payout code
    type = db.Column(db.String(20), nullable=False, default="bank")  # bank | ewallet
    status = db.Column(db.String(20), nullable=False, default="Active")


class BankAccount(db.Model, BaseMixin):
    __tablename__ = 'bank_accounts'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    bank_id = db.Column(db.Integer, db.ForeignKey('banks.id'), nullable=False)
    account_name = db.Column(db.String(120), nullable=False)
    account_number = db.Column(db.String(40), nullable=False)

    user = db.relationship('User', back_populates='bank_accounts')
    bank = db.relationship('Bank')


class Withdrawal(db.Model, BaseMixin):
    __tablename__ = 'withdrawals'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    bank_account_id = db.Column(db.Integer, db.ForeignKey('bank_accounts.id'), nullable=False)
    amount = db.Column(db.Numeric(18, 2), nullable=False)
    charge = db.Column(db.Numeric(18, 2), nullable=False)
    final_amount = db.Column(db.Numeric(18, 2), nullable=False)
    order_id = db.Column(db.String(64), nullable=False)
    status = db.Column(db.String(20), nullable=False, default=WithdrawalStatus.PENDING.value)

    user = db.relationship('User')
    bank_account = db.relationship('BankAccount')

    __table_args__ = (
        UniqueConstraint('order_id', name='uq_withdrawals_order_id'),
        Index('idx_withdrawal_user_created', 'user_id', 'created_at'),
    )

    def to_dict(self):
        account = self.bank_account
        return {
            "id": self.id,
            "order_id": self.order_id,
            "amount": _money(self.amount),
            "charge": _money(self.charge),
            "final_amount": _money(self.final_amount),
            "bank_name": account.bank.name if account and account.bank else None,
            "account_number": account.account_number if account else None,
            "status": self.status,
            "created_at": _iso(self.created_at),
        }


class Setting(db.Model, BaseMixin):
    """Single-row platform settings for withdrawals."""
    __tablename__ = 'settings'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(80), nullable=False, default="default")
    min_withdraw = db.Column(db.Numeric(18, 2), nullable=False)
    max_withdraw = db.Column(db.Numeric(18, 2), nullable=False)
    withdraw_charge = db.Column(db.Numeric(5, 2), nullable=False)  # percent
    auto_withdraw = db.Column(db.Boolean, nullable=False, default=False)

# ===========================================================
# TRANSFERS & SPIN WHEEL
# ===========================================================

class TransferContact(db.Model, BaseMixin):
    """Users a sender has transferred to; `updated_at` orders the list."""
    __tablename__ = 'transfer_contacts'
    id = db.Column(db.Integer, primary_key=True)
    sender_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    receiver_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)

    receiver = db.relationship('User', foreign_keys=[receiver_id])

    __table_args__ = (
        UniqueConstraint('sender_id', 'receiver_id', name='uq_transfer_contact_pair'),
    )


class SpinPrize(db.Model, BaseMixin):
    __tablename__ = 'spin_prizes'
    id = db.Column(db.Integer, primary_key=True)
    amount = db.Column(db.Numeric(18, 2), nullable=False)
    code = db.Column(db.String(40), unique=True, nullable=False)
    chance_weight = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(20), nullable=False, default="Active")


class UserSpin(db.Model, BaseMixin):
    """One redeemed spin ticket and what it won."""
    __tablename__ = 'user_spins'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    prize_id = db.Column(db.Integer, db.ForeignKey('spin_prizes.id'), nullable=False)
    amount = db.Column(db.Numeric(18, 2), nullable=False)
    code = db.Column(db.String(40), nullable=False)
    order_id = db.Column(db.String(64), nullable=True)
    won_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

# ===========================================================
# WEBHOOK AUDIT
# ===========================================================

class WebhookEvent(db.Model, BaseMixin):
    """Every inbound gateway delivery, kept for reconciliation audits."""
    __tablename__ = 'webhook_events'
    id = db.Column(db.Integer, primary_key=True)
    event_type = db.Column(db.String(20), nullable=False)  # payment | payout
    reference = db.Column(db.String(80), nullable=True, index=True)
    status_code = db.Column(db.String(10), nullable=True)
    payload = db.Column(db.JSON, nullable=True)
    processed = db.Column(db.Boolean, default=False)
    processed_at = db.Column(db.DateTime, nullable=True)
    result = db.Column(db.String(40), nullable=True)

    def mark_processed(self, result):
        self.processed = True
        self.processed_at = datetime.utcnow()
        self.result = result
