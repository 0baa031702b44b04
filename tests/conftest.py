import os
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

# Config reads these at import time
os.environ.setdefault("FLASK_ENV", "testing")
os.environ.setdefault("SECRET_KEY", "test-secret")

from app import create_app  # noqa: E402
from config import TestConfig  # noqa: E402
from extensions import db  # noqa: E402
from models import Bank, BankAccount, Category, Product, Setting, Transaction, User  # noqa: E402
from investments import build_services  # noqa: E402
from investments.gateway import GatewayPayment, INQUIRY_PENDING  # noqa: E402
from investments.principal import Principal  # noqa: E402

# Monday 2026-10-19, 10:00 in Jakarta
OPEN_HOURS = datetime(2026, 10, 19, 3, 0, 0)
DAY = timedelta(hours=24)


class FakeGateway:
    """Stands in for PakailinkClient. Records calls; set ``fail_with`` to make every call raise."""

    def __init__(self):
        self.calls = []
        self.fail_with = None
        self.inquiry_result = INQUIRY_PENDING

    def _call(self, name, *args, **kwargs):
        self.calls.append((name, args, kwargs))
        if self.fail_with is not None:
            raise self.fail_with

    def names(self):
        return [call[0] for call in self.calls]

    def create_virtual_account(self, order_id, customer_no, name, amount, bank_code, expires_at=None):
        self._call("create_virtual_account", order_id, customer_no, name, amount, bank_code, expires_at=expires_at)
        return GatewayPayment(payment_code="88081234567890", expired_at=expires_at, reference="REF-VA")

    def create_qr(self, order_id, amount, expires_at=None):
        self._call("create_qr", order_id, amount, expires_at=expires_at)
        return GatewayPayment(payment_code="00020101021226610016ID.CO.QRIS", expired_at=expires_at, reference=None)

    def inquiry(self, order_id, method="BANK"):
        self._call("inquiry", order_id, method)
        return self.inquiry_result

    def payout(self, order_id, account_number, code, amount, callback_url=None, bank_type="bank"):
        self._call("payout", order_id, account_number, code, amount,
                   callback_url=callback_url, bank_type=bank_type)
        return {"responseCode": "2004300", "responseMessage": "Successful"}


@pytest.fixture
def fake_gateway():
    return FakeGateway()


@pytest.fixture
def app(fake_gateway):
    app = create_app(TestConfig, gateway=fake_gateway)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def services(app):
    return build_services(db.session, app.extensions["gateway"], app.config)


@pytest.fixture
def uow(services):
    return services["uow"]


@pytest.fixture
def login(client):
    """Put a user id into the Flask-Login session of the test client."""
    def _login(user):
        with client.session_transaction() as sess:
            sess["_user_id"] = str(user.id)
            sess["_fresh"] = True
    return _login


# ===== factories =====

@pytest.fixture
def make_user(app):
    counter = {"n": 0}

    def _make(balance="0", mode="real", role="user", level=0, referrer=None, name=None, status="Active"):
        counter["n"] += 1
        n = counter["n"]
        user = User(
            name=name or f"User {n}",
            phone=f"0812{n:08d}",
            balance=Decimal(balance),
            mode=mode,
            role=role,
            level=level,
            status=status,
            referred_by=referrer.id if referrer is not None else None,
        )
        db.session.add(user)
        db.session.commit()
        return user
    return _make


@pytest.fixture
def make_product(app):
    counter = {"n": 0}

    def _make(amount="50000", daily_profit="1000", duration=10, locked=False,
              required_vip=0, purchase_limit=0, status="Active"):
        counter["n"] += 1
        category = Category(
            name=f"{'Locked' if locked else 'Daily'} {counter['n']}",
            profit_type="locked" if locked else "unlocked",
        )
        product = Product(
            category=category,
            name=f"Plan {counter['n']}",
            amount=Decimal(amount),
            daily_profit=Decimal(daily_profit),
            duration=duration,
            required_vip=required_vip,
            purchase_limit=purchase_limit,
            status=status,
        )
        db.session.add_all([category, product])
        db.session.commit()
        return product
    return _make


@pytest.fixture
def make_bank_account(app):
    def _make(user, bank_type="bank", code="014", number="1234567890", bank_status="Active"):
        bank = Bank(name="Bank Central Asia" if bank_type == "bank" else "DANA",
                    short_name="BCA", code=code, type=bank_type, status=bank_status)
        account = BankAccount(user_id=user.id, bank=bank, account_name=user.name, account_number=number)
        db.session.add_all([bank, account])
        db.session.commit()
        return account
    return _make


@pytest.fixture
def make_setting(app):
    def _make(min_withdraw="10000", max_withdraw="5000000", withdraw_charge="10", auto_withdraw=False):
        setting = Setting(
            min_withdraw=Decimal(min_withdraw),
            max_withdraw=Decimal(max_withdraw),
            withdraw_charge=Decimal(withdraw_charge),
            auto_withdraw=auto_withdraw,
        )
        db.session.add(setting)
        db.session.commit()
        return setting
    return _make


# ===== helpers =====

def principal_for(user):
    return Principal.from_user(user)


def balance_of(user):
    db.session.refresh(user)
    return Decimal(user.balance)


def ledger_sum(user):
    entries = Transaction.query.filter_by(user_id=user.id).all()
    return sum((entry.signed_amount for entry in entries), Decimal("0"))
