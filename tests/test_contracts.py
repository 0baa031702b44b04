from decimal import Decimal

import pytest

from conftest import DAY, OPEN_HOURS, balance_of, principal_for
from extensions import db
from models import Investment, Payment, Transaction
from investments.exceptions import (
    GatewayError, InsufficientBalanceError, InvalidStateError, NotFoundError,
    PurchaseLimitError, ValidationError, VipLevelError,
)
from investments.gateway import INQUIRY_FAILED, INQUIRY_SETTLED


@pytest.fixture
def investments(services):
    return services["investments"]


def _contract(order_id):
    db.session.expire_all()
    return Investment.query.filter_by(order_id=order_id).one()


def test_bank_purchase_creates_pending_contract_with_virtual_account(investments, make_user, make_product, fake_gateway):
    user = make_user(balance="100000")
    product = make_product(amount="50000")

    result = investments.create_contract(principal_for(user), product.id, "bank", "bca", now=OPEN_HOURS)

    assert result["status"] == "Pending"
    assert result["order_id"].startswith("XIN-")
    assert result["payment"]["payment_code"] == "88081234567890"
    assert result["payment"]["payment_channel"] == "BCA"
    assert result["category"]["profit_type"] == "unlocked"

    name, args, kwargs = fake_gateway.calls[0]
    assert name == "create_virtual_account"
    assert args[2] == "User 1 - Invest"
    assert args[4] == "014"
    assert kwargs["expires_at"] == OPEN_HOURS + DAY

    # Paid at the gateway, so the balance is untouched
    assert balance_of(user) == Decimal("100000")
    entry = Transaction.query.filter_by(order_id=result["order_id"]).one()
    assert entry.affects_balance is False
    assert entry.status == "Pending"


def test_qris_purchase_uses_qr_code(investments, make_user, make_product, fake_gateway):
    user = make_user()
    product = make_product(amount="50000")

    result = investments.create_contract(principal_for(user), product.id, "QRIS", now=OPEN_HOURS)

    assert fake_gateway.names() == ["create_qr"]
    assert result["payment"]["payment_method"] == "QRIS"
    assert result["payment"]["payment_code"].startswith("000201")


@pytest.mark.parametrize("method,channel,amount", [
    ("QRIS", None, "15000000"),
    ("BANK", "BCA", "5000"),
    ("BANK", "NOTABANK", "50000"),
    ("CASH", None, "50000"),
    (None, None, "50000"),
])
def test_payment_method_rules(investments, make_user, make_product, fake_gateway, method, channel, amount):
    user = make_user()
    product = make_product(amount=amount)

    with pytest.raises(ValidationError):
        investments.create_contract(principal_for(user), product.id, method, channel, now=OPEN_HOURS)
    assert fake_gateway.calls == []
    assert Investment.query.count() == 0


def test_inactive_product_is_rejected(investments, make_user, make_product):
    user = make_user()
    product = make_product(status="Inactive")
    with pytest.raises(ValidationError):
        investments.create_contract(principal_for(user), product.id, "QRIS", now=OPEN_HOURS)


def test_unknown_product_is_rejected(investments, make_user):
    user = make_user()
    with pytest.raises(ValidationError):
        investments.create_contract(principal_for(user), 999, "QRIS", now=OPEN_HOURS)


def test_vip_level_gates_products(investments, make_user, make_product):
    user = make_user(level=1)
    product = make_product(required_vip=2)
    with pytest.raises(VipLevelError):
        investments.create_contract(principal_for(user), product.id, "QRIS", now=OPEN_HOURS)


def test_gateway_failure_leaves_contract_pending(investments, make_user, make_product, fake_gateway):
    user = make_user()
    product = make_product()
    fake_gateway.fail_with = GatewayError(detail="timeout")

    with pytest.raises(GatewayError):
        investments.create_contract(principal_for(user), product.id, "BANK", "BNI", now=OPEN_HOURS)

    contract = Investment.query.one()
    assert contract.status == "Pending"
    assert contract.payment.payment_code is None
    assert contract.payment.status == "Pending"


def test_promotor_pays_from_balance_and_runs_immediately(investments, make_user, make_product, fake_gateway):
    user = make_user(balance="100000", mode="promotor")
    product = make_product(amount="50000")

    result = investments.create_contract(principal_for(user), product.id, now=OPEN_HOURS)

    assert fake_gateway.calls == []
    assert result["status"] == "Running"
    assert result["payment"]["payment_method"] == "BALANCE"
    assert result["payment"]["status"] == "Success"
    assert balance_of(user) == Decimal("50000")
    assert Decimal(user.total_invest) == Decimal("50000")
    assert user.investment_status == "Active"

    contract = _contract(result["order_id"])
    assert contract.next_return_at == OPEN_HOURS + DAY


def test_promotor_with_insufficient_balance_is_rejected(investments, make_user, make_product):
    user = make_user(balance="49999", mode="promotor")
    product = make_product(amount="50000")

    with pytest.raises(InsufficientBalanceError):
        investments.create_contract(principal_for(user), product.id, now=OPEN_HOURS)
    assert Investment.query.count() == 0
    assert balance_of(user) == Decimal("49999")


def test_purchase_limit_counts_active_contracts(investments, make_user, make_product):
    user = make_user(balance="200000", mode="promotor")
    product = make_product(amount="50000", purchase_limit=1)

    investments.create_contract(principal_for(user), product.id, now=OPEN_HOURS)
    with pytest.raises(PurchaseLimitError):
        investments.create_contract(principal_for(user), product.id, now=OPEN_HOURS)
    assert balance_of(user) == Decimal("150000")


def test_concurrent_promotor_purchases_respect_the_limit(investments, make_user, make_product, monkeypatch):
    user = make_user(balance="200000", mode="promotor")
    product = make_product(amount="50000", purchase_limit=1)
    lock_user = investments.uow.lock_user
    raced = []

    def lock_after_competing_purchase(user_id):
        if not raced:
            raced.append(user_id)
            investments.create_contract(principal_for(user), product.id, now=OPEN_HOURS)
        return lock_user(user_id)

    monkeypatch.setattr(investments.uow, "lock_user", lock_after_competing_purchase)

    with pytest.raises(PurchaseLimitError):
        investments.create_contract(principal_for(user), product.id, now=OPEN_HOURS)

    assert Investment.query.filter_by(user_id=user.id).count() == 1
    assert balance_of(user) == Decimal("150000")


def test_pending_contracts_do_not_count_towards_purchase_limit(investments, make_user, make_product):
    user = make_user()
    product = make_product(purchase_limit=1)

    investments.create_contract(principal_for(user), product.id, "QRIS", now=OPEN_HOURS)
    investments.create_contract(principal_for(user), product.id, "QRIS", now=OPEN_HOURS)
    assert Investment.query.count() == 2


def test_settlement_runs_once(investments, make_user, make_product):
    user = make_user(balance="100000")
    product = make_product(amount="50000")
    order_id = investments.create_contract(principal_for(user), product.id, "QRIS", now=OPEN_HOURS)["order_id"]

    assert investments.settle_contract(order_id, now=OPEN_HOURS) is True
    assert investments.settle_contract(order_id, now=OPEN_HOURS + DAY) is False

    contract = _contract(order_id)
    assert contract.status == "Running"
    assert contract.next_return_at == OPEN_HOURS + DAY
    assert contract.payment.status == "Success"
    assert Transaction.query.filter_by(order_id=order_id).one().status == "Success"
    assert balance_of(user) == Decimal("100000")
    assert Decimal(user.total_invest) == Decimal("50000")


def test_settlement_of_locked_contract_raises_vip_level(investments, make_user, make_product):
    user = make_user()
    product = make_product(amount="1200000", locked=True)
    order_id = investments.create_contract(principal_for(user), product.id, "BANK", "MANDIRI", now=OPEN_HOURS)["order_id"]

    investments.settle_contract(order_id, now=OPEN_HOURS)

    db.session.refresh(user)
    assert user.level == 2
    assert Decimal(user.total_invest_vip) == Decimal("1200000")


def test_unlocked_contracts_do_not_count_for_vip(investments, make_user, make_product):
    user = make_user()
    product = make_product(amount="1200000")
    order_id = investments.create_contract(principal_for(user), product.id, "BANK", "BRI", now=OPEN_HOURS)["order_id"]

    investments.settle_contract(order_id, now=OPEN_HOURS)

    db.session.refresh(user)
    assert user.level == 0
    assert Decimal(user.total_invest_vip) == Decimal("0")
    assert Decimal(user.total_invest) == Decimal("1200000")


def test_failed_payment_cancels_pending_contract(investments, make_user, make_product):
    user = make_user()
    product = make_product()
    order_id = investments.create_contract(principal_for(user), product.id, "QRIS", now=OPEN_HOURS)["order_id"]

    assert investments.fail_contract(order_id) is True
    assert investments.fail_contract(order_id) is False
    assert investments.settle_contract(order_id) is False

    contract = _contract(order_id)
    assert contract.status == "Cancelled"
    assert contract.payment.status == "Failed"
    assert Transaction.query.filter_by(order_id=order_id).one().status == "Failed"


def test_failure_after_settlement_is_ignored(investments, make_user, make_product):
    user = make_user()
    product = make_product()
    order_id = investments.create_contract(principal_for(user), product.id, "QRIS", now=OPEN_HOURS)["order_id"]
    investments.settle_contract(order_id, now=OPEN_HOURS)

    assert investments.fail_contract(order_id) is False
    assert _contract(order_id).status == "Running"


def test_expiry_cancels_only_overdue_pending_payments(investments, make_user, make_product):
    user = make_user()
    product = make_product()
    overdue = investments.create_contract(principal_for(user), product.id, "QRIS", now=OPEN_HOURS)["order_id"]
    settled = investments.create_contract(principal_for(user), product.id, "QRIS", now=OPEN_HOURS)["order_id"]
    fresh = investments.create_contract(principal_for(user), product.id, "QRIS", now=OPEN_HOURS + DAY)["order_id"]
    investments.settle_contract(settled, now=OPEN_HOURS)

    summary = investments.expire_pending_payments(now=OPEN_HOURS + DAY)

    assert summary == {"expired": 1, "cancelled": 1, "failed": 0}
    assert _contract(overdue).status == "Cancelled"
    assert _contract(overdue).payment.status == "Expired"
    assert _contract(settled).status == "Running"
    assert _contract(fresh).status == "Pending"
    assert investments.expire_pending_payments(now=OPEN_HOURS + DAY)["expired"] == 0


def test_payment_details_settles_through_inquiry(investments, make_user, make_product, fake_gateway):
    user = make_user()
    product = make_product()
    order_id = investments.create_contract(principal_for(user), product.id, "BANK", "BCA", now=OPEN_HOURS)["order_id"]
    fake_gateway.inquiry_result = INQUIRY_SETTLED

    details = investments.payment_details(principal_for(user), order_id, now=OPEN_HOURS + DAY / 2)

    assert ("inquiry", (order_id, "BANK"), {}) in fake_gateway.calls
    assert details["investment"]["status"] == "Running"
    assert details["payment"]["status"] == "Success"


def test_payment_details_cancels_on_failed_inquiry(investments, make_user, make_product, fake_gateway):
    user = make_user()
    product = make_product()
    order_id = investments.create_contract(principal_for(user), product.id, "QRIS", now=OPEN_HOURS)["order_id"]
    fake_gateway.inquiry_result = INQUIRY_FAILED

    details = investments.payment_details(principal_for(user), order_id, now=OPEN_HOURS + DAY / 2)

    assert details["investment"]["status"] == "Cancelled"


def test_payment_details_survives_gateway_outage(investments, make_user, make_product, fake_gateway):
    user = make_user()
    product = make_product()
    order_id = investments.create_contract(principal_for(user), product.id, "QRIS", now=OPEN_HOURS)["order_id"]
    fake_gateway.fail_with = GatewayError(detail="timeout")

    details = investments.payment_details(principal_for(user), order_id, now=OPEN_HOURS + DAY / 2)

    assert details["payment"]["status"] == "Pending"


def test_expired_payment_is_not_inquired(investments, make_user, make_product, fake_gateway):
    user = make_user()
    product = make_product()
    order_id = investments.create_contract(principal_for(user), product.id, "QRIS", now=OPEN_HOURS)["order_id"]
    fake_gateway.calls.clear()

    investments.payment_details(principal_for(user), order_id, now=OPEN_HOURS + 2 * DAY)

    assert fake_gateway.calls == []


def test_payment_details_are_private(investments, make_user, make_product):
    owner = make_user()
    other = make_user()
    product = make_product()
    order_id = investments.create_contract(principal_for(owner), product.id, "QRIS", now=OPEN_HOURS)["order_id"]

    with pytest.raises(NotFoundError):
        investments.payment_details(principal_for(other), order_id, now=OPEN_HOURS)


def test_list_contracts_filters_by_owner_and_status(investments, make_user, make_product):
    user = make_user()
    other = make_user()
    product = make_product()
    first = investments.create_contract(principal_for(user), product.id, "QRIS", now=OPEN_HOURS)["order_id"]
    investments.create_contract(principal_for(user), product.id, "QRIS", now=OPEN_HOURS)
    investments.create_contract(principal_for(other), product.id, "QRIS", now=OPEN_HOURS)
    investments.settle_contract(first, now=OPEN_HOURS)

    assert len(investments.list_contracts(principal_for(user))) == 2
    running = investments.list_contracts(principal_for(user), status="Running")
    assert [c.order_id for c in running] == [first]


def test_admin_can_suspend_and_resume(investments, make_user, make_product):
    user = make_user(balance="50000", mode="promotor")
    product = make_product(amount="50000")
    order_id = investments.create_contract(principal_for(user), product.id, now=OPEN_HOURS)["order_id"]
    contract_id = _contract(order_id).id

    assert investments.set_contract_status(contract_id, "Suspended").status == "Suspended"
    resumed = investments.set_contract_status(contract_id, "Running", now=OPEN_HOURS + 3 * DAY)
    assert resumed.status == "Running"
    assert resumed.next_return_at == OPEN_HOURS + 4 * DAY


def test_pending_contract_cannot_be_suspended(investments, make_user, make_product):
    user = make_user()
    product = make_product()
    order_id = investments.create_contract(principal_for(user), product.id, "QRIS", now=OPEN_HOURS)["order_id"]

    with pytest.raises(InvalidStateError):
        investments.set_contract_status(_contract(order_id).id, "Suspended")
    assert Payment.query.one().status == "Pending"
