from decimal import Decimal

import pytest

from conftest import DAY, OPEN_HOURS, balance_of, ledger_sum, principal_for
from extensions import db
from models import Investment, Transaction


@pytest.fixture
def scheduler(services):
    return services["accrual"]


@pytest.fixture
def running_contract(services, make_user, make_product):
    """Settle a gateway-funded contract at OPEN_HOURS and return (user, order_id)."""
    def _make(locked=False, amount="50000", daily_profit="1000", duration=10, balance="100000", referrer=None):
        user = make_user(balance=balance, referrer=referrer)
        product = make_product(amount=amount, daily_profit=daily_profit, duration=duration, locked=locked)
        investments = services["investments"]
        order_id = investments.create_contract(principal_for(user), product.id, "QRIS", now=OPEN_HOURS)["order_id"]
        investments.settle_contract(order_id, now=OPEN_HOURS)
        return user, order_id
    return _make


def _contract(order_id):
    db.session.expire_all()
    return Investment.query.filter_by(order_id=order_id).one()


def test_unlocked_contract_pays_each_period(scheduler, running_contract):
    user, order_id = running_contract()

    summary = scheduler.run(now=OPEN_HOURS + DAY)

    assert summary == {"processed": 1, "completed": 0, "failed": 0, "total_paid_out": "1000.00"}
    assert balance_of(user) == Decimal("101000")
    contract = _contract(order_id)
    assert contract.total_paid == 1
    assert contract.last_return_at == OPEN_HOURS + DAY
    assert contract.next_return_at == OPEN_HOURS + 2 * DAY
    assert Transaction.query.filter_by(order_id=f"{order_id}-R1").one().transaction_type == "return"


def test_contract_is_not_due_before_its_period(scheduler, running_contract):
    user, _ = running_contract()

    assert scheduler.due_contract_ids(now=OPEN_HOURS + DAY / 2) == []
    assert scheduler.run(now=OPEN_HOURS + DAY / 2)["processed"] == 0
    assert balance_of(user) == Decimal("100000")


def test_repeated_run_at_same_time_pays_once(scheduler, running_contract):
    user, order_id = running_contract()
    contract_id = _contract(order_id).id

    assert scheduler.process_one(contract_id, now=OPEN_HOURS + DAY)["period"] == 1
    assert scheduler.process_one(contract_id, now=OPEN_HOURS + DAY) is None
    assert scheduler.run(now=OPEN_HOURS + DAY)["processed"] == 0
    assert balance_of(user) == Decimal("101000")


def test_one_period_per_run_even_when_late(scheduler, running_contract):
    user, order_id = running_contract()

    scheduler.run(now=OPEN_HOURS + 5 * DAY)

    contract = _contract(order_id)
    assert contract.total_paid == 1
    assert contract.next_return_at == OPEN_HOURS + 2 * DAY
    assert balance_of(user) == Decimal("101000")


def test_unlocked_contract_completes_with_capital_return(scheduler, running_contract):
    user, order_id = running_contract()

    for day in range(1, 11):
        scheduler.run(now=OPEN_HOURS + day * DAY)

    contract = _contract(order_id)
    assert contract.status == "Completed"
    assert contract.total_paid == 10
    assert Decimal(contract.total_returned) == Decimal("10000")
    # 10 x 1,000 profit plus the 50,000 principal
    assert balance_of(user) == Decimal("160000")
    assert Transaction.query.filter_by(order_id=f"{order_id}-C").count() == 1
    assert Transaction.query.filter(Transaction.order_id.like(f"{order_id}-R%")).count() == 10

    assert scheduler.run(now=OPEN_HOURS + 11 * DAY)["processed"] == 0
    assert _contract(order_id).total_paid == 10
    assert balance_of(user) - Decimal("100000") == ledger_sum(user)


def test_locked_contract_pays_profit_in_one_lump_sum(scheduler, running_contract):
    user, order_id = running_contract(locked=True)

    for day in range(1, 10):
        scheduler.run(now=OPEN_HOURS + day * DAY)
    assert balance_of(user) == Decimal("100000")
    assert _contract(order_id).total_paid == 9

    summary = scheduler.run(now=OPEN_HOURS + 10 * DAY)

    assert summary["completed"] == 1
    assert summary["total_paid_out"] == "60000.00"
    profit = Transaction.query.filter_by(order_id=f"{order_id}-P").one()
    assert Decimal(profit.amount) == Decimal("10000")
    assert Transaction.query.filter_by(order_id=f"{order_id}-C").count() == 1
    assert balance_of(user) == Decimal("160000")
    assert _contract(order_id).status == "Completed"


def test_suspended_contract_is_skipped(scheduler, services, running_contract):
    user, order_id = running_contract()
    services["investments"].set_contract_status(_contract(order_id).id, "Suspended")

    assert scheduler.run(now=OPEN_HOURS + DAY)["processed"] == 0
    assert balance_of(user) == Decimal("100000")


def test_one_failing_contract_does_not_stop_the_batch(scheduler, running_contract, monkeypatch):
    broken_user, broken_order = running_contract()
    healthy_user, _ = running_contract()
    broken_id = _contract(broken_order).id

    original = scheduler.process_one

    def flaky(contract_id, now=None):
        if contract_id == broken_id:
            raise RuntimeError("database went away")
        return original(contract_id, now)

    monkeypatch.setattr(scheduler, "process_one", flaky)
    summary = scheduler.run(now=OPEN_HOURS + DAY)

    assert summary["failed"] == 1
    assert summary["processed"] == 1
    assert balance_of(broken_user) == Decimal("100000")
    assert balance_of(healthy_user) == Decimal("101000")


def test_promotor_scenario_from_purchase_to_completion(services, scheduler, make_user, make_product):
    user = make_user(balance="100000", mode="promotor")
    product = make_product(amount="50000", daily_profit="1000", duration=10)

    order_id = services["investments"].create_contract(principal_for(user), product.id, now=OPEN_HOURS)["order_id"]
    assert balance_of(user) == Decimal("50000")

    scheduler.run(now=OPEN_HOURS + DAY)
    assert balance_of(user) == Decimal("51000")
    assert _contract(order_id).total_paid == 1

    for day in range(2, 11):
        scheduler.run(now=OPEN_HOURS + day * DAY)

    assert _contract(order_id).status == "Completed"
    assert balance_of(user) == Decimal("110000")
    assert balance_of(user) - Decimal("100000") == ledger_sum(user)
