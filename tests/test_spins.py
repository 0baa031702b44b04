from decimal import Decimal

import pytest

from conftest import balance_of, ledger_sum, principal_for
from extensions import db
from models import SpinPrize, Transaction, UserSpin
from investments.exceptions import ValidationError
from investments.spins import SpinWheel


class FixedRoll:
    def __init__(self, value):
        self.value = value

    def randint(self, low, high):
        assert low <= self.value <= high
        return self.value


@pytest.fixture
def prizes(app):
    rows = [
        SpinPrize(amount=Decimal("0"), code="ZONK", chance_weight=50),
        SpinPrize(amount=Decimal("5000"), code="SMALL", chance_weight=40),
        SpinPrize(amount=Decimal("100000"), code="JACKPOT", chance_weight=10),
        SpinPrize(amount=Decimal("1000000"), code="RETIRED", chance_weight=10, status="Inactive"),
    ]
    db.session.add_all(rows)
    db.session.commit()
    return rows


def wheel(uow, roll):
    return SpinWheel(uow, rng=FixedRoll(roll))


def test_spin_redeems_one_ticket_for_a_bonus(uow, make_user, prizes):
    user = make_user(balance="1000")
    user.spin_ticket = 2
    db.session.commit()

    result = wheel(uow, 60).spin(principal_for(user))

    assert result["spin_result"] == {"amount": "5000.00", "code": "SMALL"}
    assert result["balance_info"]["previous_balance"] == "1000.00"
    assert result["balance_info"]["current_balance"] == "6000.00"
    assert result["spin_ticket"] == 1
    assert balance_of(user) == Decimal("6000")

    entry = Transaction.query.filter_by(user_id=user.id).one()
    assert (entry.transaction_type, entry.transaction_flow) == ("bonus", "debit")
    assert UserSpin.query.one().order_id == entry.order_id
    assert ledger_sum(user) == Decimal("5000")


def test_losing_spin_still_uses_the_ticket(uow, make_user, prizes):
    user = make_user()
    user.spin_ticket = 1
    db.session.commit()

    result = wheel(uow, 1).spin(principal_for(user))

    assert result["spin_result"]["code"] == "ZONK"
    assert balance_of(user) == Decimal("0")
    assert user.spin_ticket == 0
    assert Transaction.query.count() == 0
    assert UserSpin.query.one().order_id is None


def test_no_ticket_no_spin(uow, make_user, prizes):
    user = make_user()
    with pytest.raises(ValidationError):
        wheel(uow, 60).spin(principal_for(user))
    assert UserSpin.query.count() == 0


def test_spin_without_prizes_keeps_the_ticket(uow, make_user):
    user = make_user()
    user.spin_ticket = 1
    db.session.commit()

    with pytest.raises(ValidationError):
        wheel(uow, 1).spin(principal_for(user))

    db.session.refresh(user)
    assert user.spin_ticket == 1


def test_weighted_pick_ignores_inactive_prizes(uow, prizes):
    active = [p for p in prizes if p.status == "Active"]
    assert wheel(uow, 50).pick(active).code == "ZONK"
    assert wheel(uow, 90).pick(active).code == "SMALL"
    assert wheel(uow, 100).pick(active).code == "JACKPOT"


def test_prize_list_reports_chances(uow, prizes):
    listed = wheel(uow, 1).prize_list()
    assert [(p["code"], p["chance"]) for p in listed] == [("ZONK", 50.0), ("SMALL", 40.0), ("JACKPOT", 10.0)]


def test_referral_ticket_can_be_spun(services, make_user, make_product, prizes):
    referrer = make_user()
    investor = make_user(referrer=referrer)
    product = make_product(amount="200000", locked=True)
    order_id = services["investments"].create_contract(principal_for(investor), product.id, "QRIS")["order_id"]
    services["investments"].settle_contract(order_id)

    wheel(services["uow"], 60).spin(principal_for(referrer))

    db.session.refresh(referrer)
    assert referrer.spin_ticket == 0
    assert balance_of(referrer) == Decimal("65000")
