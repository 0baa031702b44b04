from datetime import timedelta
from decimal import Decimal

import pytest

from conftest import OPEN_HOURS, balance_of, ledger_sum, principal_for
from models import Transaction, TransferContact
from investments.exceptions import (
    InsufficientBalanceError, NotFoundError, ValidationError, VipLevelError,
)
from utils import normalize_phone


@pytest.fixture
def transfers(services):
    return services["transfers"]


@pytest.fixture
def sender(make_user):
    return make_user(balance="100000", level=3, name="Sender")


@pytest.mark.parametrize("raw", ["081200000002", "+62 812 0000 0002", "6281200000002", "812-0000-0002"])
def test_normalize_phone(raw):
    assert normalize_phone(raw) == "81200000002"


def test_transfer_moves_balance_between_users(transfers, sender, make_user):
    receiver = make_user(name="Receiver")

    result = transfers.transfer(principal_for(sender), "+62" + receiver.phone[1:], "25000")

    assert result["recipient"] == "Receiver"
    assert result["amount"] == "25000.00"
    assert balance_of(sender) == Decimal("75000")
    assert balance_of(receiver) == Decimal("25000")

    sent = Transaction.query.filter_by(order_id=result["order_id"]).one()
    received = Transaction.query.filter_by(order_id=f"{result['order_id']}-IN").one()
    assert (sent.transaction_type, sent.transaction_flow, sent.user_id) == ("transfer", "credit", sender.id)
    assert (received.transaction_type, received.transaction_flow, received.user_id) == ("receive", "debit", receiver.id)
    assert received.message == "Transfer from Sender"

    assert ledger_sum(sender) == Decimal("-25000")
    assert ledger_sum(receiver) == Decimal("25000")


def test_transfer_requires_vip_three(transfers, make_user):
    sender = make_user(balance="100000", level=2)
    receiver = make_user()
    with pytest.raises(VipLevelError):
        transfers.transfer(principal_for(sender), receiver.phone, "25000")
    assert balance_of(sender) == Decimal("100000")


@pytest.mark.parametrize("amount", ["9999", "10000001", "abc"])
def test_transfer_amount_limits(transfers, sender, make_user, amount):
    receiver = make_user()
    with pytest.raises(ValidationError):
        transfers.transfer(principal_for(sender), receiver.phone, amount)
    assert Transaction.query.count() == 0


def test_insufficient_balance_writes_nothing(transfers, make_user):
    sender = make_user(balance="20000", level=3)
    receiver = make_user()

    with pytest.raises(InsufficientBalanceError):
        transfers.transfer(principal_for(sender), receiver.phone, "25000")

    assert balance_of(sender) == Decimal("20000")
    assert balance_of(receiver) == Decimal("0")
    assert Transaction.query.count() == 0
    assert TransferContact.query.count() == 0


def test_cannot_transfer_to_self_or_unknown_number(transfers, sender):
    with pytest.raises(ValidationError):
        transfers.transfer(principal_for(sender), sender.phone, "25000")
    with pytest.raises(NotFoundError):
        transfers.transfer(principal_for(sender), "089999999999", "25000")
    with pytest.raises(ValidationError):
        transfers.transfer(principal_for(sender), "", "25000")


def test_inactive_recipient_is_rejected(transfers, sender, make_user):
    receiver = make_user(status="Suspended")
    with pytest.raises(ValidationError):
        transfers.transfer(principal_for(sender), receiver.phone, "25000")


def test_inquiry_returns_recipient(transfers, sender, make_user):
    receiver = make_user(name="Receiver")
    assert transfers.inquiry(principal_for(sender), receiver.phone) == {
        "name": "Receiver", "number": receiver.phone,
    }


def test_contacts_list_latest_recipient_first(transfers, sender, make_user):
    first = make_user(name="First")
    second = make_user(name="Second")

    transfers.transfer(principal_for(sender), first.phone, "10000", now=OPEN_HOURS)
    transfers.transfer(principal_for(sender), second.phone, "10000", now=OPEN_HOURS + timedelta(minutes=5))
    transfers.transfer(principal_for(sender), first.phone, "10000", now=OPEN_HOURS + timedelta(minutes=10))

    contacts = transfers.contacts(principal_for(sender))
    assert [c["name"] for c in contacts] == ["First", "Second"]
    assert TransferContact.query.count() == 2
    assert balance_of(sender) == Decimal("70000")
