import logging
from decimal import Decimal, InvalidOperation
from typing import Dict

from models import TransactionType, TransferContact, User
from investments.config import TransferConfig, to_money
from investments.exceptions import NotFoundError, ValidationError, VipLevelError
from investments.ledger import apply_ledger_mutation
from utils import generate_order_id, phone_variants, utcnow

logger = logging.getLogger(__name__)


class TransferService:
    """
    User-to-user balance transfers.

    The sender's `transfer` entry and the receiver's `receive` entry are
    written in the same unit of work under both user locks, so the two
    balances always move together.
    """

    def __init__(self, uow):
        self.uow = uow

    @staticmethod
    def receive_order_id(order_id: str) -> str:
        return f"{order_id}-IN"

    def _sender(self, principal) -> User:
        sender = self.uow.get(User, principal.user_id)
        if sender is None:
            raise NotFoundError("User not found")
        if not sender.is_active:
            raise ValidationError("Account is not active")
        if (sender.level or 0) < TransferConfig.REQUIRED_VIP:
            raise VipLevelError(f"VIP {TransferConfig.REQUIRED_VIP} is required to transfer")
        return sender

    def find_recipient(self, principal, number) -> User:
        """Resolve a phone number to the receiving user, never the sender."""
        variants = phone_variants(number)
        if not variants:
            raise ValidationError("Invalid phone number")

        receiver = self.uow.session.query(User).filter(User.phone.in_(variants)).first()
        if receiver is None:
            raise NotFoundError("Recipient not found")
        if receiver.id == principal.user_id:
            raise ValidationError("You cannot transfer to yourself")
        return receiver

    def inquiry(self, principal, number) -> Dict:
        self._sender(principal)
        receiver = self.find_recipient(principal, number)
        return {"name": receiver.name, "number": receiver.phone}

    @staticmethod
    def _parse_amount(amount) -> Decimal:
        try:
            value = to_money(amount)
        except (InvalidOperation, TypeError, ValueError):
            raise ValidationError("Invalid amount format")
        if value < TransferConfig.MIN_AMOUNT:
            raise ValidationError(f"Minimum transfer is {TransferConfig.MIN_AMOUNT}")
        if value > TransferConfig.MAX_AMOUNT:
            raise ValidationError(f"Maximum transfer is {TransferConfig.MAX_AMOUNT}")
        return value

    def transfer(self, principal, number, amount, now=None) -> Dict:
        now = now or utcnow()
        amount = self._parse_amount(amount)
        sender = self._sender(principal)
        receiver = self.find_recipient(principal, number)
        if not receiver.is_active:
            raise ValidationError("Recipient account is not active")

        with self.uow.transaction():
            locked = self.uow.lock_users(sender.id, receiver.id)
            sender, receiver = locked[sender.id], locked[receiver.id]

            order_id = generate_order_id(sender.id, prefix="TRF")
            # Raises before anything is written when the sender is short
            apply_ledger_mutation(
                self.uow, sender, -amount, TransactionType.TRANSFER.value, order_id,
                message=f"Transfer to {receiver.name}",
            )
            apply_ledger_mutation(
                self.uow, receiver, amount, TransactionType.RECEIVE.value,
                self.receive_order_id(order_id),
                message=f"Transfer from {sender.name}",
            )
            self._remember_contact(sender.id, receiver.id, now)

        logger.info(f"Transfer {order_id} of {amount} from user {sender.id} to user {receiver.id}")
        return {
            "order_id": order_id,
            "amount": str(amount),
            "charge": "0.00",
            "recipient": receiver.name,
            "number": receiver.phone,
        }

    def _remember_contact(self, sender_id, receiver_id, now):
        contact = (
            self.uow.session.query(TransferContact)
            .filter_by(sender_id=sender_id, receiver_id=receiver_id)
            .one_or_none()
        )
        if contact is None:
            self.uow.add(TransferContact(sender_id=sender_id, receiver_id=receiver_id,
                                         created_at=now, updated_at=now))
        else:
            contact.updated_at = now

    def contacts(self, principal):
        """Recent recipients, latest first."""
        self._sender(principal)
        rows = (
            self.uow.session.query(TransferContact)
            .filter_by(sender_id=principal.user_id)
            .order_by(TransferContact.updated_at.desc(), TransferContact.id.desc())
            .all()
        )
        return [
            {"id": row.receiver.id, "name": row.receiver.name, "number": row.receiver.phone}
            for row in rows
        ]
