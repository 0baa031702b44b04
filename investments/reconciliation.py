"""
Gateway webhook reconciliation.

Both payment and payout deliveries are recorded as WebhookEvent rows, then
dispatched to the contract or withdrawal service. Dispatch is idempotent:
a delivery for a record that is no longer Pending is a no-op.
"""
import logging
from typing import Optional, Tuple

from models import PaymentStatus, WebhookEvent
from investments.exceptions import NotFoundError
from investments.gateway import INQUIRY_FAILED, INQUIRY_SETTLED, classify_status

logger = logging.getLogger(__name__)

PAYMENT_ACK = {"responseCode": "2002800", "responseMessage": "Successful"}
PAYOUT_ACK = {"responseCode": "2004400", "responseMessage": "Successful"}


def _clean(value) -> str:
    return value.strip() if isinstance(value, str) else ""


def parse_payment_callback(payload) -> Tuple[str, str, str]:
    """
    Extract (reference, callback_type, status) from a VA or QR callback.

    VA callbacks nest everything under ``transactionData``; QR callbacks put
    the fields at the root.
    """
    if not isinstance(payload, dict):
        return "", "", ""
    data = payload.get("transactionData")
    if isinstance(data, dict):
        return (
            _clean(data.get("partnerReferenceNo")),
            _clean(data.get("callbackType")).lower(),
            _clean(data.get("paymentFlagStatus")),
        )
    return (
        _clean(payload.get("originalPartnerReferenceNo")),
        _clean(payload.get("callbackType")).lower(),
        _clean(payload.get("latestTransactionStatus")),
    )


def parse_payout_callback(payload) -> Tuple[str, str]:
    if not isinstance(payload, dict):
        return "", ""
    data = payload.get("transactionData")
    if not isinstance(data, dict):
        return "", ""
    return _clean(data.get("partnerReferenceNo")), _clean(data.get("paymentFlagStatus"))


class WebhookReconciler:
    def __init__(self, uow, investments, withdrawals):
        self.uow = uow
        self.investments = investments
        self.withdrawals = withdrawals

    def _record(self, event_type: str, reference: Optional[str], status_code: Optional[str], payload) -> int:
        with self.uow.transaction():
            event = self.uow.add(WebhookEvent(
                event_type=event_type,
                reference=reference or None,
                status_code=status_code or None,
                payload=payload if isinstance(payload, (dict, list)) else None,
            ))
            self.uow.flush()
            event_id = event.id
        return event_id

    def _finish(self, event_id: int, result: str):
        with self.uow.transaction():
            event = self.uow.get(WebhookEvent, event_id)
            event.mark_processed(result)

    # ===== payments =====

    def handle_payment_callback(self, payload) -> str:
        reference, callback_type, status = parse_payment_callback(payload)
        event_id = self._record("payment", reference, status, payload)
        result = self._dispatch_payment(reference, callback_type, status)
        self._finish(event_id, result)
        logger.info(f"Payment callback {reference or '-'} ({callback_type or '-'}/{status or '-'}): {result}")
        return result

    def _dispatch_payment(self, reference, callback_type, status) -> str:
        if callback_type == "settlement":
            return "settlement_ignored"
        if callback_type != "payment":
            return "ignored"
        if not reference:
            return "missing_reference"

        payment = self.uow.payment_for(reference)
        if payment is None:
            return "unknown_reference"
        if payment.status != PaymentStatus.PENDING.value:
            return "duplicate"

        outcome = classify_status(status)
        if outcome == INQUIRY_SETTLED:
            return "settled" if self.investments.settle_contract(reference) else "duplicate"
        if outcome == INQUIRY_FAILED:
            return "failed" if self.investments.fail_contract(reference) else "duplicate"
        return "pending"

    # ===== payouts =====

    def handle_payout_callback(self, payload) -> str:
        reference, status = parse_payout_callback(payload)
        event_id = self._record("payout", reference, status, payload)
        if not reference:
            result = "missing_reference"
        else:
            try:
                result = self.withdrawals.reconcile_payout(reference, status)
            except NotFoundError:
                result = "unknown_reference"
        self._finish(event_id, result)
        logger.info(f"Payout callback {reference or '-'} ({status or '-'}): {result}")
        return result
