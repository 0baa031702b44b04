from flask import Blueprint, request, jsonify, current_app

from blueprints.api_helpers import get_services
from extensions import db
from investments.reconciliation import PAYMENT_ACK, PAYOUT_ACK
from investments.security_middleware import rate_limit
from logger import payments_logger

bp = Blueprint('payment_webhooks', __name__, url_prefix='/callback')


@bp.route('/payments', methods=['POST'])
@rate_limit()
def payment_webhook():
    """
    Pakailink VA / QRIS payment callback.

    Always answers with the gateway's success envelope, even when the delivery
    is ignored or processing fails, so the gateway does not retry-storm us.
    Missed or failed deliveries are recovered by the payment inquiry.
    """
    payload = request.get_json(silent=True)
    if payload is None:
        payments_logger.error("Payment webhook: no JSON body")
        return jsonify(PAYMENT_ACK), 200

    try:
        result = get_services()["webhooks"].handle_payment_callback(payload)
        payments_logger.info(f"Payment webhook handled: {result}")
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Payment webhook processing failed: {e}", exc_info=True)

    return jsonify(PAYMENT_ACK), 200


@bp.route('/payouts', methods=['POST'])
@rate_limit()
def payout_webhook():
    """Pakailink bank transfer / e-wallet top-up callback."""
    payload = request.get_json(silent=True)
    if payload is None:
        payments_logger.error("Payout webhook: no JSON body")
        return jsonify(PAYOUT_ACK), 200

    try:
        result = get_services()["webhooks"].handle_payout_callback(payload)
        payments_logger.info(f"Payout webhook handled: {result}")
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Payout webhook processing failed: {e}", exc_info=True)

    return jsonify(PAYOUT_ACK), 200
