from flask import Blueprint, request, current_app
from flask_login import login_required

from blueprints.api_helpers import api_response, current_principal, get_services
from investments.exceptions import ValidationError

bp = Blueprint('withdrawals', __name__, url_prefix='/users')


@bp.route('/withdrawal', methods=['POST'])
@login_required
def request_withdrawal():
    data = request.get_json(silent=True) or {}
    amount = data.get("amount")
    if amount is None:
        raise ValidationError("Amount is required")
    try:
        bank_account_id = int(data.get("bank_account_id"))
    except (TypeError, ValueError):
        raise ValidationError("bank_account_id is required")

    principal = current_principal()
    withdrawal = get_services()["withdrawals"].create_withdrawal(principal, amount, bank_account_id)
    current_app.logger.info(f"Withdrawal {withdrawal.order_id} requested by user {principal.user_id}")
    return api_response(True, "Withdrawal request submitted", withdrawal.to_dict(), 201)


@bp.route('/withdrawal', methods=['GET'])
@login_required
def withdrawal_history():
    withdrawals = get_services()["withdrawals"].list_withdrawals(current_principal())
    return api_response(True, "OK", {"withdrawals": [w.to_dict() for w in withdrawals]})
