from flask import Blueprint, request, current_app
from flask_login import login_required

from blueprints.api_helpers import api_response, current_principal, get_services
from investments.exceptions import ValidationError

bp = Blueprint('wallet', __name__, url_prefix='/users')


# ============================
#       BALANCE TRANSFER
# ============================
@bp.route('/transfer/inquiry', methods=['POST'])
@login_required
def transfer_inquiry():
    data = request.get_json(silent=True) or {}
    recipient = get_services()["transfers"].inquiry(current_principal(), data.get("number"))
    return api_response(True, "OK", recipient)


@bp.route('/transfer', methods=['POST'])
@login_required
def transfer():
    data = request.get_json(silent=True) or {}
    if data.get("amount") is None:
        raise ValidationError("Amount is required")

    principal = current_principal()
    result = get_services()["transfers"].transfer(principal, data.get("number"), data.get("amount"))
    current_app.logger.info(f"Transfer {result['order_id']} sent by user {principal.user_id}")
    return api_response(True, "Transfer successful", result)


@bp.route('/transfer/contacts', methods=['GET'])
@login_required
def transfer_contacts():
    contacts = get_services()["transfers"].contacts(current_principal())
    return api_response(True, "OK", {"contacts": contacts})


# ============================
#       SPIN WHEEL
# ============================
@bp.route('/spin-prizes', methods=['GET'])
@login_required
def spin_prizes():
    return api_response(True, "OK", {"prizes": get_services()["spins"].prize_list()})


@bp.route('/spin', methods=['POST'])
@login_required
def spin():
    result = get_services()["spins"].spin(current_principal())
    amount = result["spin_result"]["amount"]
    return api_response(True, f"You won Rp{amount}", result, 201)
