#======================================================================================
#
# ADMIN actions on withdrawals and contracts
#
#=======================================================================================
from functools import wraps

from flask import Blueprint, request, abort, current_app
from flask_login import current_user

from blueprints.api_helpers import api_response, get_services
from investments.exceptions import ValidationError


def admin_required(f):
    """
    Decorator to restrict access to admin-only routes.
    - 401 when nobody is logged in.
    - 403 when the logged-in user is not an admin.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user.is_authenticated:
            abort(401)
        if not current_user.is_admin:
            abort(403)
        return f(*args, **kwargs)

    return decorated_function


admin_bp = Blueprint('admin', __name__, url_prefix='/admin')


@admin_bp.route('/withdrawals/<int:withdrawal_id>/approve', methods=['PUT'])
@admin_required
def approve_withdrawal(withdrawal_id):
    result = get_services()["withdrawals"].approve_withdrawal(withdrawal_id)
    current_app.logger.info(f"Admin {current_user.id} approved withdrawal {withdrawal_id} ({result['mode']})")
    if result["mode"] == "gateway":
        return api_response(True, "Transfer request sent. Status will be updated by callback.", result)
    return api_response(True, "Withdrawal approved (manual transfer)", result)


@admin_bp.route('/withdrawals/<int:withdrawal_id>/reject', methods=['PUT'])
@admin_required
def reject_withdrawal(withdrawal_id):
    result = get_services()["withdrawals"].reject_withdrawal(withdrawal_id)
    current_app.logger.info(f"Admin {current_user.id} rejected withdrawal {withdrawal_id}")
    return api_response(True, "Withdrawal rejected", result)


@admin_bp.route('/investments/<int:contract_id>/status', methods=['PUT'])
@admin_required
def update_investment_status(contract_id):
    data = request.get_json(silent=True) or {}
    status = data.get("status")
    if status not in ("Suspended", "Running"):
        raise ValidationError("Status must be Suspended or Running")

    contract = get_services()["investments"].set_contract_status(contract_id, status)
    current_app.logger.info(f"Admin {current_user.id} set contract {contract_id} to {status}")
    return api_response(True, "Investment status updated", {"id": contract.id, "status": contract.status})
