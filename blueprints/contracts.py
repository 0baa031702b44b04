from flask import Blueprint, request, current_app
from flask_login import login_required

from blueprints.api_helpers import api_response, current_principal, get_services
from investments.exceptions import ValidationError

bp = Blueprint('investments', __name__, url_prefix='/users')


@bp.route('/investments', methods=['POST'])
@login_required
def create_investment():
    """Buy a product. Ordinary accounts get a payment code; promotor accounts pay from balance."""
    data = request.get_json(silent=True) or {}
    product_id = data.get("product_id")
    try:
        product_id = int(product_id)
    except (TypeError, ValueError):
        raise ValidationError("product_id is required")

    principal = current_principal()
    result = get_services()["investments"].create_contract(
        principal,
        product_id,
        payment_method=data.get("payment_method"),
        channel=data.get("payment_channel"),
    )
    current_app.logger.info(f"Investment {result['order_id']} created for user {principal.user_id}")
    return api_response(True, "Investment created", result, 201)


@bp.route('/investments', methods=['GET'])
@login_required
def list_investments():
    status = request.args.get("status")
    contracts = get_services()["investments"].list_contracts(current_principal(), status=status)
    return api_response(True, "OK", {"investments": [c.to_dict() for c in contracts]})


@bp.route('/payments/<order_id>', methods=['GET'])
@login_required
def payment_details(order_id):
    details = get_services()["investments"].payment_details(current_principal(), order_id)
    return api_response(True, "OK", details)
