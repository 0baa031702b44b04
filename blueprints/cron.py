from flask import Blueprint

from blueprints.api_helpers import api_response, get_services
from investments.security_middleware import cron_key_required
from logger import scheduler_logger

bp = Blueprint('cron', __name__, url_prefix='/cron')


@bp.route('/daily-returns', methods=['POST'])
@cron_key_required
def daily_returns():
    """Advance every due Running contract by one period."""
    summary = get_services()["accrual"].run()
    scheduler_logger.info(f"Daily returns: {summary}")
    return api_response(True, "Daily returns processed", summary)


@bp.route('/expired-handlers', methods=['POST'])
@cron_key_required
def expired_payments():
    summary = get_services()["investments"].expire_pending_payments()
    scheduler_logger.info(f"Expired payments: {summary}")
    return api_response(True, "Expired payments processed", summary)
