from flask import current_app, jsonify
from flask_login import current_user

from extensions import db
from investments import build_services
from investments.exceptions import GatewayError, LedgerError
from investments.principal import Principal


def current_principal() -> Principal:
    """Typed principal for the logged-in user."""
    return Principal.from_user(current_user)


def get_services():
    return build_services(db.session, current_app.extensions["gateway"], current_app.config)


def api_response(success=True, message="", data=None, status=200):
    body = {"success": success, "message": message}
    if data is not None:
        body["data"] = data
    return jsonify(body), status


def register_error_handlers(app):
    @app.errorhandler(GatewayError)
    def handle_gateway_error(e):
        app.logger.error(f"Gateway error: {e.detail}")
        return api_response(False, e.message, status=e.status_code)

    @app.errorhandler(LedgerError)
    def handle_ledger_error(e):
        return api_response(False, e.message, status=e.status_code)

    @app.errorhandler(401)
    def handle_unauthorized(e):
        return api_response(False, "Authentication required", status=401)

    @app.errorhandler(403)
    def handle_forbidden(e):
        return api_response(False, "Forbidden", status=403)

    @app.errorhandler(404)
    def handle_not_found(e):
        return api_response(False, "Not found", status=404)
