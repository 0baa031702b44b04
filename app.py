import os

import click
from flask import Flask

from config import Config
from extensions import db, login_manager, init_extensions
from logger import app_logger, configure_app_logging
from models import User


# --------------------------------------------------------------------------------------------------------
#       Application factory
# --------------------------------------------------------------------------------------------------------
def create_app(config_class=Config, gateway=None):
    app = Flask(__name__)
    app.config.from_object(config_class)

    if not app.debug and not app.testing:
        app.config.update(
            SESSION_COOKIE_SECURE=True,
            SESSION_COOKIE_HTTPONLY=True,
            REMEMBER_COOKIE_SECURE=True,
            REMEMBER_COOKIE_HTTPONLY=True,
        )

    configure_app_logging(app)

    # ------------------------------------------------------------------------------------------
    # DATABASE URI fix for local sqlite
    # ------------------------------------------------------------------------------------------
    database_uri = app.config.get("SQLALCHEMY_DATABASE_URI", "")
    if database_uri.startswith("sqlite:///"):
        os.makedirs(os.path.join(os.path.dirname(os.path.abspath(__file__)), "instance"), exist_ok=True)

    init_extensions(app)

    # ------------------------------------------------------------------------------------------
    # Payment gateway client, shared by every request
    # ------------------------------------------------------------------------------------------
    if gateway is None:
        from investments.gateway import PakailinkClient
        gateway = PakailinkClient.from_config(app.config)
    app.extensions["gateway"] = gateway

    register_blueprints(app)
    register_commands(app)

    from blueprints.api_helpers import register_error_handlers
    register_error_handlers(app)

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @app.route("/healthz")
    def healthz():
        return {"status": "ok"}, 200

    return app


def register_blueprints(app):
    from blueprints.contracts import bp as contracts_bp
    from blueprints.withdrawals import bp as withdrawals_bp
    from blueprints.wallet import bp as wallet_bp
    from blueprints.payment_webhooks import bp as webhooks_bp
    from blueprints.cron import bp as cron_bp
    from blueprints.admin import admin_bp

    app.register_blueprint(contracts_bp)
    app.register_blueprint(withdrawals_bp)
    app.register_blueprint(wallet_bp)
    app.register_blueprint(webhooks_bp)
    app.register_blueprint(cron_bp)
    app.register_blueprint(admin_bp)


def register_commands(app):
    from investments import build_services

    def _services():
        return build_services(db.session, app.extensions["gateway"], app.config)

    @app.cli.command("accrue")
    def accrue_command():
        """Run one daily accrual pass over due contracts."""
        summary = _services()["accrual"].run()
        click.echo(f"Accrual: {summary}")

    @app.cli.command("expire-payments")
    def expire_payments_command():
        """Expire pending payments past their deadline."""
        summary = _services()["investments"].expire_pending_payments()
        click.echo(f"Expiry: {summary}")

    @app.cli.command("make-admin")
    @click.argument("phone")
    def make_admin_command(phone):
        """Promote an existing user to admin."""
        user = User.query.filter_by(phone=phone).first()
        if user is None:
            raise click.ClickException(f"No user with phone {phone}")
        user.role = "admin"
        db.session.commit()
        app_logger.info(f"User {user.id} promoted to admin from the CLI")
        click.echo(f"User {user.id} ({phone}) is now an admin")


# ----------------------
# Local development
# ----------------------
if __name__ == "__main__":
    app = create_app()
    port = int(os.environ.get("PORT", 5000))
    app.run(debug=app.config.get("DEBUG", False), host="0.0.0.0", port=port)
