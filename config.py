# ==========================================================================================================
# -------------- Configuration file for the investment ledger service ---------------------------------------
# ==========================================================================================================
import os
from dotenv import load_dotenv


if os.environ.get("FLASK_ENV") != "production":
    load_dotenv()

basedir = os.path.abspath(os.path.dirname(__file__))


def _env_bool(name, default="False"):
    return os.getenv(name, default).lower() in ("true", "1", "t")


class Config:

    FLASK_ENV = os.getenv("FLASK_ENV", "production")
    DEBUG = _env_bool("DEBUG")

    SECRET_KEY = os.getenv("SECRET_KEY")
    if not SECRET_KEY and FLASK_ENV == "production":
        raise ValueError("SECRET_KEY must be set in production")

    _database_url = os.getenv("DATABASE_URL")
    if not _database_url:
        _database_url = f"sqlite:///{os.path.join(basedir, 'instance', 'ledger.db')}"

    if _database_url.startswith("postgres://"):
        _database_url = _database_url.replace("postgres://", "postgresql://", 1)

    SQLALCHEMY_DATABASE_URI = _database_url
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_size": 10,
        "max_overflow": 20,
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }

    # Webhook rate limiting (redis)
    REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    RATELIMIT_ENABLED = _env_bool("RATELIMIT_ENABLED", "True")
    WEBHOOK_RATE_LIMIT = int(os.getenv("WEBHOOK_RATE_LIMIT", "500"))
    WEBHOOK_RATE_WINDOW = int(os.getenv("WEBHOOK_RATE_WINDOW", "3600"))
    WEBHOOK_IP_WHITELIST = [
        ip.strip() for ip in os.getenv("WEBHOOK_IP_WHITELIST", "127.0.0.1").split(",") if ip.strip()
    ]

    # Shared secret for the scheduler endpoints
    CRON_KEY = os.getenv("CRON_KEY")

    # Pakailink gateway
    PAKAILINK_BASE_URL = os.getenv("PAKAILINK_BASE_URL", "https://api.pakailink.com")
    PAKAILINK_CLIENT_KEY = os.getenv("PAKAILINK_CLIENT_KEY")
    PAKAILINK_CLIENT_SECRET = os.getenv("PAKAILINK_CLIENT_SECRET")
    PAKAILINK_PARTNER_ID = os.getenv("PAKAILINK_PARTNER_ID")
    PAKAILINK_PRIVATE_KEY_PATH = os.getenv("PAKAILINK_PRIVATE_KEY_PATH")
    PAKAILINK_PAYMENT_CALLBACK_URL = os.getenv("PAKAILINK_PAYMENT_CALLBACK_URL")
    PAKAILINK_PAYOUT_CALLBACK_URL = os.getenv("PAKAILINK_PAYOUT_CALLBACK_URL") or PAKAILINK_PAYMENT_CALLBACK_URL
    PAKAILINK_MERCHANT_ID = os.getenv("PAKAILINK_MERCHANT_ID")
    PAKAILINK_STORE_ID = os.getenv("PAKAILINK_STORE_ID")
    PAKAILINK_TERMINAL_ID = os.getenv("PAKAILINK_TERMINAL_ID")
    GATEWAY_TIMEOUT = int(os.getenv("GATEWAY_TIMEOUT", "30"))

    PLATFORM_TIMEZONE = os.getenv("PLATFORM_TIMEZONE", "Asia/Jakarta")
    PLATFORM_BRAND = os.getenv("PLATFORM_BRAND", "Invest")

    # Defaults used until an admin stores a settings row
    MIN_WITHDRAW = os.getenv("MIN_WITHDRAW", "50000")
    MAX_WITHDRAW = os.getenv("MAX_WITHDRAW", "10000000")
    WITHDRAW_CHARGE = os.getenv("WITHDRAW_CHARGE", "10")
    AUTO_WITHDRAW = _env_bool("AUTO_WITHDRAW")


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = "test-secret"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False
    CRON_KEY = "test-cron-key"
    PAKAILINK_PAYOUT_CALLBACK_URL = "https://example.test/callback/payouts"
    MIN_WITHDRAW = "10000"
    MAX_WITHDRAW = "5000000"
    WITHDRAW_CHARGE = "10"
    AUTO_WITHDRAW = False
