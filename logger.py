# logger.py - Centralized logging configuration
import os
import logging
from logging.handlers import RotatingFileHandler

LOG_DIR = os.getenv("LOG_DIR", "logs")
FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s [in %(pathname)s:%(lineno)d]"
CONSOLE_FORMAT = "%(name)s - %(levelname)s - %(message)s"


def _file_handler(path, level):
    handler = RotatingFileHandler(path, maxBytes=5 * 1024 * 1024, backupCount=10)
    handler.setFormatter(logging.Formatter(FILE_FORMAT))
    handler.setLevel(level)
    return handler


def _console_handler():
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    handler.setLevel(logging.DEBUG)
    return handler


def setup_logger(name, log_file=None, level=logging.INFO):
    """Named logger writing to LOG_DIR/<name>.log, echoed to the console outside production."""
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    os.makedirs(LOG_DIR, exist_ok=True)
    logger.setLevel(level)
    logger.addHandler(_file_handler(log_file or os.path.join(LOG_DIR, f"{name}.log"), level))
    if os.environ.get("FLASK_ENV") != "production":
        logger.addHandler(_console_handler())
    return logger


def configure_app_logging(app):
    """Attach the rotating file handler to the Flask app logger."""
    if app.testing:
        return
    file_logger = setup_logger("app")
    app.logger.handlers.clear()
    for handler in file_logger.handlers:
        app.logger.addHandler(handler)
    app.logger.setLevel(logging.DEBUG if app.debug else logging.INFO)
    app.logger.propagate = False

    setup_logger("payments")
    setup_logger("scheduler")

    # Core modules log under the "investments" namespace
    core = logging.getLogger("investments")
    if not core.handlers:
        for handler in setup_logger("ledger").handlers:
            core.addHandler(handler)
        core.setLevel(logging.INFO)


# Named loggers for the app, payment and scheduler paths
app_logger = logging.getLogger("app")
payments_logger = logging.getLogger("payments")
scheduler_logger = logging.getLogger("scheduler")
