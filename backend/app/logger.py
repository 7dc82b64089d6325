# app/logger.py

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from flask.logging import default_handler

LOG_FORMAT = "[%(asctime)s] %(levelname)s in %(name)s: %(message)s"


def configure_logging(app):
    """
    Sends the backend.* loggers (app.logger included, it is "backend.app")
    to stderr, plus a rotating file when LOG_FILE is set.

    Handlers added by a previous app in the same process are replaced.
    """
    level = logging.getLevelName(str(app.config.get("LOG_LEVEL", "INFO")).upper())
    if not isinstance(level, int):
        level = logging.INFO

    formatter = logging.Formatter(LOG_FORMAT)

    handlers = [logging.StreamHandler(sys.stderr)]
    log_file = app.config.get("LOG_FILE")
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            RotatingFileHandler(log_file, maxBytes=5 * 1024 * 1024, backupCount=3)
        )

    root = logging.getLogger("backend")
    for old in [h for h in root.handlers if getattr(h, "_ledger_handler", False)]:
        root.removeHandler(old)
    for handler in handlers:
        handler._ledger_handler = True
        handler.setFormatter(formatter)
        handler.setLevel(level)
        root.addHandler(handler)
    root.setLevel(level)

    # app.logger propagates to "backend"; Flask's own handler would duplicate lines.
    app.logger.removeHandler(default_handler)
    app.logger.setLevel(level)
