# economy/logs.py
import logging
import logging.handlers
import os
from typing import Optional

APP_LOGGER = "economy"
LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s :: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> logging.Logger:
    """
    Configure the "economy" logger: console + rotating file.
    Child loggers (economy.file_store, economy.mongo_store, ...) inherit it.
    An empty log_file disables the file handler.
    """
    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    if log_file is None:
        log_file = os.getenv("LOG_FILE", "economy.log")
    lvl = getattr(logging, level_name, logging.INFO)

    app_logger = logging.getLogger(APP_LOGGER)
    app_logger.setLevel(lvl)

    fmt = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    # Clear existing handlers on the app logger to avoid duplicates
    for h in list(app_logger.handlers):
        app_logger.removeHandler(h)
        h.close()

    ch = logging.StreamHandler()
    ch.setLevel(lvl)
    ch.setFormatter(fmt)
    app_logger.addHandler(ch)

    if log_file:
        fh = logging.handlers.RotatingFileHandler(
            log_file, maxBytes=2_000_000, backupCount=3, encoding="utf-8"
        )
        fh.setLevel(lvl)
        fh.setFormatter(fmt)
        app_logger.addHandler(fh)

    return app_logger
