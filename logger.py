# logger.py
import os
import logging
from logging.handlers import RotatingFileHandler

from config import DEFAULT_CONFIG

LOGGER_NAME = "billing"


def setup_logger(config=None):
    """
    Configure the 'billing' logger that every module logs under
    (billing.checkout, billing.database, ...).
    """
    if config is None:
        config = {}

    log_config = {**DEFAULT_CONFIG["logging"], **config.get("logging", {})}

    logger = logging.getLogger(LOGGER_NAME)
    level = logging.getLevelName(str(log_config["level"]).upper())
    logger.setLevel(level if isinstance(level, int) else logging.INFO)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_config.get("file"):
        try:
            log_dir = os.path.dirname(log_config["file"])
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)

            file_handler = RotatingFileHandler(
                log_config["file"],
                maxBytes=log_config["max_size"],
                backupCount=log_config["backup_count"],
                encoding="utf-8"
            )
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        except OSError as e:
            logger.error(f"Failed to set up file logging: {e}")

    return logger


def configure_logger(config):
    """Reconfigure the logger with new settings."""
    logger = logging.getLogger(LOGGER_NAME)

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    return setup_logger(config)
