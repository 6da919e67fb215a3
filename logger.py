# logger.py
import os
import logging
from logging.handlers import RotatingFileHandler

# Default logging configuration
DEFAULT_CONFIG = {
    "level": "INFO",
    "file": "logs/pos.log",
    "max_size": 1048576,  # 1MB
    "backup_count": 3
}

# Mapping of string log levels to logging constants
LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL
}

LOGGER_NAME = 'bizmate'

logger = logging.getLogger(LOGGER_NAME)


def setup_logger(config=None):
    """Set up and configure the application logger."""
    if config is None:
        config = {}

    # Merge with default config
    log_config = {**DEFAULT_CONFIG, **config.get("logging", {})}

    logger = logging.getLogger(LOGGER_NAME)

    # repeated setup replaces handlers instead of stacking them
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    level = LOG_LEVELS.get(str(log_config["level"]).upper(), logging.INFO)
    logger.setLevel(level)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if not log_config.get("file"):
        return logger

    try:
        # Ensure log directory exists
        log_dir = os.path.dirname(log_config["file"])
        if log_dir and not os.path.exists(log_dir):
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
        logger.error(f"Failed to set up file logging: {str(e)}")

    return logger


def configure_logger(config):
    """Reconfigure the logger with new settings."""
    global logger

    logger = setup_logger(config)

    return logger
