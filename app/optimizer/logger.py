import os
import logging
from logging.handlers import TimedRotatingFileHandler

from .config import settings

_FORMAT = logging.Formatter(
    "[%(asctime)s] [%(levelname)s] %(name)s - %(message)s",
    "%Y-%m-%d %H:%M:%S",
)


def configure_root(level: str = settings.LOG_LEVEL, log_dir: str = settings.LOG_DIR):
    """Attach console (and optionally rotating file) handlers to the package logger."""
    logger = logging.getLogger("optimizer")
    logger.setLevel(level.upper())

    if not logger.handlers:
        console = logging.StreamHandler()
        console.setFormatter(_FORMAT)
        logger.addHandler(console)

        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
            file_handler = TimedRotatingFileHandler(
                filename=os.path.join(log_dir, "optimizer.log"),
                when="midnight",
                interval=1,
                backupCount=7,
                encoding="utf-8",
            )
            file_handler.suffix = "%Y-%m-%d"
            file_handler.setFormatter(_FORMAT)
            logger.addHandler(file_handler)

    return logger


def get_logger(name: str = "optimizer"):
    # Module loggers propagate to the configured "optimizer" logger.
    return logging.getLogger(name)
