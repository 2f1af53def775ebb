import os
import logging
from logging.handlers import RotatingFileHandler
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logger(name: str, log_file: Optional[str], level: int = logging.INFO) -> logging.Logger:
    """
    Create and return the application logger.
    - Writes to `log_file` through a rotating handler (1 MB per file, 3 backups).
    - Falls back to stderr when no file is configured.
    - Child loggers ("assetdesk.lifecycle", ...) propagate into these handlers.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Avoid adding multiple handlers if create_app runs more than once (tests)
    if logger.handlers:
        return logger

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handler: logging.Handler = RotatingFileHandler(
            log_file, maxBytes=1_000_000, backupCount=3, encoding="utf-8"
        )
    else:
        handler = logging.StreamHandler()

    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    return logger
