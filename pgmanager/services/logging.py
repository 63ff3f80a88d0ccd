"""Root logger setup shared by the API server and the batch-job CLI.

LOG_LEVEL in the environment wins over the configured level, so a cron job
can be made verbose without touching .env.
"""

import logging
import os
import sys
from pathlib import Path

LOG_FORMAT = "[%(asctime)s] %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Libraries that are noisy at INFO
QUIET_LOGGERS = ("sqlalchemy.engine", "httpx", "telegram")


def get_log_level(default: str = "INFO") -> int:
    """Resolve LOG_LEVEL (or ``default``) to a logging constant; unknown names mean INFO."""
    name = os.getenv("LOG_LEVEL", default).upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def setup_server_logging(log_file: str = "logs/server.log", default_level: str = "INFO") -> None:
    """Send every logger to stdout and ``log_file``.

    Handlers installed by an earlier call are replaced, not stacked.
    """
    level = get_log_level(default_level)
    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    for handler in (logging.StreamHandler(sys.stdout), logging.FileHandler(log_path)):
        handler.setLevel(level)
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)
    root_logger.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
