"""Root logger setup for billing runs.

Records go to stdout and to a log file. The level comes from the explicit
argument, then the LOG_LEVEL env var, then INFO.
"""

import logging
import os
import sys
from pathlib import Path

LOG_FORMAT = "[%(asctime)s] %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LEVELS = {
    name: getattr(logging, name)
    for name in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
}


def get_log_level(level_name: str | None = None) -> int:
    """Resolve a level name to its logging constant; unknown names give INFO."""
    name = level_name or os.getenv("LOG_LEVEL", "INFO")
    return LEVELS.get(name.upper(), logging.INFO)


def _billing_handlers(log_path: Path, level: int) -> list[logging.Handler]:
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
    handlers: list[logging.Handler] = [
        logging.StreamHandler(sys.stdout),
        logging.FileHandler(log_path, encoding="utf-8"),
    ]
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
    return handlers


def setup_logging(log_file: str = "logs/billing.log", level_name: str | None = None) -> None:
    """
    Point the root logger at stdout and log_file.

    Args:
        log_file: Log file path; parent directories are created
        level_name: Level name, overrides LOG_LEVEL

    Handlers installed by an earlier call are closed and replaced, so calling
    this twice never duplicates output.
    """
    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    level = get_log_level(level_name)

    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    root_logger.setLevel(level)
    for handler in _billing_handlers(log_path, level):
        root_logger.addHandler(handler)


__all__ = ["get_log_level", "setup_logging"]
