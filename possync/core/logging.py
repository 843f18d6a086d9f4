"""
Logging setup - rotating file log plus console, with noisy libraries quieted
"""
import logging
import os
from logging.handlers import RotatingFileHandler

from .config import settings

NOISY_LOGGERS = (
    "sqlalchemy",
    "sqlalchemy.engine",
    "sqlalchemy.pool",
    "httpx",
    "httpcore",
    "apscheduler",
)


def setup_logging(log_dir: str = None, level: str = None) -> None:
    """Configure the root logger once for the API process or the standalone scheduler"""
    log_dir = log_dir or settings.LOGS_PATH
    lvl = getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO)
    os.makedirs(log_dir, exist_ok=True)

    # 50MB per file, keep 7
    file_handler = RotatingFileHandler(
        os.path.join(log_dir, "possync.log"),
        maxBytes=50 * 1024 * 1024,
        backupCount=7,
        encoding="utf-8",
    )
    file_handler.setLevel(lvl)
    file_handler.setFormatter(logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))

    console_handler = logging.StreamHandler()
    console_handler.setLevel(lvl)
    console_handler.setFormatter(logging.Formatter(
        "%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
    ))

    # Quiet noisy loggers BEFORE basicConfig
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.basicConfig(level=lvl, handlers=[file_handler, console_handler], force=True)
