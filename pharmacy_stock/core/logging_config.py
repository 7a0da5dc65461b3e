"""
Logging setup for the API process.

Console output always; a rotating file under LOG_DIR when configured.
"""
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from pharmacy_stock.core.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: str | None = None) -> logging.Logger:
    level_name = (level or settings.LOG_LEVEL or "INFO").upper()
    log_level = getattr(logging, level_name, logging.INFO)
    formatter = logging.Formatter(LOG_FORMAT, DATE_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # avoid duplicated handlers on reload
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if settings.LOG_DIR:
        log_dir = Path(settings.LOG_DIR)
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_dir / "pharmacy_stock.log",
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    # SQL noise only on warnings
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)

    logging.getLogger("pharmacy_stock").setLevel(log_level)
    logging.info("Logging configured (level=%s, dir=%s)", level_name,
                 settings.LOG_DIR or "-")
    return root_logger
