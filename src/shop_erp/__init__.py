import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parents[2]
LOG_DIR = Path(os.environ.get("SHOP_ERP_LOG_DIR", PROJECT_ROOT / ".logs"))
LOG_FILE = LOG_DIR / "shop_erp.log"
LOG_LEVEL = os.environ.get("SHOP_ERP_LOG_LEVEL", "INFO").upper()


def _configure_logging() -> logging.Logger:
    """Attach a rotating file handler and a stderr handler to the package logger.

    ``SHOP_ERP_LOG_LEVEL`` sets the threshold of both handlers and
    ``SHOP_ERP_LOG_DIR`` moves the log file. An unwritable log directory
    leaves only the console handler in place.
    """

    logger = logging.getLogger(__name__)
    if logger.handlers:
        return logger

    level = logging.getLevelName(LOG_LEVEL)
    if not isinstance(level, int):
        level = logging.INFO
    logger.setLevel(level)
    formatter = logging.Formatter(
        fmt="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    try:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            LOG_FILE,
            maxBytes=1_000_000,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    except OSError as exc:
        print(
            f"Warning: unable to open the Shop ERP log file '{LOG_FILE}': {exc}",
            file=sys.stderr,
        )

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger


log = _configure_logging()
log.debug("Shop ERP logging ready (level=%s, file=%s)", logging.getLevelName(log.level), LOG_FILE)
