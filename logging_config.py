"""
NSS Portal - Centralized Logging Configuration
Plain text logs in development, JSON lines in production.
"""

import logging
import sys
import json
from datetime import datetime, timezone
from typing import Any, Dict

from config import settings

LOGGER_NAME = "nss_portal"


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging in production"""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data, default=str)


def setup_logging(level: str = None) -> logging.Logger:
    """Setup root logging based on environment. Safe to call more than once."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO))

    # Clear existing handlers
    for handler in list(root.handlers):
        if getattr(handler, "_nss_handler", False):
            root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler._nss_handler = True
    if settings.ENVIRONMENT == "production":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
        ))
    root.addHandler(handler)

    # Suppress noisy loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("multipart").setLevel(logging.WARNING)

    logger = logging.getLogger(LOGGER_NAME)
    logger.info("Logging initialized (environment=%s, level=%s)", settings.ENVIRONMENT, settings.LOG_LEVEL)
    return logger
