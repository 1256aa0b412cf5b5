"""
Structured logging configuration for the Team Insights API.

- Production (ENVIRONMENT=production): one JSON object per line
- Development (default): Human-readable format for terminal

Every handler carries a filter that masks GitHub tokens, so a token that
slips into an exception message never reaches the log output in clear text.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from .utils import redact_tokens


class TokenRedactionFilter(logging.Filter):
    """Mask GitHub tokens in the rendered message before it is emitted."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = redact_tokens(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


class JSONFormatter(logging.Formatter):
    """JSON log formatter for log aggregators."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "severity": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = redact_tokens(self.formatException(record.exc_info))

        return json.dumps(log_entry)


def setup_logging(environment: str | None = None, log_level: str | None = None) -> None:
    """Configure the root logger; arguments override ENVIRONMENT and LOG_LEVEL."""
    environment = (environment or os.getenv("ENVIRONMENT", "development")).lower()
    log_level = (log_level or os.getenv("LOG_LEVEL", "INFO")).upper()

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level, logging.INFO))

    # Drop handlers from a previous call (uvicorn --reload imports twice)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(TokenRedactionFilter())

    if environment == "production":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))

    root_logger.addHandler(handler)

    for noisy in ("uvicorn.access", "sqlalchemy.engine", "httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
