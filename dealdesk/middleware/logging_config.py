"""
Structured logging configuration.

- Development: human-readable colored lines tagged with txn/offer/actor ids
- Production: one JSON object per line (log aggregator compatible)
- LOG_FORMAT ("json" | "readable") forces either; LOG_LEVEL sets the level

Services attach negotiation context through ``extra=``:

    logger.info("Offer %s accepted", offer_id,
                extra={"event_type": "offer.accepted", "offer_id": offer_id,
                       "transaction_id": txn_id, "actor_id": actor_id})
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

CONTEXT_FIELDS = (
    "event_type",
    "operation",
    "transaction_id",
    "offer_id",
    "milestone_id",
    "document_id",
    "property_id",
    "actor_id",
    "previous_status",
    "new_status",
)

# Short tags the readable formatter prints after the message
_READABLE_TAGS = (
    ("transaction_id", "txn"),
    ("offer_id", "offer"),
    ("milestone_id", "milestone"),
    ("actor_id", "actor"),
)


def record_context(record: logging.LogRecord) -> dict:
    """Negotiation context fields present on *record*."""
    return {
        key: getattr(record, key)
        for key in CONTEXT_FIELDS
        if getattr(record, key, None) is not None
    }


class JSONFormatter(logging.Formatter):
    """JSON log formatter for production / log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        entry.update(record_context(record))
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Human-readable colored formatter for development."""

    COLORS = {
        "DEBUG": "\033[36m",      # cyan
        "INFO": "\033[32m",       # green
        "WARNING": "\033[33m",    # yellow
        "ERROR": "\033[31m",      # red
        "CRITICAL": "\033[35m",   # magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        tags = " ".join(
            f"{tag}={getattr(record, key)}"
            for key, tag in _READABLE_TAGS
            if getattr(record, key, None) is not None
        )
        line = f"{color}{ts} {record.levelname:<8}{self.RESET} {record.name}: {record.getMessage()}"
        if tags:
            line += f" [{tags}]"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _use_json(app) -> bool:
    fmt = os.getenv("LOG_FORMAT") or app.config.get("LOG_FORMAT")
    if fmt:
        return fmt.lower() == "json"
    return not app.config.get("DEBUG", False) and not app.config.get("TESTING", False)


def configure_logging(app):
    """
    Install one stderr handler on the root logger for the engine.

    Level: LOG_LEVEL env, else DEBUG in development/testing and INFO in
    production. Calling it again replaces the handler rather than stacking.
    """
    is_testing = app.config.get("TESTING", False)
    as_json = _use_json(app)

    default_level = "INFO" if as_json and not app.config.get("DEBUG", False) else "DEBUG"
    level_name = (os.getenv("LOG_LEVEL") or default_level).upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if as_json else ReadableFormatter())
    handler.setLevel(level)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # SQL echo and migration chatter stay out of negotiation logs
    for noisy in ("urllib3", "werkzeug", "sqlalchemy.engine", "alembic"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    app.logger.setLevel(level)

    if not is_testing:
        app.logger.info("Logging configured: level=%s format=%s",
                        level_name, "JSON" if as_json else "readable")
