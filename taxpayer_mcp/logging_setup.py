"""
Structured JSON logging.

Logs go to stdout as one JSON object per line so that a log collector can
index the fields. Structured values are attached with
`logger.info("msg", extra={"log_data": {...}})` and merged into the line:

    {"timestamp": "2026-02-06 10:30:00,123", "level": "WARNING",
     "logger": "taxpayer-mcp", "message": "Authentication failed",
     "request_id": "3f2a9c1d", "reason": "expired", "client_ip": "10.0.0.7"}
"""

import json
import logging
import sys


class JSONLogFormatter(logging.Formatter):
    """Formats log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if hasattr(record, "log_data"):
            log_entry.update(record.log_data)
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


def configure_logging(level: str = "info") -> None:
    """Route the root logger to stdout through JSONLogFormatter."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONLogFormatter())

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        handlers=[handler],
        force=True,
    )
