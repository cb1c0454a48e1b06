"""JSON logging shared by the API, the CLI and the allocation job.

Services log with ``extra={"data": {...}}``. Ledger identifiers found in that
payload are also copied to the top level of the entry so log search can join
a user's balance changes, redemptions and recognitions.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, TextIO

from backend.app.core.config import settings

CORRELATION_KEYS = ("user_id", "sender_id", "recipient_id", "reward_id", "redemption_id", "recognition_id")
QUIET_LOGGERS = ("apscheduler", "sqlalchemy.engine", "httpcore", "httpx")


def resolve_level(name: str | None) -> int:
    level = logging.getLevelName((name or "INFO").strip().upper())
    return level if isinstance(level, int) else logging.INFO


class JSONFormatter(logging.Formatter):
    def __init__(self, environment: str = "") -> None:
        super().__init__()
        self.environment = environment

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if self.environment:
            entry["env"] = self.environment

        data = getattr(record, "data", None)
        if isinstance(data, dict):
            for key in CORRELATION_KEYS:
                if key in data:
                    entry[key] = data[key]
        if data is not None:
            entry["data"] = data

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def setup_logging(stream: TextIO | None = None, level: str | None = None) -> logging.Logger:
    """Route the root logger through a single JSON handler.

    Logs go to stdout unless ``stream`` is given; the CLI passes stderr so
    command output stays machine-readable.
    """
    root = logging.getLogger()
    root.setLevel(resolve_level(level or settings.log_level))

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(JSONFormatter(environment=str(settings.app_env)))
    # Replaces uvicorn's default handlers as well
    root.handlers = [handler]

    logging.getLogger("uvicorn.access").disabled = True
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root
