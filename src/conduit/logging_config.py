"""Root logging setup for hosts (CLI, Lambda handlers).

Library code only ever calls logging.getLogger(__name__); handlers and
formats are the host's decision, made once through configure_logging().
"""

import json
import logging
from datetime import datetime, timezone

TEXT_FORMAT = '%(asctime)s - %(levelname)s - %(name)s - %(message)s'

# Attributes every LogRecord has; anything else came in through `extra=`
RESERVED_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


def safe_extra(fields: dict, prefix: str = "field_") -> dict:
    """Rename keys that would overwrite LogRecord attributes when passed as `extra=`."""
    return {(f"{prefix}{key}" if key in RESERVED_ATTRS else key): value for key, value in fields.items()}


class JsonFormatter(logging.Formatter):
    """One JSON object per record, including fields passed via `extra=`."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key not in RESERVED_ATTRS and not key.startswith("_"):
                payload[key] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(level: str | int = "info", fmt: str = "text") -> None:
    """Configure the root logger.

    Args:
        level: Level name ("debug", "INFO", ...) or logging constant
        fmt: "text" for human readable lines, "json" for structured output
    """
    if isinstance(level, str):
        name = level
        level = logging.getLevelName(name.upper())
        if not isinstance(level, int):
            raise ValueError(f"Unknown log level: {name}")

    handler = logging.StreamHandler()
    if fmt == "json":
        handler.setFormatter(JsonFormatter())
    elif fmt == "text":
        handler.setFormatter(logging.Formatter(TEXT_FORMAT, datefmt='%H:%M:%S'))
    else:
        raise ValueError(f"Unknown log format: {fmt}")

    logging.basicConfig(level=level, handlers=[handler], force=True)
