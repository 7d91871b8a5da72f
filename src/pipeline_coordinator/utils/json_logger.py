"""
Logging setup for Pipeline Coordinator: JSON records for machines, rich for people.
"""

import json
import logging
import sys
import time
from typing import Any, Dict, Optional

from rich.console import Console
from rich.logging import RichHandler

CONTEXT_FIELDS = ("story_id", "repository", "solution", "project")


class JsonFormatter(logging.Formatter):
    """Custom formatter that outputs logs as structured JSON."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""

        payload = {
            "ts": int(time.time() * 1000),  # Unix timestamp in milliseconds
            "level": record.levelname,
            "msg": record.getMessage(),
            "logger": record.name,
            "module": record.module,
            "funcName": record.funcName,
            "lineno": record.lineno,
        }

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        for attr in CONTEXT_FIELDS:
            if hasattr(record, attr):
                payload[attr] = getattr(record, attr)

        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_json_logging(level: int = logging.INFO, stream=None) -> None:
    """Configure the root logger to use JSON formatting."""

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JsonFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(level)


def configure_console_logging(
    level: int = logging.WARNING, console: Optional[Console] = None
) -> None:
    """Route log records through rich for interactive terminals."""

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        markup=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(level)


class StoryLoggerAdapter(logging.LoggerAdapter):
    """Attaches the story id (and optional extra context) to every record."""

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        extra = dict(self.extra)
        extra.update(kwargs.get("extra", {}))
        kwargs["extra"] = extra
        return msg, kwargs


def story_logger(name: str, story_id: str, **context: Any) -> StoryLoggerAdapter:
    """Create a logger that tags records with ``story_id`` and ``context``."""
    return StoryLoggerAdapter(logging.getLogger(name), {"story_id": story_id, **context})
