"""Logging configuration with optional structured JSON output.

Provides JSON-formatted logging for parsing workflow execution logs, and a
context manager that times a workflow stage (cascade, compaction, bulk AI
generation) and records its outcome.
"""

import json
import logging
import sys
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Dict, Optional, Union

_STANDARD_ATTRS = {
    "name",
    "msg",
    "args",
    "created",
    "filename",
    "funcName",
    "levelname",
    "levelno",
    "lineno",
    "module",
    "msecs",
    "message",
    "pathname",
    "process",
    "processName",
    "relativeCreated",
    "thread",
    "threadName",
    "taskName",
    "exc_info",
    "exc_text",
    "stack_info",
}


class JsonFormatter(logging.Formatter):
    """JSON formatter for structured log records.

    Converts log records to JSON with consistent structure:
    - timestamp: ISO 8601 UTC timestamp
    - level: Log level (INFO, WARNING, ERROR, etc.)
    - logger: Logger name
    - message: Log message
    - extra: Any additional context fields
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        extra_fields = {
            k: v for k, v in record.__dict__.items() if k not in _STANDARD_ATTRS
        }

        if extra_fields:
            log_data["extra"] = extra_fields

        return json.dumps(log_data, ensure_ascii=False, default=str)


def configure_logging(
    level: Union[str, int] = logging.INFO,
    log_file: Optional[Union[str, Path]] = None,
    json_format: bool = True,
    console_output: bool = True,
) -> None:
    """Configure root logging.

    Args:
        level: Logging level (default: INFO)
        log_file: Optional file path for log output (default: None = console only)
        json_format: If True, use JSON formatter; if False, use standard format (default: True)
        console_output: If True, log to console (default: True)

    Example:
        >>> configure_logging(level="INFO", log_file="workflow.log", json_format=True)
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    if json_format:
        formatter: logging.Formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    if not root_logger.handlers:
        # Keeps stderr free for CLI payloads
        root_logger.addHandler(logging.NullHandler())

    level_name = level if isinstance(level, str) else logging.getLevelName(level)
    logging.info(f"Logging configured: level={level_name}, json_format={json_format}")


@contextmanager
def workflow_stage_logger(stage_name: str, **context):
    """Context manager for logging a workflow stage with timing information.

    Args:
        stage_name: Name of the workflow stage
        **context: Additional context fields to include in logs

    Yields:
        Logger instance for the stage

    Example:
        >>> with workflow_stage_logger("cascade_delete", lesson_id="abc") as logger:
        ...     logger.info("Unlinking phrases")
    """
    logger = logging.getLogger(f"contentflow.{stage_name}")

    start_time = datetime.now(UTC)
    logger.info(
        f"Starting workflow stage: {stage_name}",
        extra={"stage": stage_name, "status": "started", **context},
    )

    try:
        yield logger

        duration_ms = (datetime.now(UTC) - start_time).total_seconds() * 1000
        logger.info(
            f"Completed workflow stage: {stage_name}",
            extra={
                "stage": stage_name,
                "status": "completed",
                "duration_ms": round(duration_ms, 2),
                **context,
            },
        )

    except Exception as e:
        duration_ms = (datetime.now(UTC) - start_time).total_seconds() * 1000
        logger.error(
            f"Failed workflow stage: {stage_name}",
            extra={
                "stage": stage_name,
                "status": "failed",
                "duration_ms": round(duration_ms, 2),
                "error": str(e)[:200],
                **context,
            },
            exc_info=True,
        )
        raise

