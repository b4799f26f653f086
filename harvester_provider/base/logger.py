"""
Structured logging for the provider.

Provides a pre-configured logger that emits JSON-structured log records
with operation context (controller, operation, instance) on stderr.
Standard output is reserved for the command result consumed by GARM.
"""

from __future__ import annotations

import json
import logging
import os
import sys
import uuid
from typing import Any

LOG_LEVEL_ENV = "GARM_PROVIDER_LOG_LEVEL"

_CONTEXT_KEYS = ("request_id", "controller_id", "operation", "instance")


class StructuredFormatter(logging.Formatter):
    """Emit log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        # Attach any extras injected via ProviderLogger.log_operation
        for key in _CONTEXT_KEYS:
            val = getattr(record, key, None)
            if val is not None:
                log_entry[key] = val
        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = str(record.exc_info[1])
        return json.dumps(log_entry)


def level_from_env(default: int = logging.INFO) -> int:
    """Log level named by $GARM_PROVIDER_LOG_LEVEL, or *default* if unset or unknown."""
    name = os.environ.get(LOG_LEVEL_ENV, "").strip().upper()
    return logging.getLevelNamesMapping().get(name, default)


class ProviderLogger:
    """Convenience wrapper around :mod:`logging` for provider operations.

    One request ID is generated per logger so every record emitted during a
    single invocation can be correlated.
    """

    def __init__(self, name: str = "harvester_provider") -> None:
        self.logger = logging.getLogger(name)
        self.request_id = uuid.uuid4().hex[:12]
        if not self.logger.handlers:
            handler = logging.StreamHandler(sys.stderr)
            handler.setFormatter(StructuredFormatter())
            self.logger.addHandler(handler)
            self.logger.setLevel(level_from_env())
            self.logger.propagate = False

    def log_operation(
        self,
        level: int,
        message: str,
        *,
        controller_id: str | None = None,
        operation: str | None = None,
        instance: str | None = None,
        exc_info: bool = False,
    ) -> None:
        """Emit a structured log record with operation context.

        Args:
            level: Logging level (e.g. logging.INFO).
            message: Human-readable message.
            controller_id: ID of the GARM controller driving this call.
            operation: Operation name (e.g. 'create_instance').
            instance: Instance name the record is about.
            exc_info: Whether to include exception info.
        """
        extra = {
            "controller_id": controller_id,
            "operation": operation,
            "instance": instance,
            "request_id": self.request_id,
        }
        self.logger.log(level, message, extra=extra, exc_info=exc_info)

    def info(self, message: str, **kwargs: Any) -> None:
        self.log_operation(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self.log_operation(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self.log_operation(logging.ERROR, message, **kwargs)

    def debug(self, message: str, **kwargs: Any) -> None:
        self.log_operation(logging.DEBUG, message, **kwargs)


# Module-level singleton
provider_logger = ProviderLogger()
