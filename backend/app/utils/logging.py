"""Structured logging for collaboration operations."""

import logging
from typing import Any
from uuid import UUID

from pythonjsonlogger import jsonlogger

logger = logging.getLogger(__name__)


class StructuredJsonFormatter(jsonlogger.JsonFormatter):
    """JSON lines with ``extra={"structured": {...}}`` merged into the top level."""

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        structured = log_record.pop("structured", None)
        if isinstance(structured, dict):
            log_record.update(structured)
        log_record["level"] = record.levelname
        log_record["logger"] = record.name


def configure_logging(level: str = "INFO", fmt: str = "json") -> None:
    """Install a single handler on the root logger."""
    handler = logging.StreamHandler()
    if fmt == "json":
        handler.setFormatter(StructuredJsonFormatter("%(message)s", timestamp=True))
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(getattr(logging, level.upper(), logging.INFO))


class StructuredCollaborationLogger:
    """Structured logger for collaboration operations."""

    def log_operation(
        self,
        operation: str,
        actor_user_id: UUID | None,
        outcome: str = "success",
        **fields: Any,
    ) -> None:
        """Log a core operation with structured data."""
        log_data: dict[str, Any] = {
            "operation": operation,
            "actor_user_id": str(actor_user_id) if actor_user_id else None,
            "outcome": outcome,
        }
        log_data.update({k: str(v) if isinstance(v, UUID) else v for k, v in fields.items()})

        log_msg = f"Collaboration operation: {operation} - {outcome}"

        if outcome == "success":
            logger.info(log_msg, extra={"structured": log_data})
        else:
            logger.warning(log_msg, extra={"structured": log_data})

    def log_fanout_failure(
        self, session_id: UUID, event_type: str, error: Exception
    ) -> None:
        """Log a failed best-effort event delivery."""
        log_data = {
            "session_id": str(session_id),
            "event_type": event_type,
            "error": repr(error),
        }
        logger.warning(
            f"Event fan-out failed: {event_type}",
            extra={"structured": log_data},
            exc_info=error,
        )
