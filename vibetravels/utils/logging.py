"""Structured logging for generation jobs."""

import json
import logging
from typing import Any

from vibetravels.generation.job import JobContext

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class StructuredFormatter(logging.Formatter):
    """Appends the record's ``structured`` extra as JSON."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        structured = getattr(record, "structured", None)
        if structured:
            message = f"{message} {json.dumps(structured, default=str, sort_keys=True)}"
        return message


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging for CLI and worker processes."""
    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter(LOG_FORMAT))
    logging.basicConfig(level=level.upper(), handlers=[handler], force=True)


class StructuredJobLogger:
    """Structured logger for generation job tries."""

    def log_try(
        self,
        ctx: JobContext,
        try_number: int,
        outcome: str,
        latency_ms: float,
        error_reason: str | None = None,
    ) -> None:
        """Log a generation job try with structured data."""
        log_data: dict[str, Any] = {
            "job_id": ctx.job_id,
            "attempt_id": ctx.attempt_id,
            "plan_id": ctx.travel_plan_id,
            "user_id": ctx.user_id,
            "try_number": try_number,
            "outcome": outcome,
            "latency_ms": round(latency_ms, 2),
        }

        if error_reason:
            log_data["error_reason"] = error_reason

        log_msg = f"Generation job: attempt {ctx.attempt_id} - {outcome}"

        if outcome in ("completed", "skipped"):
            logger.info(log_msg, extra={"structured": log_data})
        else:
            logger.warning(log_msg, extra={"structured": log_data})
