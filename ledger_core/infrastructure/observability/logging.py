"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict

from pythonjsonlogger import jsonlogger

from ledger_core.config import settings


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_mutation(
    operation: str,
    entity_id: str | None,
    applied: bool,
    duration_ms: float,
    reason: str | None = None,
) -> None:
    """Log structured mutation outcome; rollbacks are errors"""
    extra = {
        "step": "mutation_complete",
        "operation": operation,
        "entity_id": entity_id,
        "outcome": "applied" if applied else "rolled_back",
        "duration_ms": duration_ms,
    }
    if applied:
        logging.info("Mutation applied", extra=extra)
    else:
        logging.error(f"Mutation rolled back: {reason}", extra=extra)


def log_scheduler_run(posted: int, skipped: int, failed: int, duration_ms: float) -> None:
    """Log structured scheduler pass summary"""
    logging.info(
        "Scheduler pass completed",
        extra={
            "step": "scheduler_complete",
            "posted": posted,
            "skipped": skipped,
            "failed": failed,
            "duration_ms": duration_ms,
        },
    )
