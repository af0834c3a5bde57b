"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict
from pythonjsonlogger import jsonlogger

from obligation_engine.config import settings
from obligation_engine.domain.models import MutationResult, SweepReport


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

    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_sweep(request_id: str, report: SweepReport, duration_ms: float) -> None:
    """Log structured sweep outcome for analysis"""
    logging.info(
        "Sweep completed",
        extra={
            "request_id": request_id,
            "step": "sweep_complete",
            "roots_total": report.roots_total,
            "roots_processed": report.roots_processed,
            "roots_failed": len(report.failed_root_ids),
            "instances_created": report.instances_created,
            "cancelled": report.cancelled,
            "duration_ms": duration_ms,
        },
    )


def log_mutation(request_id: str, obligation_id: str, action: str, scope: str, result: MutationResult) -> None:
    """Log structured series edit/delete outcome"""
    logging.info(
        "Series mutation completed",
        extra={
            "request_id": request_id,
            "obligation_id": obligation_id,
            "step": "mutation_complete",
            "action": action,
            "scope": scope,
            "rows_updated": result.updated,
            "rows_deleted": result.deleted,
        },
    )
