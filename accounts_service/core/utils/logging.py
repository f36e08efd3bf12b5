"""
Structured Logging
JSON logs shaped for Cloud Logging's structured payload.

Account identifiers passed in ``extra`` (tenant_id, account_id, ...) are
moved under ``logging.googleapis.com/labels`` so they are indexed and can
be filtered on without a payload scan.
"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from opentelemetry import trace
from pythonjsonlogger import jsonlogger

from accounts_service.app.config import get_settings

LABELS_KEY = "logging.googleapis.com/labels"
TRACE_KEY = "logging.googleapis.com/trace"
SPAN_KEY = "logging.googleapis.com/spanId"
TRACE_SAMPLED_KEY = "logging.googleapis.com/trace_sampled"

# Extra fields promoted to log labels
LABEL_FIELDS = (
    "tenant_id",
    "account_id",
    "parent_id",
    "primary_account_id",
    "secondary_account_id",
)


class AccountLogFormatter(jsonlogger.JsonFormatter):
    """JSON formatter adding severity, labels, trace correlation and service identity."""

    def add_fields(
        self,
        log_record: Dict[str, Any],
        record: logging.LogRecord,
        message_dict: Dict[str, Any]
    ):
        super().add_fields(log_record, record, message_dict)
        settings = get_settings()

        log_record["timestamp"] = datetime.fromtimestamp(record.created, timezone.utc).isoformat()
        log_record["severity"] = record.levelname

        labels = {}
        for field in LABEL_FIELDS:
            value = log_record.pop(field, None)
            if value is not None:
                labels[field] = str(value)
        if labels:
            log_record[LABELS_KEY] = labels

        span_context = trace.get_current_span().get_span_context()
        if span_context.is_valid:
            log_record[TRACE_KEY] = f"projects/{settings.gcp_project_id}/traces/{span_context.trace_id:032x}"
            log_record[SPAN_KEY] = f"{span_context.span_id:016x}"
            log_record[TRACE_SAMPLED_KEY] = span_context.trace_flags.sampled

        log_record["service"] = settings.app_name
        log_record["version"] = settings.app_version
        log_record["environment"] = settings.environment


def setup_logging(log_level: Optional[str] = None):
    """
    Route all loggers to one JSON handler on stdout.

    Args:
        log_level: Overrides settings.log_level
    """
    settings = get_settings()
    level = log_level or settings.log_level

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(AccountLogFormatter(
        fmt="%(timestamp)s %(severity)s %(name)s %(message)s",
        json_ensure_ascii=False
    ))

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    for noisy in ("google", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logging.getLogger(__name__).info("Logging initialized", extra={"log_level": level})
