"""
Structured Logging Configuration

JSON log lines carrying:
- the request id and caller id of the HTTP request being served
- entity type / id for reservation and calendar changes
- timings for API calls

Plain text output is used in development (LOG_JSON=false).
"""

import logging
import json
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple
from contextvars import ContextVar

# Context variables for request tracking
request_id_var: ContextVar[str] = ContextVar('request_id', default='')
user_id_var: ContextVar[str] = ContextVar('user_id', default='')

# LogRecord attributes copied into the JSON document when present
STRUCTURED_FIELDS: Tuple[str, ...] = ("entity_type", "entity_id", "accommodation_id", "duration_ms")

NOISY_LOGGERS: Tuple[str, ...] = ("httpx", "httpcore", "sqlalchemy.engine", "apscheduler")

TEXT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class JSONFormatter(logging.Formatter):
    """One JSON object per log line, for the log aggregator."""

    def format(self, record: logging.LogRecord) -> str:
        document: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "source": f"{record.module}:{record.funcName}:{record.lineno}",
        }

        for name, var in (("request_id", request_id_var), ("user_id", user_id_var)):
            value = var.get()
            if value:
                document[name] = value

        for name in STRUCTURED_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                document[name] = value

        data = getattr(record, "extra_data", None)
        if data:
            document["data"] = data

        if record.exc_info:
            document["exception"] = self.formatException(record.exc_info)

        return json.dumps(document, ensure_ascii=False, default=str)


class StructuredLogger(logging.LoggerAdapter):
    """
    Logger adapter with one helper per booking lifecycle event, so the same
    fields are always logged under the same names.
    """

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        kwargs['extra'] = {**self.extra, **kwargs.get('extra', {})}
        return msg, kwargs

    def log_with_context(
        self,
        level: int,
        msg: str,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        duration_ms: Optional[float] = None,
        **extra_data
    ):
        extra: Dict[str, Any] = {"extra_data": extra_data} if extra_data else {}
        if entity_type:
            extra["entity_type"] = entity_type
        if entity_id:
            extra["entity_id"] = entity_id
        if duration_ms is not None:
            extra["duration_ms"] = duration_ms
        if "accommodation_id" in extra_data:
            extra["accommodation_id"] = extra_data["accommodation_id"]

        self.log(level, msg, extra=extra)

    def request_created(self, request_id: str, accommodation_id: str, guest_id: str, auto_confirm: bool):
        self.log_with_context(
            logging.INFO,
            f"Reservation request created for accommodation {accommodation_id}"
            f"{' (auto-confirm)' if auto_confirm else ''}",
            entity_type="reservation_request",
            entity_id=request_id,
            accommodation_id=accommodation_id,
            guest_id=guest_id,
            auto_confirm=auto_confirm
        )

    def request_status_changed(self, request_id: str, old_status: str, new_status: str):
        self._transition("reservation_request", request_id, old_status, new_status)

    def reservation_status_changed(self, reservation_id: str, old_status: str, new_status: str):
        self._transition("reservation", reservation_id, old_status, new_status)

    def _transition(self, entity_type: str, entity_id: str, old_status: str, new_status: str):
        self.log_with_context(
            logging.INFO,
            f"{entity_type} {entity_id}: {old_status} -> {new_status}",
            entity_type=entity_type,
            entity_id=entity_id,
            old_status=old_status,
            new_status=new_status
        )

    def api_request(self, method: str, path: str, status_code: int, duration_ms: float):
        """Access log line; 5xx responses are logged as errors."""
        self.log_with_context(
            logging.ERROR if status_code >= 500 else logging.INFO,
            f"{method} {path} - {status_code}",
            duration_ms=duration_ms,
            method=method,
            path=path,
            status_code=status_code
        )


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    include_uvicorn: bool = True
) -> None:
    """
    Configure application logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: JSON lines (production) instead of plain text
        include_uvicorn: Route uvicorn's loggers through the same handler
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(JSONFormatter() if json_format else logging.Formatter(TEXT_FORMAT))

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    logging.getLogger("booking_app").setLevel(log_level)

    if include_uvicorn:
        for logger_name in ("uvicorn", "uvicorn.access", "uvicorn.error"):
            logging.getLogger(logger_name).handlers = [handler]

    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger for the given module."""
    return StructuredLogger(logging.getLogger(name), {})


def set_request_context(request_id: str, user_id: Optional[str] = None):
    request_id_var.set(request_id)
    if user_id:
        user_id_var.set(user_id)


def clear_request_context():
    request_id_var.set('')
    user_id_var.set('')
