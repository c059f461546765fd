"""
Structured Logger - Enhanced logging with JSON output for better observability
"""
import json
import logging
from typing import Dict, Any, Optional

import config
from utils.timezone import get_local_time

SERVICE_NAME = "salon-sync"


class StructuredLogger:
    """Provides structured logging in JSON format for better parsing and analysis"""

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)
        self.name = name

    def _base_entry(self, event_type: str) -> Dict[str, Any]:
        return {
            "timestamp": get_local_time().isoformat(),
            "timezone": config.BUSINESS_TIMEZONE,
            "event_type": event_type,
            "service": SERVICE_NAME,
            "logger": self.name,
        }

    def log_sync_event(self, event_type: str, details: Dict[str, Any]):
        """Log a sync-related event with structured data"""
        log_entry = {**self._base_entry(event_type), **details}

        # Choose log level based on event type
        lowered = event_type.lower()
        if "error" in lowered or "failed" in lowered:
            self.logger.error(json.dumps(log_entry, default=str, ensure_ascii=False))
        elif "warning" in lowered:
            self.logger.warning(json.dumps(log_entry, default=str, ensure_ascii=False))
        else:
            self.logger.info(json.dumps(log_entry, default=str, ensure_ascii=False))

    def log_api_call(self, method: str, endpoint: str, status_code: Optional[int] = None,
                     duration_ms: Optional[float] = None, error: Optional[str] = None):
        """Log API call details"""
        log_entry = self._base_entry("api_call")
        log_entry["method"] = method
        log_entry["endpoint"] = endpoint

        if status_code is not None:
            log_entry["status_code"] = status_code
        if duration_ms is not None:
            log_entry["duration_ms"] = round(duration_ms, 1)
        if error:
            log_entry["error"] = error

        if error or (status_code and status_code >= 400):
            self.logger.error(json.dumps(log_entry, ensure_ascii=False))
        else:
            self.logger.debug(json.dumps(log_entry, ensure_ascii=False))


class JsonFormatter(logging.Formatter):
    """Custom formatter that outputs JSON"""

    def format(self, record):
        # If the message is already JSON, return it as-is
        try:
            json.loads(record.getMessage())
            return record.getMessage()
        except (json.JSONDecodeError, TypeError):
            log_entry = {
                "timestamp": get_local_time().isoformat(),
                "timezone": config.BUSINESS_TIMEZONE,
                "level": record.levelname,
                "logger": record.name,
                "message": record.getMessage()
            }

            if record.exc_info:
                log_entry["exception"] = self.formatException(record.exc_info)

            return json.dumps(log_entry, ensure_ascii=False)


def configure_logging(level: Optional[str] = None, structured: Optional[bool] = None):
    """Configure root logging from config (JSON output when structured logging is on)"""
    level = level or config.LOG_LEVEL
    structured = config.STRUCTURED_LOGGING if structured is None else structured

    handler = logging.StreamHandler()
    if structured:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
