# Expose the utilities other modules import from the utils package
from utils.logger import StructuredLogger, JsonFormatter, configure_logging
from utils.retry import retry_with_backoff
from utils.timezone import (
    day_window,
    format_local_time,
    get_local_time,
    to_api_timestamp,
    utc_now,
)

__all__ = [
    "StructuredLogger",
    "JsonFormatter",
    "configure_logging",
    "retry_with_backoff",
    "day_window",
    "format_local_time",
    "get_local_time",
    "to_api_timestamp",
    "utc_now",
]
