"""Logging configuration with request and trace context."""

from __future__ import annotations

import logging
from logging.handlers import SysLogHandler

from opentelemetry import trace

from coordinator.config import Settings, get_settings
from coordinator.observability.request_context import get_request_id

LOG_FORMAT = (
    "%(asctime)s %(levelname)s %(name)s request_id=%(request_id)s "
    "trace_id=%(trace_id)s span_id=%(span_id)s %(message)s"
)


class RequestIdFilter(logging.Filter):
    """Attach request_id, trace_id and span_id to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        span_context = trace.get_current_span().get_span_context()
        if span_context and span_context.is_valid:
            record.trace_id = format(span_context.trace_id, "032x")
            record.span_id = format(span_context.span_id, "016x")
        else:
            record.trace_id = "-"
            record.span_id = "-"
        record.request_id = get_request_id() or "-"
        return True


def configure_logging(settings: Settings | None = None) -> None:
    """Configure base logging to include request and trace context."""
    settings = settings or get_settings()
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format=LOG_FORMAT,
    )
    root_logger = logging.getLogger()
    request_filter = RequestIdFilter()
    # Filters on handlers also see records propagated from child loggers
    for handler in root_logger.handlers:
        handler.addFilter(request_filter)

    if settings.syslog_host:
        syslog_handler = SysLogHandler(address=(settings.syslog_host, settings.syslog_port))
        syslog_handler.setLevel(logging.INFO)
        syslog_handler.setFormatter(logging.Formatter("%(name)s %(levelname)s request_id=%(request_id)s %(message)s"))
        syslog_handler.addFilter(request_filter)
        root_logger.addHandler(syslog_handler)
