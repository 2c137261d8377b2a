"""
Log/trace correlation

Adds the ids of the current span to every log record so log lines can be joined
with their traces.
"""

import logging
import os
import sys
from typing import Optional, TextIO

from opentelemetry import trace

from microtrace.errors import ConfigurationError

LOG_FORMAT = (
    "%(asctime)s %(levelname)s [%(name)s] "
    "[trace_id=%(trace_id)s span_id=%(span_id)s] %(message)s"
)

# Level names used by the services' LOG_LEVEL settings
_LEVEL_ALIASES = {
    "TRACE": "DEBUG",
    "WARN": "WARNING",
    "FATAL": "CRITICAL",
    "PANIC": "CRITICAL",
}


class TraceContextFilter(logging.Filter):
    """Sets ``trace_id`` and ``span_id`` on each record; empty outside a span"""

    def filter(self, record: logging.LogRecord) -> bool:
        span_context = trace.get_current_span().get_span_context()
        if span_context.is_valid:
            record.trace_id = trace.format_trace_id(span_context.trace_id)
            record.span_id = trace.format_span_id(span_context.span_id)
        else:
            record.trace_id = ""
            record.span_id = ""
        return True


def resolve_log_level(level: Optional[str] = None) -> int:
    """Map a level name (argument, then LOG_LEVEL, then INFO) to a logging level

    Raises:
        ConfigurationError: Unknown level name
    """
    name = (level or os.getenv("LOG_LEVEL") or "INFO").strip().upper()
    name = _LEVEL_ALIASES.get(name, name)
    value = logging.getLevelName(name)
    if not isinstance(value, int):
        raise ConfigurationError(f"Unknown log level: {level or name!r}")
    return value


def setup_logging(level: Optional[str] = None, service_name: Optional[str] = None,
                  stream: Optional[TextIO] = None) -> logging.Handler:
    """Configure the root logger with trace-correlated output

    Calling it again replaces the handler installed by the previous call.

    Returns:
        The installed handler
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_microtrace", False):
            root.removeHandler(handler)

    fmt = LOG_FORMAT if not service_name else f"[{service_name}] {LOG_FORMAT}"
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(fmt))
    handler.addFilter(TraceContextFilter())
    handler._microtrace = True  # type: ignore[attr-defined]

    root.addHandler(handler)
    root.setLevel(resolve_log_level(level))
    return handler
