"""
OpenTelemetry Integration Module

- tracer: tracer bootstrap and the published tracer provider
- carrier: trace context extraction/injection over header maps
- propagation: propagator selection
- log_context: trace ids on log records
"""

from .tracer import (
    initialize,
    setup_tracer,
    shutdown,
    get_tracer,
    get_tracer_provider,
    is_initialized,
)
from .carrier import (
    TextMapReader,
    TextMapWriter,
    extract,
    inject,
    use_carrier_context,
    span_context_of,
)
from .propagation import build_propagator, get_propagator
from .log_context import TraceContextFilter, setup_logging

__all__ = [
    "initialize",
    "setup_tracer",
    "shutdown",
    "get_tracer",
    "get_tracer_provider",
    "is_initialized",
    "TextMapReader",
    "TextMapWriter",
    "extract",
    "inject",
    "use_carrier_context",
    "span_context_of",
    "build_propagator",
    "get_propagator",
    "TraceContextFilter",
    "setup_logging",
]
