"""
Microtrace - tracing bootstrap for microservices

Two pieces every service uses:

1. Tracer bootstrap: builds the OpenTelemetry span pipeline at process start and
   publishes it as the process-wide tracer provider, retrying until the tracing
   backend is reachable.
2. Carrier adapter: moves trace context between plain header maps and the
   OpenTelemetry context, for inbound (extract) and outbound (inject) calls.
"""

__version__ = "0.1.0"

from .config import TracingConfig, BatchConfig, RetryConfig, ExporterType, ProcessorMode
from .errors import (
    TracingError,
    ConfigurationError,
    BackendUnavailableError,
    CarrierDecodeError,
    TracingNotInitializedError,
)
from .telemetry import (
    initialize,
    setup_tracer,
    shutdown,
    get_tracer,
    get_tracer_provider,
    get_propagator,
    extract,
    inject,
    use_carrier_context,
    setup_logging,
)

__all__ = [
    "TracingConfig",
    "BatchConfig",
    "RetryConfig",
    "ExporterType",
    "ProcessorMode",
    "TracingError",
    "ConfigurationError",
    "BackendUnavailableError",
    "CarrierDecodeError",
    "TracingNotInitializedError",
    "initialize",
    "setup_tracer",
    "shutdown",
    "get_tracer",
    "get_tracer_provider",
    "get_propagator",
    "extract",
    "inject",
    "use_carrier_context",
    "setup_logging",
]
