"""
Tracing error types

Configuration errors are fatal and never retried. Backend errors are absorbed by
the bootstrap retry loop. Carrier decode errors stay local to one request.
"""


class TracingError(RuntimeError):
    """Base class for all microtrace errors."""


class ConfigurationError(TracingError, ValueError):
    """Raised when a settings value is malformed; retrying cannot fix it."""


class BackendUnavailableError(TracingError, ConnectionError):
    """Raised when the tracing backend cannot be reached."""


class CarrierDecodeError(TracingError, ValueError):
    """Raised when a carrier entry cannot be handed to the propagator."""


class TracingNotInitializedError(TracingError):
    """Raised when the tracer provider is read before bootstrap has published it."""
