"""
Exporter backend interface

Every transport (OTLP/gRPC, OTLP/HTTP, Jaeger, console) implements this interface,
so the bootstrap can build a span pipeline without knowing which backend is
configured.
"""

import abc
import socket
from typing import Tuple
from urllib.parse import urlsplit

from opentelemetry.sdk.trace.export import SpanExporter

from microtrace.errors import BackendUnavailableError, ConfigurationError


class ExporterBackendInterface(abc.ABC):
    """Exporter backend interface, defines the methods every transport must implement

    ``construct`` yields an OpenTelemetry ``SpanExporter``; its ``export`` and
    ``shutdown`` methods make up the rest of the capability. The span processor
    that receives the exporter owns it from then on.
    """

    name = "abstract"

    @abc.abstractmethod
    def construct(self) -> SpanExporter:
        """Create a span exporter bound to this backend's endpoint

        Returns:
            SpanExporter: exporter ready to be handed to a span processor

        Raises:
            BackendUnavailableError: The backend could not be reached
            ConfigurationError: The endpoint is malformed
        """
        pass

    @abc.abstractmethod
    def describe(self) -> str:
        """Human readable target, used in log lines"""
        pass


def split_endpoint(endpoint: str, default_port: int) -> Tuple[str, int]:
    """Split ``host:port`` or a URL into host and port

    Raises:
        ConfigurationError: The endpoint has no host or a non-numeric port
    """
    target = endpoint if "://" in endpoint else f"//{endpoint}"
    try:
        parts = urlsplit(target)
        port = parts.port
    except ValueError as e:
        raise ConfigurationError(f"Invalid endpoint {endpoint!r}: {e}") from e
    if not parts.hostname:
        raise ConfigurationError(f"Invalid endpoint {endpoint!r}: missing host")
    if port is None:
        port = 443 if parts.scheme == "https" else default_port
    return parts.hostname, port


def probe_endpoint(host: str, port: int, timeout: float) -> None:
    """Open and close a TCP connection to the backend

    Raises:
        BackendUnavailableError: The connection could not be established
    """
    try:
        with socket.create_connection((host, port), timeout=timeout):
            pass
    except OSError as e:
        raise BackendUnavailableError(f"Tracing backend {host}:{port} unreachable: {e}") from e
