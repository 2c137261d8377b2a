"""
Exporter Backends Module

Span exporter implementations behind one interface:
- otlp: OTLP over gRPC and HTTP, plus Jaeger through its OTLP receiver
- console: spans written to stdout

The exporter factory picks the backend from the configured ``ExporterType``.
"""

from .exporter_factory import ExporterFactory
from .exporter_interface import ExporterBackendInterface
from .console import ConsoleBackend
from .otlp import OtlpGrpcBackend, OtlpHttpBackend, JaegerBackend

__all__ = [
    "ExporterFactory",
    "ExporterBackendInterface",
    "ConsoleBackend",
    "OtlpGrpcBackend",
    "OtlpHttpBackend",
    "JaegerBackend",
]
