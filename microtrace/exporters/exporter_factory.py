"""
Exporter factory

Creates exporter backends from the configured transport type. This is the only
place that knows which class serves which ``ExporterType``.
"""

from opentelemetry.sdk.trace.export import SpanExporter

from microtrace.config import ExporterType, TracingConfig
from microtrace.exporters.console import ConsoleBackend
from microtrace.exporters.exporter_interface import ExporterBackendInterface
from microtrace.exporters.otlp import JaegerBackend, OtlpGrpcBackend, OtlpHttpBackend


class ExporterFactory:
    """Exporter factory, used to create span exporter backends"""

    @staticmethod
    def create_backend(config: TracingConfig) -> ExporterBackendInterface:
        """Create an exporter backend

        Args:
            config: Validated tracing settings

        Returns:
            ExporterBackendInterface: backend for the configured transport

        Raises:
            ConfigurationError: Invalid exporter type
        """
        exporter_type = ExporterType.parse(config.exporter)
        endpoint = config.resolved_endpoint()

        if exporter_type == ExporterType.GRPC:
            return OtlpGrpcBackend(
                endpoint=endpoint,
                insecure=config.insecure,
                timeout_seconds=config.export_timeout_seconds,
                probe=config.probe_backend,
            )
        elif exporter_type == ExporterType.JAEGER:
            return JaegerBackend(
                endpoint=endpoint,
                insecure=config.insecure,
                timeout_seconds=config.export_timeout_seconds,
                probe=config.probe_backend,
            )
        elif exporter_type == ExporterType.HTTP:
            return OtlpHttpBackend(
                endpoint=endpoint,
                timeout_seconds=config.export_timeout_seconds,
                probe=config.probe_backend,
            )
        else:
            return ConsoleBackend(service_name=config.service_name)

    @staticmethod
    def create_exporter(config: TracingConfig) -> SpanExporter:
        """Create a span exporter for the configured transport

        Raises:
            BackendUnavailableError: The backend could not be reached
            ConfigurationError: Invalid exporter type or endpoint
        """
        return ExporterFactory.create_backend(config).construct()
