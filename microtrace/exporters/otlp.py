"""
OTLP exporter backends

gRPC (default port 4317) and HTTP/protobuf (default port 4318) transports. The
Jaeger backend reuses the gRPC transport against Jaeger's OTLP receiver.
"""

import logging
from typing import Optional

from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
    OTLPSpanExporter as GrpcSpanExporter,
)
from opentelemetry.exporter.otlp.proto.http.trace_exporter import (
    OTLPSpanExporter as HttpSpanExporter,
)
from opentelemetry.sdk.trace.export import SpanExporter

from microtrace.exporters.exporter_interface import (
    ExporterBackendInterface,
    probe_endpoint,
    split_endpoint,
)

logger = logging.getLogger(__name__)

# Upper bound for the reachability probe, independent of the export timeout
PROBE_TIMEOUT_SECONDS = 2.0


class OtlpGrpcBackend(ExporterBackendInterface):
    """OTLP over gRPC"""

    name = "grpc"
    default_port = 4317

    def __init__(self, endpoint: str, insecure: bool = True,
                 timeout_seconds: float = 10.0, probe: bool = True):
        self.endpoint = endpoint
        self.insecure = insecure
        self.timeout_seconds = timeout_seconds
        self.probe = probe

    def construct(self) -> SpanExporter:
        host, port = split_endpoint(self.endpoint, self.default_port)
        if self.probe:
            probe_endpoint(host, port, min(self.timeout_seconds, PROBE_TIMEOUT_SECONDS))
        logger.debug(f"Creating OTLP gRPC span exporter for {host}:{port}")
        return GrpcSpanExporter(
            endpoint=self.endpoint,
            insecure=self.insecure,
            timeout=self.timeout_seconds,
        )

    def describe(self) -> str:
        return f"{self.name} {self.endpoint}"


class JaegerBackend(OtlpGrpcBackend):
    """Jaeger collector, reached through its OTLP/gRPC receiver"""

    name = "jaeger"


class OtlpHttpBackend(ExporterBackendInterface):
    """OTLP over HTTP/protobuf

    ``endpoint`` is the full traces URL, e.g. ``http://collector:4318/v1/traces``.
    """

    name = "http"
    default_port = 4318

    def __init__(self, endpoint: str, timeout_seconds: float = 10.0,
                 probe: bool = True, certificate_file: Optional[str] = None):
        self.endpoint = endpoint
        self.timeout_seconds = timeout_seconds
        self.probe = probe
        self.certificate_file = certificate_file

    def construct(self) -> SpanExporter:
        host, port = split_endpoint(self.endpoint, self.default_port)
        if self.probe:
            probe_endpoint(host, port, min(self.timeout_seconds, PROBE_TIMEOUT_SECONDS))
        logger.debug(f"Creating OTLP HTTP span exporter for {self.endpoint}")
        return HttpSpanExporter(
            endpoint=self.endpoint,
            certificate_file=self.certificate_file,
            timeout=self.timeout_seconds,
        )

    def describe(self) -> str:
        return f"{self.name} {self.endpoint}"
