"""
Console exporter backend, writes finished spans as JSON to a stream (stdout by default)
"""

import sys
from typing import Optional, TextIO

from opentelemetry.sdk.trace.export import ConsoleSpanExporter, SpanExporter

from microtrace.exporters.exporter_interface import ExporterBackendInterface


class ConsoleBackend(ExporterBackendInterface):
    """Console/stdout exporter, never needs a backend"""

    name = "console"

    def __init__(self, service_name: Optional[str] = None, out: Optional[TextIO] = None):
        self.service_name = service_name
        self.out = out

    def construct(self) -> SpanExporter:
        return ConsoleSpanExporter(service_name=self.service_name, out=self.out or sys.stdout)

    def describe(self) -> str:
        return self.name
