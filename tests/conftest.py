"""
Shared fixtures: every test starts without a published tracer provider and with
the default W3C propagator.
"""
import logging

import pytest
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from microtrace.telemetry import tracer as tracer_module
from microtrace.telemetry.propagation import build_propagator, install_propagator


@pytest.fixture(autouse=True)
def reset_tracing():
    """Clear published tracing state around each test"""
    tracer_module.shutdown()
    install_propagator(build_propagator(("tracecontext", "baggage")))
    root = logging.getLogger()
    root_handlers = list(root.handlers)
    root_level = root.level
    yield
    tracer_module.shutdown()
    install_propagator(build_propagator(("tracecontext", "baggage")))
    for handler in list(root.handlers):
        if handler not in root_handlers:
            root.removeHandler(handler)
    root.setLevel(root_level)


@pytest.fixture
def local_tracer():
    """Tracer with an in-memory exporter, independent of the published provider"""
    exporter = InMemorySpanExporter()
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    yield provider.get_tracer("tests")
    provider.shutdown()
