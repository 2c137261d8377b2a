"""
Tests for the tracer bootstrap and the published tracer provider
"""
import logging
import os
import socket
from unittest.mock import MagicMock, call, patch

import pytest
from opentelemetry import trace
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from microtrace.config import BatchConfig, RetryConfig, TracingConfig
from microtrace.errors import (
    BackendUnavailableError,
    ConfigurationError,
    TracingNotInitializedError,
)
from microtrace.exporters.exporter_factory import ExporterFactory
from microtrace.telemetry import tracer as tracer_module
from microtrace.telemetry.propagation import get_propagator
from microtrace.telemetry.tracer import (
    create_span_processor,
    get_tracer,
    get_tracer_provider,
    initialize,
    is_initialized,
    setup_tracer,
    shutdown,
)

TRACER_LOGGER = "microtrace.telemetry.tracer"


def make_config(**overrides):
    values = dict(service_name="geo", sample_ratio=1.0, processor="simple", exporter="console")
    values.update(overrides)
    return TracingConfig(**values)


def free_port():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


class TestBootstrapRetry:
    """Test the reconnect-until-success loop"""

    def test_two_failures_then_success(self, caplog):
        exporter = InMemorySpanExporter()
        sleep = MagicMock()
        side_effect = [
            BackendUnavailableError("connection refused"),
            BackendUnavailableError("connection refused"),
            exporter,
        ]
        with patch.object(ExporterFactory, "create_exporter", side_effect=side_effect) as create:
            with caplog.at_level(logging.ERROR, logger=TRACER_LOGGER):
                provider = initialize(make_config(exporter="grpc"), sleep=sleep)

        assert create.call_count == 3
        failures = [r for r in caplog.records if r.name == TRACER_LOGGER and r.levelno == logging.ERROR]
        assert len(failures) == 2
        assert "connection refused" in failures[0].getMessage()
        assert sleep.call_args_list == [call(1.0), call(1.0)]
        assert get_tracer_provider() is provider

    def test_any_construction_error_is_retried(self):
        sleep = MagicMock()
        side_effect = [OSError("handshake failed"), InMemorySpanExporter()]
        with patch.object(ExporterFactory, "create_exporter", side_effect=side_effect):
            initialize(make_config(), sleep=sleep)
        sleep.assert_called_once_with(1.0)
        assert is_initialized()

    def test_configured_backoff_is_used(self):
        sleep = MagicMock()
        config = make_config(retry=RetryConfig(backoff_seconds=0.25))
        side_effect = [BackendUnavailableError("down"), InMemorySpanExporter()]
        with patch.object(ExporterFactory, "create_exporter", side_effect=side_effect):
            initialize(config, sleep=sleep)
        sleep.assert_called_once_with(0.25)

    def test_max_attempts_bounds_the_loop(self):
        sleep = MagicMock()
        config = make_config(retry=RetryConfig(max_attempts=2))
        with patch.object(ExporterFactory, "create_exporter",
                          side_effect=BackendUnavailableError("down")) as create:
            with pytest.raises(BackendUnavailableError, match="after 2 attempts"):
                initialize(config, sleep=sleep)
        assert create.call_count == 2
        assert sleep.call_count == 1
        assert not is_initialized()

    def test_unreachable_grpc_backend_is_retried(self):
        sleep = MagicMock()
        config = make_config(
            exporter="grpc",
            endpoint=f"127.0.0.1:{free_port()}",
            retry=RetryConfig(max_attempts=3),
        )
        with pytest.raises(BackendUnavailableError):
            initialize(config, sleep=sleep)
        assert sleep.call_count == 2

    def test_reachable_grpc_backend(self):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as listener:
            listener.bind(("127.0.0.1", 0))
            listener.listen()
            port = listener.getsockname()[1]
            sleep = MagicMock()
            provider = initialize(make_config(exporter="grpc", endpoint=f"127.0.0.1:{port}"), sleep=sleep)
        sleep.assert_not_called()
        assert get_tracer_provider() is provider


class TestConfigurationErrors:
    """Test that malformed settings fail immediately"""

    def test_unparseable_sample_ratio(self):
        sleep = MagicMock()
        with patch.object(ExporterFactory, "create_exporter") as create:
            with pytest.raises(ConfigurationError, match="sample ratio"):
                initialize(make_config(sample_ratio="abc"), sleep=sleep)
        create.assert_not_called()
        sleep.assert_not_called()
        assert not is_initialized()

    def test_unknown_exporter(self):
        with patch.object(ExporterFactory, "create_exporter") as create:
            with pytest.raises(ConfigurationError):
                initialize(make_config(exporter="carrier-pigeon"), sleep=MagicMock())
        create.assert_not_called()

    def test_configuration_error_inside_loop_is_not_retried(self):
        sleep = MagicMock()
        with patch.object(ExporterFactory, "create_exporter",
                          side_effect=ConfigurationError("bad endpoint")):
            with pytest.raises(ConfigurationError):
                initialize(make_config(), sleep=sleep)
        sleep.assert_not_called()


class TestPublication:
    """Test the published provider and its replacement"""

    def test_accessors_before_initialize(self):
        assert not is_initialized()
        with pytest.raises(TracingNotInitializedError):
            get_tracer_provider()
        with pytest.raises(TracingNotInitializedError):
            get_tracer()

    def test_resource_and_sampler(self):
        config = make_config(sample_ratio=0.5, service_version="1.2.3")
        with patch.object(ExporterFactory, "create_exporter", return_value=InMemorySpanExporter()):
            provider = initialize(config, sleep=MagicMock())
        assert provider.resource.attributes["service.name"] == "geo"
        assert provider.resource.attributes["service.version"] == "1.2.3"
        assert "0.5" in provider.sampler.get_description()

    def test_spans_reach_the_exporter(self):
        exporter = InMemorySpanExporter()
        with patch.object(ExporterFactory, "create_exporter", return_value=exporter):
            initialize(make_config(), sleep=MagicMock())

        with get_tracer().start_as_current_span("search"):
            pass

        spans = exporter.get_finished_spans()
        assert [s.name for s in spans] == ["search"]
        assert spans[0].instrumentation_scope.name == "geo"

    def test_second_initialize_replaces_first(self):
        first = InMemorySpanExporter()
        second = InMemorySpanExporter()
        with patch.object(ExporterFactory, "create_exporter", side_effect=[first, second]):
            provider_one = initialize(make_config(service_name="geo"), sleep=MagicMock())
            provider_two = initialize(make_config(service_name="rate"), sleep=MagicMock())

        assert provider_one is not provider_two
        assert get_tracer_provider() is provider_two

        with get_tracer().start_as_current_span("after-replace"):
            pass
        with trace.get_tracer("instrumentation").start_as_current_span("via-api"):
            pass

        assert first.get_finished_spans() == ()
        names = [s.name for s in second.get_finished_spans()]
        assert names == ["after-replace", "via-api"]
        assert second.get_finished_spans()[0].resource.attributes["service.name"] == "rate"

    def test_tracers_obtained_before_replacement_follow_it(self):
        first = InMemorySpanExporter()
        second = InMemorySpanExporter()
        with patch.object(ExporterFactory, "create_exporter", side_effect=[first, second]):
            initialize(make_config(service_name="geo"), sleep=MagicMock())
            service_tracer = get_tracer()
            library_tracer = trace.get_tracer("lib")
            initialize(make_config(service_name="rate"), sleep=MagicMock())

        with service_tracer.start_as_current_span("cached-service"):
            pass
        library_tracer.start_span("cached-library").end()

        assert first.get_finished_spans() == ()
        spans = second.get_finished_spans()
        assert [s.name for s in spans] == ["cached-service", "cached-library"]
        assert spans[0].instrumentation_scope.name == "geo"
        assert spans[1].resource.attributes["service.name"] == "rate"

    def test_cached_tracer_after_shutdown_is_non_recording(self):
        exporter = InMemorySpanExporter()
        with patch.object(ExporterFactory, "create_exporter", return_value=exporter):
            initialize(make_config(), sleep=MagicMock())
        cached = get_tracer()
        shutdown()
        with cached.start_as_current_span("late") as span:
            assert not span.is_recording()
        assert exporter.get_finished_spans() == ()

    def test_api_global_resolves_to_published_provider(self):
        exporter = InMemorySpanExporter()
        with patch.object(ExporterFactory, "create_exporter", return_value=exporter):
            initialize(make_config(), sleep=MagicMock())
        with trace.get_tracer("lib").start_as_current_span("library-span"):
            pass
        assert [s.name for s in exporter.get_finished_spans()] == ["library-span"]

    def test_propagator_installed_with_provider(self):
        config = make_config(propagators=("b3multi",))
        with patch.object(ExporterFactory, "create_exporter", return_value=InMemorySpanExporter()):
            initialize(config, sleep=MagicMock())
        assert "x-b3-traceid" in get_propagator().fields

    def test_propagator_none_keeps_current(self):
        before = get_propagator()
        with patch.object(ExporterFactory, "create_exporter", return_value=InMemorySpanExporter()):
            initialize(make_config(propagators=("none",)), sleep=MagicMock())
        assert get_propagator() is before

    def test_shutdown_clears_provider(self):
        exporter = InMemorySpanExporter()
        with patch.object(ExporterFactory, "create_exporter", return_value=exporter):
            initialize(make_config(), sleep=MagicMock())
        shutdown()
        assert not is_initialized()
        shutdown()  # second call is a no-op


class TestSpanProcessor:
    """Test span processor selection"""

    def test_simple_mode(self):
        processor = create_span_processor(InMemorySpanExporter(), make_config(processor="simple").validate())
        assert isinstance(processor, SimpleSpanProcessor)
        processor.shutdown()

    def test_batch_mode(self):
        config = make_config(processor="batch", batch=BatchConfig(max_queue_size=16, max_export_batch_size=4))
        processor = create_span_processor(InMemorySpanExporter(), config.validate())
        assert isinstance(processor, BatchSpanProcessor)
        processor.shutdown()


class TestSetupTracer:
    """Test the load-and-initialize entry point"""

    def test_setup_from_settings_file(self, tmp_path):
        settings = tmp_path / "service-config.yaml"
        settings.write_text(
            "tracing:\n"
            "  exporter: console\n"
            "  sample_ratio: 1\n"
            "  processor: simple\n"
        )
        with patch.dict(os.environ, {}, clear=True):
            tracer = setup_tracer("user", settings_file=str(settings))

        assert tracer is not None
        assert get_tracer_provider().resource.attributes["service.name"] == "user"
        assert tracer_module._config.exporter.value == "console"

    def test_setup_with_invalid_env_fails_fast(self):
        with patch.dict(os.environ, {"OTEL_SAMPLE_RATIO": "lots"}, clear=True):
            with pytest.raises(ConfigurationError):
                setup_tracer("user")
        assert not is_initialized()
