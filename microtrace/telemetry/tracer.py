"""
OpenTelemetry Tracer Bootstrap

Builds the span pipeline (exporter, span processor, tracer provider) once at
process start and publishes it as the process-wide tracer provider, together with
the global propagator.

The bootstrap blocks until the tracing backend is reachable: connectivity failures
are logged and retried after a fixed backoff, with no attempt ceiling unless one is
configured. Only malformed settings abort it.
"""

import logging
import threading
import time
from typing import Callable, Optional

from opentelemetry import trace
from opentelemetry.propagators.textmap import TextMapPropagator
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import SpanProcessor, TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SimpleSpanProcessor,
    SpanExporter,
)
from opentelemetry.sdk.trace.sampling import ParentBased, Sampler, TraceIdRatioBased

from microtrace.config import ProcessorMode, TracingConfig
from microtrace.errors import (
    BackendUnavailableError,
    ConfigurationError,
    TracingNotInitializedError,
)
from microtrace.exporters.exporter_factory import ExporterFactory
from microtrace.telemetry.propagation import build_propagator, install_propagator

logger = logging.getLogger(__name__)

# Published state, written only by _publish() and shutdown()
_lock = threading.Lock()
_provider: Optional[TracerProvider] = None
_config: Optional[TracingConfig] = None
_api_provider_registered = False


class _PublishedTracer(trace.Tracer):
    """Tracer bound to the published provider rather than to one provider
    instance: a tracer obtained before a replacement starts its spans on the
    replacement."""

    def __init__(self, *args, **kwargs):
        self._args = args
        self._kwargs = kwargs
        self._bound = (None, None)

    def _current(self) -> trace.Tracer:
        provider = _provider
        if provider is None:
            return trace.NoOpTracer()
        bound_provider, tracer = self._bound
        if bound_provider is not provider:
            tracer = provider.get_tracer(*self._args, **self._kwargs)
            self._bound = (provider, tracer)
        return tracer

    def start_span(self, *args, **kwargs) -> trace.Span:
        return self._current().start_span(*args, **kwargs)

    def start_as_current_span(self, *args, **kwargs):
        return self._current().start_as_current_span(*args, **kwargs)


class _PublishedTracerProvider(trace.TracerProvider):
    """Registered once as the OpenTelemetry API global"""

    def get_tracer(self, *args, **kwargs) -> trace.Tracer:
        return _PublishedTracer(*args, **kwargs)


_api_provider = _PublishedTracerProvider()


def create_resource(config: TracingConfig) -> Resource:
    """Resource descriptor attached to every span of this process"""
    attributes = {SERVICE_NAME: config.service_name}
    if config.service_version:
        attributes[SERVICE_VERSION] = config.service_version
    return Resource.create(attributes)


def create_sampler(sample_ratio: float) -> Sampler:
    """Ratio sampler for new traces, remote parents keep their decision"""
    return ParentBased(TraceIdRatioBased(sample_ratio))


def create_span_processor(exporter: SpanExporter, config: TracingConfig) -> SpanProcessor:
    """Wrap the exporter in a simple or batch span processor

    The batch processor drops spans once its queue is full, it never blocks the
    request that ended the span.
    """
    if ProcessorMode.parse(config.processor) == ProcessorMode.SIMPLE:
        return SimpleSpanProcessor(exporter)
    batch = config.batch
    return BatchSpanProcessor(
        exporter,
        max_queue_size=batch.max_queue_size,
        schedule_delay_millis=batch.schedule_delay_ms,
        max_export_batch_size=batch.max_export_batch_size,
        export_timeout_millis=batch.export_timeout_ms,
    )


def initialize(config: TracingConfig,
               sleep: Callable[[float], None] = time.sleep) -> TracerProvider:
    """Build and publish the process-wide tracer provider

    Call once at process start, before serving traffic. A second call replaces
    the previous provider, which is shut down.

    Args:
        config: Tracing settings
        sleep: Called with the backoff between failed attempts

    Returns:
        TracerProvider: the published provider

    Raises:
        ConfigurationError: The settings are malformed; raised before any attempt
        BackendUnavailableError: Only when ``config.retry.max_attempts`` is set
            and every attempt failed
    """
    config = config.validate()
    propagator = build_propagator(config.propagators)
    resource = create_resource(config)
    sampler = create_sampler(config.sample_ratio)
    backoff = config.retry.backoff_seconds

    logger.info(
        f"Setting up tracer for {config.service_name}: exporter {config.exporter.value}, "
        f"endpoint {config.resolved_endpoint() or '-'}, sample ratio {config.sample_ratio}, "
        f"processor {config.processor.value}"
    )

    attempt = 0
    while True:
        attempt += 1
        exporter = None
        processor = None
        try:
            exporter = ExporterFactory.create_exporter(config)
            processor = create_span_processor(exporter, config)
            provider = TracerProvider(resource=resource, sampler=sampler)
            provider.add_span_processor(processor)
            break
        except ConfigurationError:
            _discard(exporter, processor)
            raise
        except Exception as e:
            _discard(exporter, processor)
            if config.retry.max_attempts is not None and attempt >= config.retry.max_attempts:
                raise BackendUnavailableError(
                    f"Failed to set up tracer after {attempt} attempts: {e}"
                ) from e
            logger.error(f"Failed to set up tracer (attempt {attempt}): {e}, retrying in {backoff}s ...")
            sleep(backoff)

    _publish(provider, config, propagator)
    logger.info(f"OpenTelemetry tracer initialized for {config.service_name} after {attempt} attempt(s)")
    return provider


def _discard(exporter: Optional[SpanExporter], processor: Optional[SpanProcessor]) -> None:
    """Release what a failed attempt built"""
    try:
        if processor is not None:
            processor.shutdown()
        elif exporter is not None:
            exporter.shutdown()
    except Exception as e:
        logger.warning(f"Error while releasing exporter of failed attempt: {e}")


def _publish(provider: TracerProvider, config: TracingConfig,
             propagator: Optional[TextMapPropagator]) -> None:
    global _provider, _config, _api_provider_registered

    with _lock:
        previous = _provider
        _provider = provider
        _config = config
        if propagator is not None:
            install_propagator(propagator)
        if not _api_provider_registered:
            trace.set_tracer_provider(_api_provider)
            _api_provider_registered = True
            if trace.get_tracer_provider() is not _api_provider:
                logger.warning(
                    "OpenTelemetry global tracer provider was already set elsewhere; "
                    "use microtrace.get_tracer() to reach the published provider"
                )

    if previous is not None and previous is not provider:
        logger.info("Replacing previously published tracer provider")
        previous.shutdown()


def is_initialized() -> bool:
    return _provider is not None


def get_tracer_provider() -> TracerProvider:
    """Get the published tracer provider

    Raises:
        TracingNotInitializedError: initialize() has not completed yet
    """
    provider = _provider
    if provider is None:
        raise TracingNotInitializedError("Tracer provider requested before initialize()")
    return provider


def get_tracer(name: Optional[str] = None, version: Optional[str] = None) -> trace.Tracer:
    """Get a tracer that follows the published provider across replacements

    Args:
        name: Instrumentation scope name, the service name by default
        version: Instrumentation scope version, the service version by default
    """
    with _lock:
        provider = _provider
        config = _config
    if provider is None or config is None:
        raise TracingNotInitializedError("Tracer requested before initialize()")
    return _PublishedTracer(name or config.service_name, version or config.service_version)


def setup_tracer(service_name: str, settings_file: Optional[str] = None) -> trace.Tracer:
    """Load settings, run the bootstrap and return the service's tracer

    Args:
        service_name: Service name
        settings_file: Optional YAML/JSON settings file
    """
    config = TracingConfig.load(service_name=service_name, settings_file=settings_file)
    initialize(config)
    return get_tracer()


def shutdown() -> None:
    """Flush and shut down the published provider"""
    global _provider, _config

    with _lock:
        provider = _provider
        _provider = None
        _config = None
    if provider is not None:
        provider.shutdown()
        logger.info("OpenTelemetry tracer provider shut down")
