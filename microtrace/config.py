"""
Configuration settings for the tracing pipeline

Settings are resolved once at process start. Environment variables override the
settings file, which overrides the built-in defaults.
"""
import os
import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml

from microtrace.errors import ConfigurationError


class ExporterType(Enum):
    """Supported exporter transports"""
    GRPC = "grpc"
    HTTP = "http"
    JAEGER = "jaeger"  # Jaeger's native OTLP/gRPC receiver
    CONSOLE = "console"

    @classmethod
    def parse(cls, value: Any) -> "ExporterType":
        if isinstance(value, cls):
            return value
        name = str(value).strip().lower()
        name = _EXPORTER_ALIASES.get(name, name)
        try:
            return cls(name)
        except ValueError:
            raise ConfigurationError(f"Unsupported exporter type: {value!r}") from None


class ProcessorMode(Enum):
    """Span processor modes"""
    SIMPLE = "simple"  # export each span as it ends
    BATCH = "batch"  # bounded queue, drained on a timer

    @classmethod
    def parse(cls, value: Any) -> "ProcessorMode":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ConfigurationError(f"Unsupported span processor mode: {value!r}") from None


_EXPORTER_ALIASES = {
    "otlp": "grpc",
    "otlp_grpc": "grpc",
    "otlp_proto_grpc": "grpc",
    "otlp_http": "http",
    "otlp_proto_http": "http",
    "stdout": "console",
}

DEFAULT_ENDPOINTS = {
    ExporterType.GRPC: "localhost:4317",
    ExporterType.HTTP: "http://localhost:4318",
    ExporterType.JAEGER: "localhost:4317",
    ExporterType.CONSOLE: "",
}

HTTP_TRACES_PATH = "/v1/traces"

DEFAULT_SERVICE_NAME = "unknown_service"
DEFAULT_SAMPLE_RATIO = 0.01
DEFAULT_PROPAGATORS = ("tracecontext", "baggage")
DEFAULT_MAX_EXPORT_BATCH_SIZE = 512
PROPAGATOR_NAMES = ("tracecontext", "baggage", "b3", "b3multi", "none")

SETTINGS_FILE_ENV = "TRACING_SETTINGS_FILE"


@dataclass(frozen=True)
class BatchConfig:
    """Tuning for the batch span processor"""
    max_queue_size: int = 2048
    schedule_delay_ms: int = 5000
    # None: DEFAULT_MAX_EXPORT_BATCH_SIZE, capped at max_queue_size
    max_export_batch_size: Optional[int] = None
    export_timeout_ms: int = 30000


@dataclass(frozen=True)
class RetryConfig:
    """Bootstrap retry policy.

    The backoff is fixed. ``max_attempts=None`` means the bootstrap retries
    until the backend becomes reachable.
    """
    backoff_seconds: float = 1.0
    max_attempts: Optional[int] = None


@dataclass(frozen=True)
class TracingConfig:
    """Immutable settings for one process's tracing pipeline"""
    service_name: str = DEFAULT_SERVICE_NAME
    exporter: ExporterType = ExporterType.GRPC
    endpoint: Optional[str] = None
    sample_ratio: float = DEFAULT_SAMPLE_RATIO
    processor: ProcessorMode = ProcessorMode.BATCH
    propagators: Tuple[str, ...] = DEFAULT_PROPAGATORS
    service_version: Optional[str] = None
    insecure: bool = True
    export_timeout_seconds: float = 10.0
    probe_backend: bool = True
    batch: BatchConfig = field(default_factory=BatchConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)

    def validate(self) -> "TracingConfig":
        """Check every field and return a normalized copy.

        Raises:
            ConfigurationError: a value is malformed
        """
        if not self.service_name or not str(self.service_name).strip():
            raise ConfigurationError("Service name must not be empty")

        propagators = _parse_propagators(self.propagators)

        return dataclasses.replace(
            self,
            service_name=str(self.service_name).strip(),
            exporter=ExporterType.parse(self.exporter),
            processor=ProcessorMode.parse(self.processor),
            sample_ratio=parse_sample_ratio(self.sample_ratio),
            propagators=propagators,
            export_timeout_seconds=_parse_float(
                self.export_timeout_seconds, "export_timeout_seconds", minimum=0.0
            ),
            insecure=_parse_bool(self.insecure, "insecure"),
            probe_backend=_parse_bool(self.probe_backend, "probe_backend"),
            batch=_parse_batch(self.batch),
            retry=_parse_retry(self.retry),
        )

    def resolved_endpoint(self) -> str:
        """Endpoint to export to: the configured one or the transport's default.

        An OTLP/HTTP endpoint is a base URL: ``/v1/traces`` is appended unless
        the path already ends with it.
        """
        exporter = ExporterType.parse(self.exporter)
        endpoint = self.endpoint or DEFAULT_ENDPOINTS[exporter]
        if exporter == ExporterType.HTTP:
            if "://" not in endpoint:
                secure = not _parse_bool(self.insecure, "insecure")
                endpoint = ("https://" if secure else "http://") + endpoint
            scheme, _, rest = endpoint.partition("://")
            rest = rest.rstrip("/")
            if not rest.endswith(HTTP_TRACES_PATH):
                rest = f"{rest}{HTTP_TRACES_PATH}"
            endpoint = f"{scheme}://{rest}"
        return endpoint

    @classmethod
    def from_env(cls, service_name: Optional[str] = None,
                 env: Optional[Mapping[str, str]] = None) -> "TracingConfig":
        """Create config from environment variables only"""
        return cls.load(service_name=service_name, settings_file=None, env=env)

    @classmethod
    def from_file(cls, path: str, service_name: Optional[str] = None) -> "TracingConfig":
        """Create config from a settings file, ignoring the environment"""
        return cls.load(service_name=service_name, settings_file=path, env={})

    @classmethod
    def load(cls, service_name: Optional[str] = None,
             settings_file: Optional[str] = None,
             env: Optional[Mapping[str, str]] = None) -> "TracingConfig":
        """Resolve settings: environment over settings file over defaults.

        Args:
            service_name: Explicit service identity, wins over every source
            settings_file: YAML/JSON settings path; ``TRACING_SETTINGS_FILE`` is
                used when omitted
            env: Environment mapping, ``os.environ`` when omitted

        Raises:
            ConfigurationError: a source is unreadable or a value is malformed
        """
        if env is None:
            env = os.environ

        values: Dict[str, Any] = {}
        if settings_file is None:
            settings_file = env.get(SETTINGS_FILE_ENV)
        if settings_file:
            values.update(_read_settings_file(settings_file))
        for key, value in _read_env(env).items():
            if key in ("batch", "retry"):
                values[key] = {**values.get(key, {}), **value}
            else:
                values[key] = value

        if service_name:
            values["service_name"] = service_name

        batch = BatchConfig(**values.pop("batch", {}))
        retry = RetryConfig(**values.pop("retry", {}))
        return cls(batch=batch, retry=retry, **values).validate()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging"""
        return {
            "service_name": self.service_name,
            "service_version": self.service_version,
            "exporter": ExporterType.parse(self.exporter).value,
            "endpoint": self.resolved_endpoint(),
            "sample_ratio": self.sample_ratio,
            "processor": ProcessorMode.parse(self.processor).value,
            "propagators": list(self.propagators),
            "probe_backend": self.probe_backend,
            "retry_backoff_seconds": self.retry.backoff_seconds,
        }


def parse_sample_ratio(value: Any) -> float:
    """Parse a sampling ratio. Values above 1 are clamped to 1.

    Raises:
        ConfigurationError: the value is not a number or is negative
    """
    if isinstance(value, bool):
        raise ConfigurationError(f"Invalid sample ratio: {value!r}")
    try:
        ratio = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Invalid sample ratio: {value!r}") from None
    if ratio != ratio or ratio < 0:
        raise ConfigurationError(f"Sample ratio must be within [0, 1]: {value!r}")
    return min(ratio, 1.0)


def _parse_float(value: Any, name: str, minimum: Optional[float] = None) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Invalid value for {name}: {value!r}") from None
    if minimum is not None and result < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}: {value!r}")
    return result


def _parse_int(value: Any, name: str, minimum: int = 1) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(f"Invalid value for {name}: {value!r}")
    try:
        result = int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Invalid value for {name}: {value!r}") from None
    if result < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}: {value!r}")
    return result


def _parse_bool(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("1", "true", "yes", "on"):
        return True
    if text in ("0", "false", "no", "off"):
        return False
    raise ConfigurationError(f"Invalid boolean for {name}: {value!r}")


def _parse_propagators(value: Any) -> Tuple[str, ...]:
    if isinstance(value, str):
        value = value.split(",")
    names = tuple(str(name).strip().lower() for name in value if str(name).strip())
    for name in names:
        if name not in PROPAGATOR_NAMES:
            raise ConfigurationError(f"Unsupported propagator: {name!r}")
    return names


def _parse_batch(batch: BatchConfig) -> BatchConfig:
    result = BatchConfig(
        max_queue_size=_parse_int(batch.max_queue_size, "max_queue_size"),
        schedule_delay_ms=_parse_int(batch.schedule_delay_ms, "schedule_delay_ms"),
        max_export_batch_size=_parse_int(batch.max_export_batch_size, "max_export_batch_size")
        if batch.max_export_batch_size is not None else None,
        export_timeout_ms=_parse_int(batch.export_timeout_ms, "export_timeout_ms"),
    )
    if result.max_export_batch_size is None:
        return dataclasses.replace(
            result,
            max_export_batch_size=min(DEFAULT_MAX_EXPORT_BATCH_SIZE, result.max_queue_size),
        )
    if result.max_export_batch_size > result.max_queue_size:
        raise ConfigurationError("max_export_batch_size must not exceed max_queue_size")
    return result


def _parse_retry(retry: RetryConfig) -> RetryConfig:
    max_attempts = retry.max_attempts
    if max_attempts is not None:
        max_attempts = _parse_int(max_attempts, "max_attempts")
    return RetryConfig(
        backoff_seconds=_parse_float(retry.backoff_seconds, "backoff_seconds", minimum=0.0),
        max_attempts=max_attempts,
    )


def _read_settings_file(path: str) -> Dict[str, Any]:
    """Read the tracing section of a YAML or JSON settings file"""
    try:
        with open(path, "r", encoding="utf-8") as f:
            document = yaml.safe_load(f)
    except OSError as e:
        raise ConfigurationError(f"Cannot read settings file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Cannot parse settings file {path}: {e}") from e

    if document is None:
        return {}
    if not isinstance(document, dict):
        raise ConfigurationError(f"Settings file {path} must contain a mapping")

    section = document.get("tracing", {})
    if section is None:
        section = {}
    if not isinstance(section, dict):
        raise ConfigurationError(f"'tracing' section of {path} must be a mapping")

    values: Dict[str, Any] = {}
    # Service configs of the form {"jaegerAddress": "jaeger:4317", ...}
    if document.get("jaegerAddress"):
        values["endpoint"] = str(document["jaegerAddress"])

    for key in ("service_name", "service_version", "endpoint", "exporter",
                "sample_ratio", "processor"):
        if section.get(key) is not None:
            values[key] = section[key]
    if section.get("propagators") is not None:
        values["propagators"] = section["propagators"]
    if section.get("insecure") is not None:
        values["insecure"] = _parse_bool(section["insecure"], "insecure")
    if section.get("probe_backend") is not None:
        values["probe_backend"] = _parse_bool(section["probe_backend"], "probe_backend")
    if section.get("export_timeout_seconds") is not None:
        values["export_timeout_seconds"] = section["export_timeout_seconds"]

    for nested, known in (("batch", BatchConfig), ("retry", RetryConfig)):
        data = section.get(nested)
        if data is None:
            continue
        if not isinstance(data, dict):
            raise ConfigurationError(f"'{nested}' section of {path} must be a mapping")
        allowed = {f.name for f in dataclasses.fields(known)}
        unknown = set(data) - allowed
        if unknown:
            raise ConfigurationError(f"Unknown {nested} settings in {path}: {sorted(unknown)}")
        values[nested] = dict(data)

    return values


def _read_env(env: Mapping[str, str]) -> Dict[str, Any]:
    """Collect tracing settings present in the environment"""
    values: Dict[str, Any] = {}

    service_name = env.get("OTEL_SERVICE_NAME") or env.get("SERVICE_NAME")
    if service_name:
        values["service_name"] = service_name
    if env.get("SERVICE_VERSION"):
        values["service_version"] = env["SERVICE_VERSION"]
    if env.get("OTEL_TRACES_EXPORTER"):
        values["exporter"] = env["OTEL_TRACES_EXPORTER"]
    if env.get("OTEL_EXPORTER_OTLP_ENDPOINT"):
        values["endpoint"] = env["OTEL_EXPORTER_OTLP_ENDPOINT"]
    if env.get("OTEL_EXPORTER_OTLP_INSECURE"):
        values["insecure"] = _parse_bool(env["OTEL_EXPORTER_OTLP_INSECURE"], "OTEL_EXPORTER_OTLP_INSECURE")
    if "OTEL_SAMPLE_RATIO" in env:
        values["sample_ratio"] = env["OTEL_SAMPLE_RATIO"]
    if env.get("OTEL_SPAN_PROCESSOR"):
        values["processor"] = env["OTEL_SPAN_PROCESSOR"]
    if env.get("OTEL_PROPAGATORS"):
        values["propagators"] = env["OTEL_PROPAGATORS"]
    if env.get("TRACING_PROBE_BACKEND"):
        values["probe_backend"] = _parse_bool(env["TRACING_PROBE_BACKEND"], "TRACING_PROBE_BACKEND")

    batch: Dict[str, Any] = {}
    for var, key in (("OTEL_BSP_MAX_QUEUE_SIZE", "max_queue_size"),
                     ("OTEL_BSP_SCHEDULE_DELAY", "schedule_delay_ms"),
                     ("OTEL_BSP_MAX_EXPORT_BATCH_SIZE", "max_export_batch_size"),
                     ("OTEL_BSP_EXPORT_TIMEOUT", "export_timeout_ms")):
        if env.get(var):
            batch[key] = env[var]
    if batch:
        values["batch"] = batch

    if env.get("TRACING_RETRY_BACKOFF_SECONDS"):
        values["retry"] = {"backoff_seconds": env["TRACING_RETRY_BACKOFF_SECONDS"]}

    return values
