"""
Propagator selection

Builds the process-wide text-map propagator from format names, e.g.
``("tracecontext", "baggage")`` for W3C trace context plus W3C baggage.
"""

import logging
from typing import Iterable, Optional

from opentelemetry import propagate
from opentelemetry.baggage.propagation import W3CBaggagePropagator
from opentelemetry.propagators.b3 import B3MultiFormat, B3SingleFormat
from opentelemetry.propagators.composite import CompositePropagator
from opentelemetry.propagators.textmap import TextMapPropagator
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

from microtrace.errors import ConfigurationError

logger = logging.getLogger(__name__)

_PROPAGATORS = {
    "tracecontext": TraceContextTextMapPropagator,
    "baggage": W3CBaggagePropagator,
    "b3": B3SingleFormat,
    "b3multi": B3MultiFormat,
}


def build_propagator(names: Iterable[str]) -> Optional[TextMapPropagator]:
    """Build a composite propagator from format names

    Args:
        names: Format names; ``"none"`` or an empty list disables propagation

    Returns:
        CompositePropagator, or None when propagation is disabled

    Raises:
        ConfigurationError: Unknown format name
    """
    names = [name for name in names if name != "none"]
    if not names:
        return None

    propagators = []
    for name in names:
        factory = _PROPAGATORS.get(name)
        if factory is None:
            raise ConfigurationError(f"Unsupported propagator: {name!r}")
        propagators.append(factory())
    return CompositePropagator(propagators)


def install_propagator(propagator: TextMapPropagator) -> None:
    """Publish the propagator as the process-wide default"""
    propagate.set_global_textmap(propagator)
    logger.debug(f"Installed global propagator: {sorted(propagator.fields)}")


def get_propagator() -> TextMapPropagator:
    """Get the current process-wide propagator"""
    return propagate.get_global_textmap()
