"""
Trace Context Carrier

Moves trace context between a plain key-value header map and an OpenTelemetry
``Context``. Inbound requests extract, outbound calls inject. Nothing here keeps
state, so every function is safe to call from any number of requests at once.
"""

import logging
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Mapping, MutableMapping, Optional, Set

from opentelemetry import trace
from opentelemetry.context import Context, attach, detach
from opentelemetry.propagators.textmap import Getter, Setter, TextMapPropagator
from opentelemetry.trace import SpanContext

from microtrace.errors import CarrierDecodeError
from microtrace.telemetry.propagation import get_propagator

logger = logging.getLogger(__name__)


class TextMapReader(Getter[Mapping[str, str]]):
    """Read-only view of one request's header map"""

    def __init__(self, text_map: Mapping[str, str]):
        self._text_map = text_map

    def foreach_key(self, handler: Callable[[str, str], None]) -> None:
        """Visit every entry in iteration order

        Args:
            handler: Called with each (key, value); raising CarrierDecodeError
                rejects the entry and stops the walk

        Raises:
            CarrierDecodeError: The handler rejected an entry
        """
        for key, value in self._text_map.items():
            handler(key, value)

    def get(self, carrier: Mapping[str, str], key: str) -> Optional[List[str]]:
        value = carrier.get(key)
        if value is None:
            # Header names are case-insensitive on most transports
            lowered = key.lower()
            for name, candidate in carrier.items():
                if isinstance(name, str) and name.lower() == lowered:
                    value = candidate
                    break
        if value is None:
            return None
        return [value]

    def keys(self, carrier: Mapping[str, str]) -> List[str]:
        return list(carrier.keys())


class TextMapWriter(Setter[MutableMapping[str, str]]):
    """Writes propagation fields into a header map, last writer wins"""

    def set(self, carrier: MutableMapping[str, str], key: str, value: str) -> None:
        carrier[key] = value


text_map_writer = TextMapWriter()


def _check_entry(key: str, value: str) -> None:
    if not isinstance(key, str) or not key:
        raise CarrierDecodeError(f"Header name must be a non-empty string: {key!r}")
    if not key.isascii() or not key.isprintable() or " " in key:
        raise CarrierDecodeError(f"Header name is not a printable ASCII token: {key!r}")
    if not isinstance(value, str):
        raise CarrierDecodeError(f"Header {key!r} has a non-string value: {type(value).__name__}")


def _propagation_entries(reader: TextMapReader, fields: Set[str]) -> Dict[str, str]:
    """Well-formed entries of the carrier, in iteration order

    Malformed entries outside ``fields`` belong to other consumers of the
    request and are left out.

    Raises:
        CarrierDecodeError: A propagation field is malformed
    """
    entries: Dict[str, str] = {}

    def collect(key: str, value: str) -> None:
        try:
            _check_entry(key, value)
        except CarrierDecodeError as e:
            if isinstance(key, str) and key.lower() in fields:
                raise
            logger.debug(f"Skipping header unrelated to trace propagation: {e}")
            return
        entries[key] = value

    reader.foreach_key(collect)
    return entries


def extract(carrier: Optional[Mapping[str, str]],
            propagator: Optional[TextMapPropagator] = None) -> Context:
    """Decode the trace context carried by a header map

    The result depends only on ``carrier``: the current context is not consulted
    and the carrier is not modified. Unknown keys are ignored, malformed ones
    included.

    Args:
        carrier: Header name to header value
        propagator: Propagation format, the global propagator by default

    Returns:
        Context holding the remote parent span and baggage; an empty Context
        (new trace root) when the carrier is empty or one of the propagator's
        fields is malformed
    """
    if not carrier:
        return Context()
    if propagator is None:
        propagator = get_propagator()

    fields = {name.lower() for name in propagator.fields}
    try:
        entries = _propagation_entries(TextMapReader(carrier), fields)
        return propagator.extract(entries, context=Context(), getter=TextMapReader(entries))
    except (CarrierDecodeError, ValueError) as e:
        logger.debug(f"Ignoring malformed trace headers, starting a new trace: {e}")
        return Context()


def inject(context: Optional[Context] = None,
           carrier: Optional[MutableMapping[str, str]] = None,
           propagator: Optional[TextMapPropagator] = None) -> MutableMapping[str, str]:
    """Write the propagation fields of a context into a header map

    Existing keys with the same name are overwritten, all other keys are kept.

    Args:
        context: Context to propagate, the current context by default
        carrier: Header map to write into, a new dict when omitted
        propagator: Propagation format, the global propagator by default

    Returns:
        The carrier that was written to
    """
    if carrier is None:
        carrier = {}
    if propagator is None:
        propagator = get_propagator()
    propagator.inject(carrier, context=context, setter=text_map_writer)
    return carrier


@contextmanager
def use_carrier_context(carrier: Optional[Mapping[str, str]],
                        propagator: Optional[TextMapPropagator] = None) -> Iterator[Context]:
    """Make the context carried by ``carrier`` current for the enclosed block

    Spans started inside the block become children of the remote parent.

    Yields:
        The extracted context
    """
    context = extract(carrier, propagator)
    token = attach(context)
    try:
        yield context
    finally:
        detach(token)


def span_context_of(context: Optional[Context]) -> SpanContext:
    """The span context a context carries; invalid for a new trace root"""
    return trace.get_current_span(context).get_span_context()
