from __future__ import annotations

from typing import Any, Dict, List, Type

from discovery.core.errors import ConfigurationError
from discovery.handlers.arbitrum_dac_keyset_handler import ArbitrumDACKeysetHandler
from discovery.handlers.array_handler import ArrayHandler
from discovery.handlers.base import Handler
from discovery.handlers.call_handler import CallHandler
from discovery.handlers.constant_handler import ConstantHandler
from discovery.handlers.event_handler import EventHandler
from discovery.handlers.first_of_handler import FirstOfHandler
from discovery.handlers.storage_handler import StorageHandler

# closed set of handler variants, keyed by the definition's "type"
HANDLER_TYPES: Dict[str, Type[Handler]] = {
    cls.type: cls
    for cls in (
        ConstantHandler,
        CallHandler,
        StorageHandler,
        EventHandler,
        ArrayHandler,
        FirstOfHandler,
        ArbitrumDACKeysetHandler,
    )
}


def build_handler(field: str, definition: Dict[str, Any]) -> Handler:
    if not isinstance(definition, dict):
        raise ConfigurationError(f"{field}: handler definition must be an object")
    kind = definition.get("type")
    cls = HANDLER_TYPES.get(kind) if isinstance(kind, str) else None
    if cls is None:
        raise ConfigurationError(f"{field}: unknown handler type {kind!r}")
    try:
        return cls(field, definition)
    except (TypeError, ValueError, KeyError, AttributeError) as e:
        raise ConfigurationError(f"{field}: invalid '{cls.type}' handler definition: {e!r}") from e


def build_handlers(fields: Dict[str, Dict[str, Any]]) -> List[Handler]:
    """Build a contract's handlers in execution order."""
    return order_handlers([build_handler(name, d) for name, d in fields.items()])


def order_handlers(handlers: List[Handler]) -> List[Handler]:
    """
    Topological order over declared dependencies, stable with respect to
    declaration order. Cycles and unknown dependencies are configuration
    errors.
    """
    names = {h.field for h in handlers}
    for h in handlers:
        unknown = [d for d in h.dependencies if d not in names]
        if unknown:
            raise ConfigurationError(f"{h.field}: depends on unknown field(s) {', '.join(unknown)}")
        if h.field in h.dependencies:
            raise ConfigurationError(f"{h.field}: depends on itself")

    ordered: List[Handler] = []
    placed = set()
    pending = list(handlers)
    while pending:
        ready = next((h for h in pending if all(d in placed for d in h.dependencies)), None)
        if ready is None:
            cycle = ", ".join(h.field for h in pending)
            raise ConfigurationError(f"Cyclic handler dependencies between: {cycle}")
        ordered.append(ready)
        placed.add(ready.field)
        pending.remove(ready)
    return ordered
