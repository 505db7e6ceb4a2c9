from __future__ import annotations

from typing import Any, Optional

from eth_abi.exceptions import DecodingError

from discovery.core.abi import parse_event
from discovery.core.errors import ConfigurationError, DecodeFormatError, HandlerError
from discovery.core.models import is_address_like
from discovery.handlers.base import Handler, find_dependencies, resolve_template


class EventHandler(Handler):
    """
    Value of the latest matching event log, ``None`` if never emitted.

    ``topics`` filters positions 1..3; each entry is a value (address,
    number, 32-byte hex, template), a list of alternatives, or ``None`` for
    any value.
    """

    type = "event"
    required = ("event",)

    def __init__(self, field, definition) -> None:
        super().__init__(field, definition)
        self.abi = parse_event(definition["event"])
        self.select = definition.get("select")
        self.topics = definition.get("topics", [])

        if isinstance(self.select, list) and all(isinstance(s, str) for s in self.select):
            wanted = self.select
        elif isinstance(self.select, str) or self.select is None:
            wanted = [self.select] if self.select else []
        else:
            raise ConfigurationError(f"{field}: select must be a parameter name or a list of names")
        names = {p.name for p in self.abi.params}
        unknown = [s for s in wanted if s not in names]
        if unknown:
            raise ConfigurationError(f"{field}: {self.abi.name} has no parameter {', '.join(unknown)}")

        if not isinstance(self.topics, list) or len(self.topics) > 3:
            raise ConfigurationError(f"{field}: topics must be a list of at most 3 filters")
        for t in self.topics:
            if not find_dependencies(t):
                try:
                    to_topic(t)
                except (HandlerError, OverflowError) as e:
                    raise ConfigurationError(f"{field}: {e}") from e

    def resolve(self, provider, address, resolved) -> Any:
        topics = [self.abi.topic] + [to_topic(resolve_template(t, resolved)) for t in self.topics]
        logs = provider.get_logs(address, topics)
        if not logs:
            return None

        try:
            decoded = self.abi.decode_log(logs[-1])
        except (DecodingError, ValueError) as e:
            raise DecodeFormatError(f"{self.abi.name}: {e}") from e

        if self.select is None:
            return decoded
        if isinstance(self.select, str):
            return decoded[self.select]
        return {k: decoded[k] for k in self.select}


def to_topic(value: Any) -> Optional[Any]:
    """Filter value as a 32-byte topic word, the way indexed values are logged."""
    if value is None:
        return None
    if isinstance(value, list):
        return [to_topic(v) for v in value]
    if isinstance(value, bool):
        value = int(value)
    if isinstance(value, int):
        if value < 0:
            value += 2 ** 256
        return "0x" + value.to_bytes(32, "big").hex()
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).rjust(32, b"\x00").hex()
    if is_address_like(value):
        return "0x" + "00" * 12 + value[2:].lower()
    if isinstance(value, str) and value.startswith("0x") and len(value) == 66:
        return value.lower()
    raise HandlerError(f"cannot use {value!r} as a topic filter")
