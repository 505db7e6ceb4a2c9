from __future__ import annotations

from typing import Any, List

from discovery.core.errors import ConfigurationError, HandlerError
from discovery.handlers.base import Handler


class FirstOfHandler(Handler):
    """
    Tries each nested strategy in order and keeps the first that resolves.
    Proxy detection is expressed this way, e.g. an EIP-1967 slot first and an
    ``implementation()`` call second.
    """

    type = "firstOf"
    required = ("handlers",)

    def __init__(self, field, definition) -> None:
        super().__init__(field, definition)
        from discovery.handlers.registry import build_handler

        options = definition["handlers"]
        if not isinstance(options, list) or not options:
            raise ConfigurationError(f"{field}: firstOf needs a non-empty list of handlers")
        self.options: List[Handler] = [build_handler(field, d) for d in options]

    def resolve(self, provider, address, resolved) -> Any:
        errors = []
        for option in self.options:
            result = option.execute(provider, address, resolved)
            if result.ok:
                return result.value
            errors.append(f"{option.type}: {result.error}")
        raise HandlerError("no strategy resolved (" + "; ".join(errors) + ")")
