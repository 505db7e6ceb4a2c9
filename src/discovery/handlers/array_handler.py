from __future__ import annotations

from typing import Any, List

from discovery.core.abi import parse_function
from discovery.core.errors import CallRevertedError, ConfigurationError, HandlerError
from discovery.handlers.base import Handler
from discovery.handlers.call_handler import unwrap


class ArrayHandler(Handler):
    """
    Enumerates an indexed getter (``validators(0)``, ``validators(1)``, ...)
    until it reverts.
    """

    type = "array"
    required = ("method",)

    def __init__(self, field, definition) -> None:
        super().__init__(field, definition)
        self.method = definition["method"]
        self.abi = parse_function(self.method)
        if len(self.abi.inputs) != 1 or not self.abi.inputs[0].startswith("uint"):
            raise ConfigurationError(f"{field}: {self.abi.signature} must take a single uint index")
        self.max_length = self.int_param("maxLength", 100)
        self.start_index = self.int_param("startIndex", 0)
        if self.max_length < 0 or self.start_index < 0:
            raise ConfigurationError(f"{field}: maxLength and startIndex must not be negative")

    def resolve(self, provider, address, resolved) -> List[Any]:
        values: List[Any] = []
        index = self.start_index
        while True:
            try:
                result = provider.call(address, self.method, [index])
            except CallRevertedError:
                return values
            if len(values) >= self.max_length:
                raise HandlerError(f"Too many values. Provide a higher maxLength value (now {self.max_length})")
            values.append(unwrap(result))
            index += 1
