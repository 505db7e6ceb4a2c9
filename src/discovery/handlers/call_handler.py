from __future__ import annotations

from typing import Any

from discovery.core.abi import parse_function
from discovery.core.errors import CallRevertedError, ConfigurationError
from discovery.handlers.base import Handler, resolve_template


class CallHandler(Handler):
    """
    Calls a view method, optionally with arguments taken from sibling fields.

    ``expectRevert`` turns a revert into a ``None`` value instead of an error.
    """

    type = "call"
    required = ("method",)

    def __init__(self, field, definition) -> None:
        super().__init__(field, definition)
        self.method = definition["method"]
        self.abi = parse_function(self.method)
        self.args = list(definition.get("args", []))
        if len(self.args) != len(self.abi.inputs):
            raise ConfigurationError(
                f"{field}: {self.abi.signature} takes {len(self.abi.inputs)} argument(s), {len(self.args)} given"
            )
        self.expect_revert = bool(definition.get("expectRevert", False))

    def resolve(self, provider, address, resolved) -> Any:
        args = [resolve_template(a, resolved) for a in self.args]
        try:
            result = provider.call(address, self.method, args)
        except CallRevertedError:
            if self.expect_revert:
                return None
            raise
        return unwrap(result)


def unwrap(result: tuple) -> Any:
    if len(result) == 1:
        return result[0]
    return list(result)
