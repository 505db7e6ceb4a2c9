from __future__ import annotations

from typing import Any

from eth_abi import encode
from eth_abi.exceptions import EncodingError
from eth_utils import keccak, to_checksum_address

from discovery.core.errors import ConfigurationError, HandlerError
from discovery.core.models import is_address_like
from discovery.handlers.base import Handler, resolve_template

RETURN_TYPES = ("bytes", "number", "address")


class StorageHandler(Handler):
    """
    Reads one storage word.

    ``slot`` is a number, a hex string, a template, or a list
    ``[base, key, ...]`` addressing a (nested) mapping entry. ``offset`` is
    added to the final slot. ``returnType`` decodes the word.
    """

    type = "storage"
    required = ("slot",)

    def __init__(self, field, definition) -> None:
        super().__init__(field, definition)
        self.slot = definition["slot"]
        self.offset = self.int_param("offset", 0)
        self.return_type = definition.get("returnType", "bytes")
        if self.return_type not in RETURN_TYPES:
            raise ConfigurationError(f"{field}: unknown returnType {self.return_type!r}")
        if not self.dependencies:
            try:
                compute_slot(self.slot)
            except (HandlerError, EncodingError) as e:
                raise ConfigurationError(f"{field}: {e}") from e

    def resolve(self, provider, address, resolved) -> Any:
        slot = compute_slot(resolve_template(self.slot, resolved)) + self.offset
        word = provider.get_storage(address, slot)
        return decode_word(word, self.return_type)


def compute_slot(slot: Any) -> int:
    if isinstance(slot, list):
        if not slot:
            raise HandlerError("empty slot path")
        base = compute_slot(slot[0])
        for key in slot[1:]:
            base = _mapping_slot(base, key)
        return base
    return _to_int(slot)


def decode_word(word: bytes, return_type: str) -> Any:
    if return_type == "number":
        return int.from_bytes(word, "big")
    if return_type == "address":
        return to_checksum_address(word[-20:])
    return "0x" + word.hex()


def _mapping_slot(base: int, key: Any) -> int:
    if is_address_like(key):
        encoded = encode(["address", "uint256"], [to_checksum_address(key), base])
    else:
        encoded = encode(["uint256", "uint256"], [_to_int(key), base])
    return int.from_bytes(keccak(encoded), "big")


def _to_int(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int) and value >= 0:
        return value
    if isinstance(value, str):
        try:
            parsed = int(value, 0)
        except ValueError:
            parsed = -1
        if parsed >= 0:
            return parsed
    raise HandlerError(f"cannot use {value!r} as a storage slot")
