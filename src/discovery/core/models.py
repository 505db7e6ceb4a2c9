from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from eth_utils import is_hex_address, keccak, to_checksum_address

from discovery.config import settings
from discovery.core.dto import ContractSource
from discovery.core.errors import ConfigurationError


ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def normalize_address(address: str) -> str:
    if not is_address_like(address):
        raise ValueError(f"Not an address: {address!r}")
    return to_checksum_address(address)


def is_address_like(value: Any) -> bool:
    return isinstance(value, str) and len(value) == 42 and is_hex_address(value)


def hash_config(raw: Dict[str, Any]) -> str:
    canonical = json.dumps(raw, sort_keys=True, separators=(",", ":"))
    return "0x" + keccak(text=canonical).hex()



# Configuration models

@dataclass(frozen=True)
class ContractOverrides:
    """
    Per-contract discovery definition: named fields bound to handler definitions.
    """

    address: str
    fields: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    ignore_relatives: List[str] = field(default_factory=list)   # fields not followed
    ignore_discovery: bool = False                               # never expanded


@dataclass(frozen=True)
class DiscoveryConfig:
    """
    Run configuration for one project on one chain. Immutable per run.
    """

    name: str
    chain: str
    initial_addresses: List[str]
    max_addresses: int = settings.DEFAULT_MAX_ADDRESSES
    max_depth: int = settings.DEFAULT_MAX_DEPTH
    overrides: Dict[str, ContractOverrides] = field(default_factory=dict)
    hash: str = ""

    @classmethod
    def from_dict(cls, raw: Dict[str, Any], hash: Optional[str] = None) -> "DiscoveryConfig":
        try:
            name = raw["name"]
            chain = raw.get("chain", "ethereum")
            initial = [normalize_address(a) for a in raw.get("initialAddresses", [])]
            overrides: Dict[str, ContractOverrides] = {}
            for addr, o in (raw.get("overrides") or {}).items():
                key = normalize_address(addr)
                overrides[key] = ContractOverrides(
                    address=key,
                    fields=dict(o.get("fields") or {}),
                    ignore_relatives=list(o.get("ignoreRelatives") or []),
                    ignore_discovery=bool(o.get("ignoreDiscovery", False)),
                )
            max_addresses = int(raw.get("maxAddresses", settings.DEFAULT_MAX_ADDRESSES))
            max_depth = int(raw.get("maxDepth", settings.DEFAULT_MAX_DEPTH))
        except (KeyError, ValueError, TypeError, AttributeError) as e:
            raise ConfigurationError(f"Invalid discovery config: {e!r}") from e

        return cls(
            name=name,
            chain=chain,
            initial_addresses=initial,
            max_addresses=max_addresses,
            max_depth=max_depth,
            overrides=overrides,
            hash=hash if hash is not None else hash_config(raw),
        )

    def to_raw(self) -> Dict[str, Any]:
        raw: Dict[str, Any] = {
            "name": self.name,
            "chain": self.chain,
            "initialAddresses": list(self.initial_addresses),
            "maxAddresses": self.max_addresses,
            "maxDepth": self.max_depth,
        }
        if self.overrides:
            raw["overrides"] = {
                a: {
                    "fields": o.fields,
                    "ignoreRelatives": o.ignore_relatives,
                    "ignoreDiscovery": o.ignore_discovery,
                }
                for a, o in self.overrides.items()
            }
        return raw

    def get_overrides(self, address: str) -> ContractOverrides:
        return self.overrides.get(address, ContractOverrides(address=address))



# Graph models

@dataclass(frozen=True)
class FieldResult:

    field: str
    value: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class DiscoveredContract:

    address: str
    block_number: int
    depth: int
    name: Optional[str] = None
    source: Optional[ContractSource] = None
    fields: List[FieldResult] = field(default_factory=list)
    child_addresses: List[str] = field(default_factory=list)

    def get_field(self, name: str) -> Optional[FieldResult]:
        return next((f for f in self.fields if f.field == name), None)


@dataclass
class DiscoveryGraph:
    """
    Contracts resolved at one block, keyed by address in discovery order.
    Read-only once frozen.
    """

    block_number: int
    contracts: Dict[str, DiscoveredContract] = field(default_factory=dict)
    eoas: List[str] = field(default_factory=list)
    boundary: List[str] = field(default_factory=list)
    frozen: bool = False

    def add_contract(self, contract: DiscoveredContract) -> None:
        self._check_writable()
        if contract.address in self.contracts:
            raise ValueError(f"{contract.address} already discovered")
        self.contracts[contract.address] = contract

    def add_eoa(self, address: str) -> None:
        self._check_writable()
        self.eoas.append(address)

    def add_boundary(self, address: str) -> None:
        self._check_writable()
        self.boundary.append(address)

    def freeze(self) -> "DiscoveryGraph":
        self.frozen = True
        return self

    def _check_writable(self) -> None:
        if self.frozen:
            raise RuntimeError("Discovery graph is read-only")
