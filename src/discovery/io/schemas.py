from __future__ import annotations

from typing import Any, Dict

from discovery.core.models import DiscoveryGraph, is_address_like, normalize_address

# beyond this, JSON consumers lose precision
MAX_SAFE_INTEGER = 2 ** 53 - 1


def value_to_json(v: Any) -> Any:
    if isinstance(v, bool) or v is None:
        return v
    if isinstance(v, int):
        return v if abs(v) <= MAX_SAFE_INTEGER else str(v)
    if isinstance(v, (bytes, bytearray)):
        return "0x" + bytes(v).hex()
    if isinstance(v, str):
        return normalize_address(v) if is_address_like(v) else v
    if isinstance(v, dict):
        return {str(k): value_to_json(x) for k, x in v.items()}
    if isinstance(v, (list, tuple)):
        return [value_to_json(x) for x in v]
    return str(v)


def to_discovery_output(
    project: str,
    chain: str,
    config_hash: str,
    block_number: int,
    graph: DiscoveryGraph,
) -> Dict[str, Any]:
    contracts = []
    for c in graph.contracts.values():
        entry: Dict[str, Any] = {"address": c.address}
        if c.name:
            entry["name"] = c.name
        entry["values"] = {f.field: value_to_json(f.value) for f in c.fields if f.ok}
        errors = {f.field: f.error for f in c.fields if not f.ok}
        if errors:
            entry["errors"] = errors
        entry["childAddresses"] = list(c.child_addresses)
        contracts.append(entry)

    return {
        "name": project,
        "chain": chain,
        "blockNumber": block_number,
        "configHash": config_hash,
        "contracts": contracts,
        "eoas": list(graph.eoas),
        "boundary": list(graph.boundary),
    }


def flatten_discovered_sources(graph: DiscoveryGraph) -> Dict[str, str]:
    """
    One text blob per verified contract, files concatenated in path order.
    """
    out: Dict[str, str] = {}
    for c in graph.contracts.values():
        if c.source is None or not c.source.files:
            continue
        parts = []
        for path in sorted(c.source.files):
            parts.append(f"// File: {path}\n\n{c.source.files[path].rstrip()}\n")
        out[f"{c.source.name}-{c.address}.sol"] = "\n".join(parts)
    return out
