from __future__ import annotations

import logging
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, List, Optional, Set

from discovery.core.errors import ConfigurationError
from discovery.core.models import (
    ZERO_ADDRESS,
    DiscoveredContract,
    DiscoveryConfig,
    DiscoveryGraph,
    FieldResult,
    is_address_like,
    normalize_address,
)
from discovery.handlers.base import Handler
from discovery.handlers.registry import build_handlers
from discovery.provider.caching_provider import CachingProvider

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, dict], None]


@dataclass(frozen=True)
class _QueueItem:
    address: str
    depth: int


class DiscoveryEngine:
    """
    Resolves the contract graph reachable from a project's initial addresses.

    - Traversal: breadth-first over an explicit FIFO worklist, bounded by
      max_depth and max_addresses
    - Per contract: handlers run sequentially in dependency order
    - Children: every address found anywhere in the field values

    With max_workers > 1 a batch of contracts is resolved on a thread pool;
    results are applied in worklist order, so the graph is identical to a
    sequential run.
    """

    def __init__(self, max_workers: int = 1, on_progress: Optional[ProgressCallback] = None) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self.max_workers = max_workers
        self.on_progress = on_progress

    def discover(self, provider: CachingProvider, config: DiscoveryConfig) -> DiscoveryGraph:
        self._validate(config)

        # built up front so a misconfigured contract fails before any chain read
        handler_sets: Dict[str, List[Handler]] = {
            address: build_handlers(o.fields) for address, o in config.overrides.items()
        }

        graph = DiscoveryGraph(block_number=provider.block_number)
        q: Deque[_QueueItem] = deque()
        seen: Set[str] = set()
        for a in config.initial_addresses:
            addr = normalize_address(a)
            if addr not in seen:
                seen.add(addr)
                q.append(_QueueItem(addr, 0))

        self._progress("start", {"project": config.name, "initial": len(q), "block": provider.block_number})
        resolved_count = 0

        pool = ThreadPoolExecutor(max_workers=self.max_workers) if self.max_workers > 1 else None
        try:
            while q:
                batch: List[_QueueItem] = []
                while q and len(batch) < self.max_workers:
                    item = q.popleft()
                    if (
                        config.get_overrides(item.address).ignore_discovery
                        or item.depth > config.max_depth
                        or resolved_count >= config.max_addresses
                    ):
                        graph.add_boundary(item.address)
                        self._progress("boundary", {"address": item.address, "depth": item.depth})
                        continue
                    resolved_count += 1
                    batch.append(item)

                def resolve(item: _QueueItem) -> Optional[DiscoveredContract]:
                    return self._resolve(provider, item, config, handler_sets.get(item.address, []))

                if pool is not None and len(batch) > 1:
                    results = list(pool.map(resolve, batch))
                else:
                    results = [resolve(item) for item in batch]

                for item, contract in zip(batch, results):
                    if contract is None:
                        graph.add_eoa(item.address)
                        continue
                    graph.add_contract(contract)
                    for child in contract.child_addresses:
                        if child not in seen:
                            seen.add(child)
                            q.append(_QueueItem(child, item.depth + 1))
                    self._progress("visit", {
                        "address": item.address,
                        "depth": item.depth,
                        "queue": len(q),
                        "processed": resolved_count,
                    })
        finally:
            if pool is not None:
                pool.shutdown(wait=True)

        self._progress("done", {
            "contracts": len(graph.contracts),
            "eoas": len(graph.eoas),
            "boundary": len(graph.boundary),
        })
        return graph.freeze()

    # -------------------------
    # Per-contract resolution
    # -------------------------

    def _resolve(
        self,
        provider: CachingProvider,
        item: _QueueItem,
        config: DiscoveryConfig,
        handlers: List[Handler],
    ) -> Optional[DiscoveredContract]:
        address = item.address
        if not provider.get_code(address):
            logger.debug("%s has no code, recording as EOA", address)
            return None

        source = provider.get_source(address)

        resolved: Dict[str, FieldResult] = {}
        for h in handlers:
            with provider.measure_high_level(h.type):
                result = h.execute(provider, address, resolved)
            resolved[h.field] = result
            if result.ok:
                logger.debug("%s.%s = %r", address, h.field, result.value)
            else:
                logger.warning("%s.%s failed: %s", address, h.field, result.error)

        overrides = config.get_overrides(address)
        fields = [resolved[name] for name in overrides.fields]

        ignored = set(overrides.ignore_relatives) | {h.field for h in handlers if h.ignore_relative}
        children: List[str] = []
        for f in fields:
            if f.ok and f.field not in ignored:
                for child in extract_addresses(f.value):
                    if child != address and child not in children:
                        children.append(child)

        name = source.name if source is not None else None
        logger.info("Discovered %s (%s) at depth %d with %d relative(s)", address, name or "unverified", item.depth, len(children))
        return DiscoveredContract(
            address=address,
            block_number=provider.block_number,
            depth=item.depth,
            name=name,
            source=source,
            fields=fields,
            child_addresses=children,
        )

    # -------------------------
    # Helpers
    # -------------------------

    @staticmethod
    def _validate(config: DiscoveryConfig) -> None:
        if not config.initial_addresses:
            raise ConfigurationError(f"{config.name}: no initial addresses")
        if config.max_addresses < 1:
            raise ConfigurationError(f"{config.name}: maxAddresses must be >= 1, got {config.max_addresses}")
        if config.max_depth < 0:
            raise ConfigurationError(f"{config.name}: maxDepth must be >= 0, got {config.max_depth}")

    def _progress(self, event: str, data: dict) -> None:
        if self.on_progress is not None:
            self.on_progress(event, data)


def extract_addresses(value: Any) -> List[str]:
    """
    Address-shaped strings found anywhere in a field value, in traversal
    order, checksummed and without duplicates or the zero address.
    """
    found: List[str] = []
    stack = [value]
    while stack:
        v = stack.pop()
        if is_address_like(v):
            addr = normalize_address(v)
            if addr != ZERO_ADDRESS and addr not in found:
                found.append(addr)
        elif isinstance(v, dict):
            stack.extend(reversed(list(v.values())))
        elif isinstance(v, (list, tuple)):
            stack.extend(reversed(v))
    return found
