from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from typing import Any, Callable, Dict, Hashable, Iterator, List, Optional, Sequence, Tuple

from discovery.core.dto import CallRecord, ContractSource, LogEntry, Tier
from discovery.ports.chain_data_port import ChainDataPort, TopicFilter


class ProviderStats:
    """
    Call counts and durations per (tier, method). Append-only for one run.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.records: List[CallRecord] = []
        self._totals: Dict[Tuple[Tier, str], Tuple[int, float]] = {}

    def record(self, tier: Tier, method: str, duration: float, success: bool = True) -> None:
        with self._lock:
            self.records.append(CallRecord(tier=tier, method=method, duration=duration, success=success))
            count, total = self._totals.get((tier, method), (0, 0.0))
            self._totals[(tier, method)] = (count + 1, total + duration)

    def count(self, tier: Tier, method: str) -> int:
        with self._lock:
            return self._totals.get((tier, method), (0, 0.0))[0]

    def average(self, tier: Tier, method: str) -> float:
        with self._lock:
            count, total = self._totals.get((tier, method), (0, 0.0))
        return total / count if count else 0.0

    def snapshot(self) -> Dict[Tuple[Tier, str], Tuple[int, float]]:
        """(tier, method) -> (count, average duration), in first-seen order."""
        with self._lock:
            items = list(self._totals.items())
        return {k: (count, total / count if count else 0.0) for k, (count, total) in items}


class CachingProvider:
    """
    Chain access bound to one block, memoizing every read.

    The ledger at a fixed block never changes, so entries stay valid for the
    whole run. Failed reads are not stored. Two threads missing the same key
    may both reach the chain; the first result stored wins.
    """

    def __init__(self, chain: ChainDataPort, block_number: int, stats: Optional[ProviderStats] = None) -> None:
        self.chain = chain
        self.block_number = int(block_number)
        self.stats = stats or ProviderStats()
        self._cache: Dict[Hashable, Any] = {}
        self._lock = threading.Lock()

    # -------------------------
    # Reads
    # -------------------------

    def get_code(self, address: str) -> bytes:
        return self._cached(
            "getCode", (address,),
            lambda: self.chain.get_code(address, self.block_number),
        )

    def call(self, address: str, signature: str, args: Sequence[Any] = ()) -> tuple:
        args = tuple(args)
        return self._cached(
            "call", (address, signature, _freeze(args)),
            lambda: self.chain.call(address, signature, args, self.block_number),
        )

    def get_storage(self, address: str, slot: int) -> bytes:
        return self._cached(
            "getStorage", (address, int(slot)),
            lambda: self.chain.get_storage_at(address, int(slot), self.block_number),
        )

    def get_logs(self, address: str, topics: Sequence[TopicFilter]) -> List[LogEntry]:
        result = self._cached(
            "getLogs", (address, _freeze(list(topics))),
            lambda: tuple(self.chain.get_logs(address, list(topics), self.block_number)),
        )
        return list(result)

    def get_source(self, address: str) -> Optional[ContractSource]:
        # sources are not block-bound, but stay in the same memo table
        return self._cached("getSource", (address,), lambda: self.chain.get_source(address))

    @contextmanager
    def measure_high_level(self, method: str) -> Iterator[None]:
        start = time.perf_counter()
        success = False
        try:
            yield
            success = True
        finally:
            self.stats.record(Tier.HIGH_LEVEL, method, time.perf_counter() - start, success)

    # -------------------------
    # Helpers
    # -------------------------

    def _cached(self, method: str, args: tuple, fetch: Callable[[], Any]) -> Any:
        key = (method, args, self.block_number)
        start = time.perf_counter()

        with self._lock:
            hit = key in self._cache
            value = self._cache.get(key)
        if hit:
            self.stats.record(Tier.CACHE, method, time.perf_counter() - start)
            return value

        try:
            value = fetch()
        except Exception:
            self.stats.record(Tier.LOW_LEVEL, method, time.perf_counter() - start, success=False)
            raise
        self.stats.record(Tier.LOW_LEVEL, method, time.perf_counter() - start)

        with self._lock:
            return self._cache.setdefault(key, value)


def _freeze(value: Any) -> Hashable:
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(v) for v in value)
    if isinstance(value, dict):
        return tuple(sorted((k, _freeze(v)) for k, v in value.items()))
    return value
