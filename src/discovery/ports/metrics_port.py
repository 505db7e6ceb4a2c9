from __future__ import annotations

from abc import ABC, abstractmethod


class MetricsPort(ABC):
    """
    Process-wide sink for provider call statistics. Must accept concurrent
    updates from simultaneous runs.
    """

    @abstractmethod
    def set_call_count(self, chain: str, tier: str, method: str, count: int) -> None:
        raise NotImplementedError

    @abstractmethod
    def set_average_duration(self, chain: str, tier: str, method: str, seconds: float) -> None:
        raise NotImplementedError
