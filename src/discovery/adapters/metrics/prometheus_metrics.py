from __future__ import annotations

from typing import Optional

from prometheus_client import CollectorRegistry, Gauge

from discovery.ports.metrics_port import MetricsPort


class PrometheusMetrics(MetricsPort):
    """
    Provider call statistics as labelled gauges. Create once per process and
    pass it to every runner.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        self.registry = registry if registry is not None else CollectorRegistry()
        self._calls = Gauge(
            "discovery_provider_calls",
            "Provider calls done during the last discovery run",
            ["chain", "tier", "method"],
            registry=self.registry,
        )
        self._duration = Gauge(
            "discovery_provider_duration_seconds",
            "Average duration of provider calls during the last discovery run",
            ["chain", "tier", "method"],
            registry=self.registry,
        )

    def set_call_count(self, chain: str, tier: str, method: str, count: int) -> None:
        self._calls.labels(chain=chain, tier=tier, method=method).set(count)

    def set_average_duration(self, chain: str, tier: str, method: str, seconds: float) -> None:
        self._duration.labels(chain=chain, tier=tier, method=method).set(seconds)
