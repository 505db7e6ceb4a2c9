from __future__ import annotations

import dataclasses
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from discovery.config import settings
from discovery.core.errors import ConfigurationError
from discovery.core.models import DiscoveryConfig, normalize_address
from discovery.io.schemas import flatten_discovered_sources, to_discovery_output
from discovery.ports.chain_data_port import ChainDataPort
from discovery.ports.config_port import ConfigReaderPort
from discovery.ports.metrics_port import MetricsPort
from discovery.provider.caching_provider import CachingProvider, ProviderStats
from discovery.services.discovery_engine import DiscoveryEngine
from discovery.services.retry import retry_call

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunOptions:
    inject_initial_addresses: bool = False
    max_attempts: int = settings.DISCOVERY_MAX_ATTEMPTS
    retry_delay: float = settings.DISCOVERY_RETRY_DELAY_SEC


@dataclass
class DiscoveryRunResult:
    discovery: Dict[str, Any]
    flat_sources: Dict[str, str] = field(default_factory=dict)


def is_retryable(error: BaseException) -> bool:
    # a broken config fails the same way on every attempt
    return not isinstance(error, ConfigurationError)


class DiscoveryRunner:
    """
    Runs discovery for one chain: seeds, retries transient failures, reports
    provider metrics and converts the graph into the output format.
    """

    def __init__(
        self,
        chain: ChainDataPort,
        engine: DiscoveryEngine,
        config_reader: ConfigReaderPort,
        chain_name: str,
        metrics: Optional[MetricsPort] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.chain = chain
        self.engine = engine
        self.config_reader = config_reader
        self.chain_name = chain_name
        self.metrics = metrics
        self._sleep = sleep
        self._lock = threading.Lock()

    def get_block_number(self) -> int:
        return self.chain.get_block_number()

    def run(
        self,
        config: DiscoveryConfig,
        block_number: int,
        options: Optional[RunOptions] = None,
    ) -> DiscoveryRunResult:
        options = options or RunOptions()
        if options.inject_initial_addresses:
            config = self.update_initial_addresses(config)

        with self._lock:
            return self.discover_with_retry(config, block_number, options.max_attempts, options.retry_delay)

    def discover_with_retry(
        self,
        config: DiscoveryConfig,
        block_number: int,
        max_attempts: int = settings.DISCOVERY_MAX_ATTEMPTS,
        delay: float = settings.DISCOVERY_RETRY_DELAY_SEC,
    ) -> DiscoveryRunResult:
        stats = ProviderStats()
        # reused across attempts: reads at a fixed block never go stale
        provider = CachingProvider(self.chain, block_number, stats)

        def on_retry(attempt: int, error: Exception) -> None:
            logger.warning(
                "DiscoveryRunner: Retrying %s (chain: %s) | attempt:%d/%d | error:%s: %s",
                config.name, self.chain_name, attempt, max_attempts, error.__class__.__name__, error,
            )

        try:
            graph = retry_call(
                lambda: self.engine.discover(provider, config),
                max_attempts=max_attempts,
                delay=delay,
                is_retryable=is_retryable,
                on_retry=on_retry,
                sleep=self._sleep,
            )
        except Exception as exc:
            logger.error("DiscoveryRunner: %s (chain: %s) failed: %s", config.name, self.chain_name, exc)
            raise

        self._set_metrics(stats)

        discovery = to_discovery_output(config.name, self.chain_name, config.hash, block_number, graph)
        return DiscoveryRunResult(discovery=discovery, flat_sources=flatten_discovered_sources(graph))

    # A misconfigured contract with many relatives can exhaust the bounds
    # before well-known contracts are reached. Seeding from the previous
    # output keeps those contracts in every run.
    def update_initial_addresses(self, config: DiscoveryConfig) -> DiscoveryConfig:
        prior = self.config_reader.read_discovery(config.name, self.chain_name)
        try:
            addresses = [normalize_address(c["address"]) for c in prior.get("contracts", [])]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ConfigurationError(f"Previous discovery of {config.name} (chain: {self.chain_name}) is malformed: {e!r}") from e
        if not addresses:
            logger.warning("No previous discovery for %s (chain: %s), keeping configured seeds", config.name, self.chain_name)
            addresses = list(config.initial_addresses)

        multiplier = settings.DISCOVERY_SEED_MULTIPLIER
        return dataclasses.replace(
            config,
            initial_addresses=addresses,
            max_addresses=config.max_addresses * multiplier,
            max_depth=config.max_depth * multiplier,
        )

    def _set_metrics(self, stats: ProviderStats) -> None:
        if self.metrics is None:
            return
        for (tier, method), (count, average) in stats.snapshot().items():
            self.metrics.set_call_count(self.chain_name, tier.value, method, count)
            self.metrics.set_average_duration(self.chain_name, tier.value, method, average)
