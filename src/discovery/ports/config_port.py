from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict

from discovery.core.models import DiscoveryConfig


class ConfigReaderPort(ABC):

    @abstractmethod
    def read_config(self, project: str, chain: str) -> DiscoveryConfig:
        raise NotImplementedError

    # previous run output, used only for re-seeding initial addresses
    @abstractmethod
    def read_discovery(self, project: str, chain: str) -> Dict[str, Any]:
        raise NotImplementedError
