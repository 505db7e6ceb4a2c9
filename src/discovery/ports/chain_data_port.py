from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Union
from discovery.core.dto import ContractSource, LogEntry

# one entry per topic position: any, exact, or one of several
TopicFilter = Union[None, str, List[str]]


class ChainDataPort(ABC):
    """
    Abstract Class for raw chain reads at a given block.
    """

    @abstractmethod
    def get_block_number(self) -> int:
        raise NotImplementedError

    # --- Account state ---

    @abstractmethod
    def get_code(self, address: str, block_number: int) -> bytes:
        raise NotImplementedError

    @abstractmethod
    def get_storage_at(self, address: str, slot: int, block_number: int) -> bytes:
        raise NotImplementedError

    # --- eth_call; raises CallRevertedError on revert ---

    @abstractmethod
    def call(
        self,
        address: str,
        signature: str,
        args: Sequence[object],
        block_number: int,
    ) -> tuple:
        raise NotImplementedError

    # --- Event logs, ordered by (block_number, log_index) ---

    @abstractmethod
    def get_logs(
        self,
        address: str,
        topics: Sequence[TopicFilter],
        block_number: int,
    ) -> List[LogEntry]:
        raise NotImplementedError

    # --- Verified source, if any explorer knows it ---

    @abstractmethod
    def get_source(self, address: str) -> Optional[ContractSource]:
        raise NotImplementedError
