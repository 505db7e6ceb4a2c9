from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Tuple


@dataclass(frozen=True)
class LogEntry:
    address: str
    topics: Tuple[str, ...]     # hex, topic0 first
    data: bytes
    block_number: int
    log_index: int


@dataclass(frozen=True)
class ContractSource:
    name: str
    files: Dict[str, str] = field(default_factory=dict)     # path -> source text


class Tier(str, Enum):
    LOW_LEVEL = "lowLevel"
    CACHE = "cache"
    HIGH_LEVEL = "highLevel"


@dataclass(frozen=True)
class CallRecord:
    tier: Tier
    method: str
    duration: float         # seconds
    success: bool
