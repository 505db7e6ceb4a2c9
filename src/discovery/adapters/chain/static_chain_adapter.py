from discovery.ports.chain_data_port import ChainDataPort
from discovery.core.abi import parse_function
from discovery.core.dto import ContractSource, LogEntry
from discovery.core.errors import CallRevertedError
from discovery.core.models import normalize_address
from typing import Any, Dict, List, Optional, Tuple

class StaticChainAdapter(ChainDataPort):
    """
    In-memory chain for dev/testing.

    calls are keyed by (address, method name, args); a stored exception is
    raised, a missing entry reverts.
    """

    def __init__(self,
                 code: Optional[Dict[str, Any]] = None,
                 calls: Optional[Dict[Tuple[str, str, tuple], Any]] = None,
                 storage: Optional[Dict[Tuple[str, int], Any]] = None,
                 logs: Optional[List[LogEntry]] = None,
                 sources: Optional[Dict[str, ContractSource]] = None,
                 block_number: int = 1,
                 ):
        self._code = {normalize_address(k): _to_bytes(v) for k, v in (code or {}).items()}
        self._calls = {(normalize_address(a), m, tuple(args)): v for (a, m, args), v in (calls or {}).items()}
        self._storage = {(normalize_address(a), int(s)): _to_word(v) for (a, s), v in (storage or {}).items()}
        self._logs = list(logs or [])
        self._sources = {normalize_address(k): v for k, v in (sources or {}).items()}
        self._block_number = block_number

    def get_block_number(self):
        return self._block_number

    def get_code(self, address, block_number):
        return self._code.get(normalize_address(address), b"")

    def get_storage_at(self, address, slot, block_number):
        return self._storage.get((normalize_address(address), int(slot)), b"\x00" * 32)

    def call(self, address, signature, args, block_number):
        fn = parse_function(signature)
        key = (normalize_address(address), fn.name, tuple(args))
        if key not in self._calls:
            raise CallRevertedError(f"execution reverted: {fn.signature} on {address}")
        value = self._calls[key]
        if isinstance(value, Exception):
            raise value
        return value if isinstance(value, tuple) else (value,)

    def get_logs(self, address, topics, block_number):
        ad = normalize_address(address)
        items = [
            log for log in self._logs
            if normalize_address(log.address) == ad
            and log.block_number <= block_number
            and _topics_match(log.topics, topics)
        ]
        items.sort(key=lambda x: (x.block_number, x.log_index))
        return items

    def get_source(self, address):
        return self._sources.get(normalize_address(address))


def _topics_match(log_topics, filters) -> bool:
    for i, f in enumerate(filters):
        if f is None:
            continue
        if i >= len(log_topics):
            return False
        wanted = [f] if isinstance(f, str) else list(f)
        if log_topics[i].lower() not in [w.lower() for w in wanted]:
            return False
    return True


def _to_bytes(v) -> bytes:
    if isinstance(v, str):
        return bytes.fromhex(v[2:] if v.startswith("0x") else v)
    return bytes(v)


def _to_word(v) -> bytes:
    if isinstance(v, int):
        return v.to_bytes(32, "big")
    return _to_bytes(v).rjust(32, b"\x00")
