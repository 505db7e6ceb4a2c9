from typing import Any, Dict, List, Optional

import requests
from eth_abi.exceptions import DecodingError, EncodingError

from discovery.config.settings import (
    DISCOVERY_RPC_URL,
    DISCOVERY_RPC_TIMEOUT_SEC,
    DISCOVERY_RPC_REQUESTS_PER_SEC,
    DISCOVERY_RPC_MAX_RETRIES,
)

from discovery.adapters.chain.etherscan_client import EtherscanClient
from discovery.adapters.chain.rate_limiter import SimpleRateLimiter, backoff_sleep
from discovery.core.abi import parse_function
from discovery.core.dto import LogEntry
from discovery.core.errors import CallRevertedError, DataSourceError, DecodeFormatError, HandlerError, RateLimitError
from discovery.ports.chain_data_port import ChainDataPort


class RpcChainAdapter(ChainDataPort):

    def __init__(self, rpc_url: Optional[str] = None, explorer: Optional[EtherscanClient] = None) -> None:
        self._url = rpc_url or DISCOVERY_RPC_URL
        if not self._url:
            raise DataSourceError("Missing DISCOVERY_RPC_URL")
        self._timeout = DISCOVERY_RPC_TIMEOUT_SEC
        self._max_retries = DISCOVERY_RPC_MAX_RETRIES
        self._explorer = explorer

        self._rl = SimpleRateLimiter(DISCOVERY_RPC_REQUESTS_PER_SEC)
        self._session = requests.Session()
        self._request_id = 0

    # ---------- internal ----------

    def _rpc(self, method: str, params: List[Any]) -> Any:
        last_err: Optional[Exception] = None

        for attempt in range(self._max_retries):
            self._request_id += 1
            try:
                self._rl.wait()
                resp = self._session.post(
                    self._url,
                    json={"jsonrpc": "2.0", "id": self._request_id, "method": method, "params": params},
                    timeout=self._timeout,
                )
                if resp.status_code == 429:
                    last_err = RateLimitError(f"{method}: HTTP 429")
                    backoff_sleep(attempt)
                    continue
                resp.raise_for_status()
                data = resp.json()
            except (requests.RequestException, ValueError) as e:
                last_err = e
                backoff_sleep(attempt)
                continue

            err = data.get("error")
            if err is None:
                return data.get("result")

            message = str(err.get("message", ""))
            if err.get("code") == 3 or "revert" in message.lower():
                raise CallRevertedError(message or "execution reverted")
            last_err = DataSourceError(f"{method}: {message}")
            backoff_sleep(attempt)

        raise DataSourceError(f"RPC {method} failed after retries: {last_err}")

    @staticmethod
    def _block_tag(block_number: int) -> str:
        return hex(int(block_number))

    @staticmethod
    def _hex_bytes(value: Optional[str]) -> bytes:
        value = value or "0x"
        return bytes.fromhex(value[2:] if value.startswith("0x") else value)

    # ---------- port methods ----------

    def get_block_number(self) -> int:
        return int(self._rpc("eth_blockNumber", []), 16)

    def get_code(self, address: str, block_number: int) -> bytes:
        return self._hex_bytes(self._rpc("eth_getCode", [address, self._block_tag(block_number)]))

    def get_storage_at(self, address: str, slot: int, block_number: int) -> bytes:
        word = self._hex_bytes(self._rpc("eth_getStorageAt", [address, hex(slot), self._block_tag(block_number)]))
        return word.rjust(32, b"\x00")

    def call(self, address, signature, args, block_number) -> tuple:
        fn = parse_function(signature)
        try:
            data = fn.encode_call(list(args))
        except (EncodingError, ValueError, TypeError) as e:
            raise HandlerError(f"{fn.signature}: cannot encode arguments {list(args)!r}: {e}") from e
        raw = self._hex_bytes(self._rpc(
            "eth_call",
            [{"to": address, "data": "0x" + data.hex()}, self._block_tag(block_number)],
        ))
        if fn.outputs and not raw:
            # no code at the address, or a fallback that returns nothing
            raise CallRevertedError(f"{fn.signature} returned no data")
        try:
            return fn.decode_output(raw)
        except DecodingError as e:
            raise DecodeFormatError(f"{fn.signature}: {e}") from e

    def get_logs(self, address, topics, block_number) -> List[LogEntry]:
        rows = self._rpc("eth_getLogs", [{
            "address": address,
            "topics": list(topics),
            "fromBlock": "0x0",
            "toBlock": self._block_tag(block_number),
        }]) or []

        logs = [
            LogEntry(
                address=r.get("address", address),
                topics=tuple(r.get("topics") or ()),
                data=self._hex_bytes(r.get("data")),
                block_number=int(r.get("blockNumber", "0x0"), 16),
                log_index=int(r.get("logIndex", "0x0"), 16),
            )
            for r in rows
            if not r.get("removed")
        ]
        logs.sort(key=lambda x: (x.block_number, x.log_index))
        return logs

    def get_source(self, address: str):
        if self._explorer is None:
            return None
        return self._explorer.get_source(address)
