import json
from typing import Any, Dict, Optional
import requests

from discovery.config.settings import (
    ETHERSCAN_API_KEY,
    ETHERSCAN_CHAIN_ID,
    ETHERSCAN_BASE_URL,
    ETHERSCAN_REQUESTS_PER_SEC,
    ETHERSCAN_TIMEOUT_SEC,
    ETHERSCAN_MAX_RETRIES,
)

from discovery.adapters.chain.rate_limiter import SimpleRateLimiter, backoff_sleep
from discovery.core.dto import ContractSource
from discovery.core.errors import DataSourceError, RateLimitError


class EtherscanClient:
    """
    Explorer lookups the node cannot answer (verified sources).
    """

    def __init__(self, api_key: Optional[str] = None, chain_id: Optional[int] = None) -> None:
        self._api_key = api_key or ETHERSCAN_API_KEY
        self._chainid = chain_id or ETHERSCAN_CHAIN_ID
        self._base_url = ETHERSCAN_BASE_URL
        self._timeout = ETHERSCAN_TIMEOUT_SEC
        self._max_retries = ETHERSCAN_MAX_RETRIES

        self._rl = SimpleRateLimiter(ETHERSCAN_REQUESTS_PER_SEC)
        self._session = requests.Session()

    # ---------- internal ----------

    def _call(self, params: Dict[str, Any]) -> Dict[str, Any]:
        req = dict(params)
        req["apikey"] = self._api_key
        req["chainid"] = str(self._chainid)

        last_err: Optional[Exception] = None

        for attempt in range(self._max_retries):
            try:
                self._rl.wait()
                resp = self._session.get(
                    self._base_url,
                    params=req,
                    timeout=self._timeout,
                )
                resp.raise_for_status()
                data = resp.json()

                status = str(data.get("status", "1"))
                message = str(data.get("message", "OK"))
                result = str(data.get("result", ""))

                if status == "0" and "rate" in (message + result).lower():
                    last_err = RateLimitError(result or message)
                    backoff_sleep(attempt)
                    continue

                return data

            except (requests.RequestException, ValueError) as e:
                last_err = e
                backoff_sleep(attempt)

        raise DataSourceError(f"Etherscan failed after retries: {last_err}")

    # ---------- lookups ----------

    def get_source(self, address: str) -> Optional[ContractSource]:
        data = self._call({
            "module": "contract",
            "action": "getsourcecode",
            "address": address,
        })
        rows = data.get("result")
        if str(data.get("status", "1")) == "0":
            # e.g. "Invalid API Key": unverified contracts still answer with status 1
            raise DataSourceError(f"Etherscan getsourcecode {address}: {data.get('message')}: {rows}")
        if not isinstance(rows, list) or not rows:
            return None

        row = rows[0]
        name = row.get("ContractName") or ""
        raw = row.get("SourceCode") or ""
        if not name or not raw:
            # unverified
            return None
        return ContractSource(name=name, files=_parse_source_files(name, raw))


def _parse_source_files(name: str, raw: str) -> Dict[str, str]:
    # Etherscan returns either plain source, a {path: {content}} map, or
    # standard-json input wrapped in an extra pair of braces
    text = raw.strip()
    if text.startswith("{{") and text.endswith("}}"):
        text = text[1:-1]
    if not text.startswith("{"):
        return {f"{name}.sol": raw}
    try:
        parsed = json.loads(text)
    except ValueError:
        return {f"{name}.sol": raw}
    sources = parsed.get("sources", parsed)
    return {
        path: entry.get("content", "") if isinstance(entry, dict) else str(entry)
        for path, entry in sources.items()
    }
