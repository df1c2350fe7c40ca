from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Sequence

import requests

from .log import Logger

BLOCK_NUMBER_REQUEST = {"jsonrpc": "2.0", "method": "eth_blockNumber", "params": [], "id": 1}


def _hex_to_dec(hex_val: str) -> int:
    s = hex_val[2:] if hex_val.startswith("0x") else hex_val
    return int(s, 16)


class RpcProbe:
    """Queries ``eth_blockNumber``. Any failure reads as height 0."""

    def __init__(self, timeout: float = 5, session: requests.Session | None = None, logger: Logger | None = None):
        self.timeout = timeout
        self.session = session or requests.Session()
        self.logger = logger

    def _log(self, msg: str) -> None:
        if self.logger:
            self.logger.log(msg)

    def block_height(self, url: str) -> int:
        try:
            r = self.session.post(
                url,
                json=BLOCK_NUMBER_REQUEST,
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
            r.raise_for_status()
            data = r.json()
        except (requests.RequestException, ValueError) as e:
            self._log(f"RPC error from {url}: {e}")
            return 0

        if not isinstance(data, dict) or "error" in data:
            self._log(f"RPC error from {url}: {data.get('error') if isinstance(data, dict) else data}")
            return 0
        result = data.get("result")
        if not result or not isinstance(result, str):
            return 0
        try:
            return _hex_to_dec(result)
        except ValueError:
            self._log(f"RPC returned invalid block number from {url}: {result}")
            return 0

    def probe_many(self, urls: Sequence[str]) -> Dict[str, int]:
        """Probe every URL in parallel and return ``{url: height}`` once all are done."""
        if not urls:
            return {}
        with ThreadPoolExecutor(max_workers=len(urls)) as pool:
            heights = list(pool.map(self.block_height, urls))
        return dict(zip(urls, heights))
