from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

import aiohttp
from typing_extensions import Self

from augurref.types.mempool_snapshot import MempoolTransaction
from augurref.util.errors import BitcoinRpcError
from augurref.util.task_referencer import create_referenced_task

log = logging.getLogger(__name__)

SATS_PER_BTC = Decimal(100_000_000)

BLOCKCHAIN_INFO_ID = "blockchain-info"
MEMPOOL_ID = "mempool"
MEMPOOL_INFO_ID = "mempool-info"


def btc_to_sats(amount: Any) -> int:
    try:
        sats = Decimal(str(amount)) * SATS_PER_BTC
    except InvalidOperation as e:
        raise BitcoinRpcError(f"invalid fee amount {amount!r}") from e
    return int(sats.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def mempool_entry_to_transaction(txid: str, entry: dict[str, Any]) -> MempoolTransaction:
    try:
        return MempoolTransaction(weight=int(entry["weight"]), fee=btc_to_sats(entry["fees"]["base"]))
    except (KeyError, TypeError, ValueError) as e:
        raise BitcoinRpcError(f"malformed mempool entry for {txid}") from e


def parse_batch_response(results: Any) -> tuple[int, list[MempoolTransaction]]:
    """Validate the three batched replies and reduce them to (height, transactions)."""
    if not isinstance(results, list):
        raise BitcoinRpcError(f"expected a batch response, got {type(results).__name__}")
    by_id = {result.get("id"): result for result in results if isinstance(result, dict)}
    for request_id in (BLOCKCHAIN_INFO_ID, MEMPOOL_ID, MEMPOOL_INFO_ID):
        if request_id not in by_id:
            raise BitcoinRpcError(f"no response for {request_id}")

    blockchain_response = by_id[BLOCKCHAIN_INFO_ID]
    if blockchain_response.get("error") is not None:
        raise BitcoinRpcError("RPC error (blockchain)", blockchain_response["error"])
    height = (blockchain_response.get("result") or {}).get("blocks")
    if not isinstance(height, int):
        raise BitcoinRpcError("No height in response")

    mempool_response = by_id[MEMPOOL_ID]
    if mempool_response.get("error") is not None:
        raise BitcoinRpcError("RPC error (mempool)", mempool_response["error"])

    mempool_info_response = by_id[MEMPOOL_INFO_ID]
    if mempool_info_response.get("error") is not None:
        raise BitcoinRpcError("RPC error (mempool-info)", mempool_info_response["error"])
    if (mempool_info_response.get("result") or {}).get("loaded") is False:
        raise BitcoinRpcError("RPC error (mempool-info): mempool is not loaded")

    entries: dict[str, Any] = mempool_response.get("result") or {}
    transactions = [mempool_entry_to_transaction(txid, entry) for txid, entry in entries.items()]
    return height, transactions


@dataclass
class BitcoinRpcClient:
    """
    Client for the subset of the Bitcoin Core JSON-RPC interface needed to sample the mempool.
    All three calls go out as one batched POST so height and mempool describe the same moment
    as closely as the node allows.
    """

    url: str
    session: aiohttp.ClientSession
    closing_task: Optional[asyncio.Task[None]] = None

    @classmethod
    async def create(cls, url: str, username: str, password: str, timeout: float = 30) -> Self:
        return cls(
            url=url,
            session=aiohttp.ClientSession(
                auth=aiohttp.BasicAuth(username, password),
                timeout=aiohttp.ClientTimeout(total=timeout),
            ),
        )

    @classmethod
    @asynccontextmanager
    async def create_as_context(
        cls, url: str, username: str, password: str, timeout: float = 30
    ) -> AsyncIterator[Self]:
        self = await cls.create(url=url, username=username, password=password, timeout=timeout)
        try:
            yield self
        finally:
            self.close()
            await self.await_closed()

    async def fetch_batch(self, requests: list[dict[str, Any]]) -> Any:
        async with self.session.post(self.url, json=requests) as response:
            if response.status >= 400:
                raise BitcoinRpcError(f"Failed to get batch response: {response.status} {response.reason}")
            return await response.json(content_type=None)

    async def get_height_and_mempool_transactions(self) -> tuple[int, list[MempoolTransaction]]:
        log.debug("Fetching blockchain height and mempool data")
        results = await self.fetch_batch(
            [
                {"jsonrpc": "1.0", "id": BLOCKCHAIN_INFO_ID, "method": "getblockchaininfo", "params": []},
                {"jsonrpc": "1.0", "id": MEMPOOL_ID, "method": "getrawmempool", "params": [True]},
                {"jsonrpc": "1.0", "id": MEMPOOL_INFO_ID, "method": "getmempoolinfo", "params": []},
            ]
        )
        height, transactions = parse_batch_response(results)
        log.debug(f"Fetched blockchain height: {height} and {len(transactions)} mempool transactions")
        return height, transactions

    def close(self) -> None:
        self.closing_task = create_referenced_task(self.session.close())

    async def await_closed(self) -> None:
        if self.closing_task is not None:
            await self.closing_task
