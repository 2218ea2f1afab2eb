from __future__ import annotations

import base64
from typing import Any

import pytest

from augurref._tests.util.misc import RecordingBitcoinNode, batch_reply, mempool_entry
from augurref.rpc.bitcoin_rpc_client import BitcoinRpcClient, btc_to_sats, parse_batch_response
from augurref.types.mempool_snapshot import MempoolTransaction
from augurref.util.errors import BitcoinRpcError


@pytest.mark.parametrize(
    "amount, sats",
    [
        ("0.00001234", 1234),
        (0.1, 10_000_000),
        (0.00000141, 141),
        ("0.000000005", 1),
        ("0.000000004", 0),
        (0, 0),
    ],
)
def test_btc_to_sats(amount: Any, sats: int) -> None:
    assert btc_to_sats(amount) == sats


def test_btc_to_sats_rejects_garbage() -> None:
    with pytest.raises(BitcoinRpcError):
        btc_to_sats("lots")


def test_parse_batch_response() -> None:
    reply = batch_reply(
        height=883042,
        mempool={"aa": mempool_entry(561, 0.0000141), "bb": mempool_entry(800, "0.00002")},
    )
    # replies may come back in any order
    reply.reverse()
    height, transactions = parse_batch_response(reply)
    assert height == 883042
    assert transactions == [MempoolTransaction(weight=561, fee=1410), MempoolTransaction(weight=800, fee=2000)]


def test_parse_empty_mempool() -> None:
    assert parse_batch_response(batch_reply(height=5)) == (5, [])


@pytest.mark.parametrize(
    "reply, message",
    [
        ({"error": "not a batch"}, "expected a batch response"),
        (batch_reply()[:2], "no response for mempool-info"),
        (batch_reply(height=None), "No height in response"),
        (batch_reply(height="883042"), "No height in response"),
        (batch_reply(errors={"blockchain-info": {"code": -28, "message": "Loading"}}), r"RPC error \(blockchain\)"),
        (batch_reply(errors={"mempool": {"code": -1, "message": "boom"}}), r"RPC error \(mempool\)"),
        (batch_reply(errors={"mempool-info": {"code": -1, "message": "boom"}}), r"RPC error \(mempool-info\)"),
        (batch_reply(loaded=False), "mempool is not loaded"),
        (batch_reply(mempool={"aa": {"weight": 400}}), "malformed mempool entry for aa"),
    ],
)
def test_parse_batch_response_errors(reply: Any, message: str) -> None:
    with pytest.raises(BitcoinRpcError, match=message):
        parse_batch_response(reply)


@pytest.mark.anyio
async def test_batched_request(bitcoin_node: RecordingBitcoinNode) -> None:
    bitcoin_node.reply = batch_reply(height=883042, mempool={"aa": mempool_entry(400, "0.00000150")})

    async with BitcoinRpcClient.create_as_context(url=bitcoin_node.url, username="user", password="pass") as client:
        height, transactions = await client.get_height_and_mempool_transactions()

    assert height == 883042
    assert transactions == [MempoolTransaction(weight=400, fee=150)]

    [request] = bitcoin_node.requests
    assert [(call["id"], call["method"], call["params"]) for call in request] == [
        ("blockchain-info", "getblockchaininfo", []),
        ("mempool", "getrawmempool", [True]),
        ("mempool-info", "getmempoolinfo", []),
    ]
    assert bitcoin_node.authorizations == ["Basic " + base64.b64encode(b"user:pass").decode()]


@pytest.mark.anyio
async def test_http_error_status(bitcoin_node: RecordingBitcoinNode) -> None:
    bitcoin_node.status = 401
    async with BitcoinRpcClient.create_as_context(url=bitcoin_node.url, username="user", password="wrong") as client:
        with pytest.raises(BitcoinRpcError, match="401"):
            await client.get_height_and_mempool_transactions()


@pytest.mark.anyio
async def test_node_reports_error(bitcoin_node: RecordingBitcoinNode) -> None:
    bitcoin_node.reply = batch_reply(loaded=False)
    async with BitcoinRpcClient.create_as_context(url=bitcoin_node.url, username="user", password="pass") as client:
        with pytest.raises(BitcoinRpcError, match="not loaded"):
            await client.get_height_and_mempool_transactions()
