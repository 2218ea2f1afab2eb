from __future__ import annotations

import dataclasses
from collections.abc import Awaitable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Union

import pytest
from aiohttp import web
from typing_extensions import Protocol, final

from augurref.types.mempool_snapshot import MempoolSnapshot, MempoolTransaction
from augurref.util.network import WebServer

# 2025-01-15T10:00:00Z
T0 = 1736935200


def utc_datetime(unix_seconds: float) -> datetime:
    return datetime.fromtimestamp(unix_seconds, tz=timezone.utc)


def local_datetime(*args: int) -> datetime:
    return datetime(*args).astimezone()  # type: ignore[arg-type]


def tx_at_rate(fee_rate: int, weight: int = 2_000_000) -> MempoolTransaction:
    return MempoolTransaction(weight=weight, fee=fee_rate * -(-weight // 4))


def make_snapshot(
    block_height: int,
    timestamp: datetime,
    transactions: Iterable[MempoolTransaction] = (),
) -> MempoolSnapshot:
    return MempoolSnapshot.from_mempool_transactions(
        transactions=transactions, block_height=block_height, timestamp=timestamp
    )


def batch_reply(
    height: Any = 880_000,
    mempool: Optional[dict[str, Any]] = None,
    loaded: bool = True,
    errors: Optional[dict[str, Any]] = None,
) -> list[dict[str, Any]]:
    """The three replies bitcoind sends back for the collector's batched request."""
    errors = {} if errors is None else errors
    return [
        {"id": "blockchain-info", "result": {"blocks": height}, "error": errors.get("blockchain-info")},
        {"id": "mempool", "result": {} if mempool is None else mempool, "error": errors.get("mempool")},
        {"id": "mempool-info", "result": {"loaded": loaded}, "error": errors.get("mempool-info")},
    ]


def mempool_entry(weight: int, base_fee_btc: Union[str, float]) -> dict[str, Any]:
    return {"weight": weight, "vsize": -(-weight // 4), "fees": {"base": base_fee_btc}}


@dataclass
class FakeMempoolSource:
    """Hands out queued replies in order; the last one repeats. Exceptions are raised."""

    replies: list[Union[tuple[int, list[MempoolTransaction]], Exception]]
    calls: int = 0

    async def get_height_and_mempool_transactions(self) -> tuple[int, list[MempoolTransaction]]:
        reply = self.replies[min(self.calls, len(self.replies) - 1)]
        self.calls += 1
        if isinstance(reply, Exception):
            raise reply
        return reply


class DataCase(Protocol):
    marks: Sequence[pytest.MarkDecorator]

    @property
    def id(self) -> str: ...


def datacases(*cases: DataCase, _name: str = "case") -> pytest.MarkDecorator:
    return pytest.mark.parametrize(
        argnames=_name,
        argvalues=[pytest.param(case, id=case.id, marks=case.marks) for case in cases],
    )


@final
@dataclasses.dataclass
class RecordingBitcoinNode:
    """Stands in for bitcoind's JSON-RPC endpoint, replying with whatever `reply` holds."""

    web_server: WebServer
    requests: list[Any] = field(default_factory=list)
    authorizations: list[Optional[str]] = field(default_factory=list)
    reply: Any = field(default_factory=batch_reply)
    status: int = 200

    @classmethod
    async def create(cls, hostname: str, port: int) -> RecordingBitcoinNode:
        web_server = await WebServer.create(hostname=hostname, port=port, start=False)

        self = cls(web_server=web_server)
        routes = [web.route(method="*", path=route, handler=func) for (route, func) in self.get_routes().items()]
        web_server.add_routes(routes=routes)
        await web_server.start()
        return self

    @property
    def url(self) -> str:
        return self.web_server.url()

    def get_routes(self) -> dict[str, Callable[[web.Request], Awaitable[web.Response]]]:
        return {"/{path:.*}": self.handler}

    async def handler(self, request: web.Request) -> web.Response:
        self.requests.append(await request.json())
        self.authorizations.append(request.headers.get("Authorization"))
        if self.status >= 400:
            return web.Response(status=self.status, text="Unauthorized")
        return web.json_response(data=self.reply, status=self.status)

    async def await_closed(self) -> None:
        self.web_server.close()
        await self.web_server.await_closed()
