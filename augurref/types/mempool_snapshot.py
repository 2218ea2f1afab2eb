from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from augurref.util.errors import SnapshotFormatError

# Longer fractions (nanoseconds) are accepted on read and truncated to microseconds
_ISO_TIMESTAMP_RE = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(?:\.(?P<fraction>\d+))?(?P<zone>Z|[+-]\d{2}:\d{2})$"
)


def utc_now() -> datetime:
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=now.microsecond - now.microsecond % 1000)


def format_timestamp(timestamp: datetime) -> str:
    """ISO-8601 in UTC with millisecond precision, e.g. 2025-01-15T10:00:00.123Z"""
    if timestamp.tzinfo is None:
        raise ValueError(f"timestamp must be timezone aware: {timestamp!r}")
    utc = timestamp.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


def parse_timestamp(value: str) -> datetime:
    match = _ISO_TIMESTAMP_RE.match(value)
    if match is None:
        raise ValueError(f"not an ISO-8601 timestamp: {value!r}")
    fraction = (match.group("fraction") or "0")[:6].ljust(6, "0")
    zone = match.group("zone")
    if zone == "Z":
        zone = "+00:00"
    return datetime.fromisoformat(f"{match.group('base')}.{fraction}{zone}").astimezone(timezone.utc)


@dataclass(frozen=True)
class MempoolTransaction:
    weight: int  # block weight units
    fee: int  # satoshis

    @property
    def vsize(self) -> int:
        return -(-self.weight // 4)

    @property
    def fee_rate(self) -> float:
        """sat/vbyte"""
        return self.fee / max(self.vsize, 1)


@dataclass(frozen=True)
class MempoolSnapshot:
    """
    A point-in-time sample of a node's mempool.

    Storage identity is (block_height, epoch seconds of timestamp); see
    FileSnapshotStore for how that maps onto the data directory.
    """

    block_height: int
    timestamp: datetime
    transactions: tuple[MempoolTransaction, ...]

    @classmethod
    def from_mempool_transactions(
        cls,
        transactions: Iterable[MempoolTransaction],
        block_height: int,
        timestamp: Optional[datetime] = None,
    ) -> MempoolSnapshot:
        if timestamp is None:
            timestamp = utc_now()
        return cls(block_height=block_height, timestamp=timestamp, transactions=tuple(transactions))

    @property
    def epoch_seconds(self) -> int:
        return math.floor(self.timestamp.timestamp())

    def to_json_dict(self) -> dict[str, Any]:
        return {
            "blockHeight": self.block_height,
            "timestamp": format_timestamp(self.timestamp),
            "transactions": [{"weight": tx.weight, "fee": tx.fee} for tx in self.transactions],
        }

    @classmethod
    def from_json_dict(cls, json_dict: Any, source: Optional[str] = None) -> MempoolSnapshot:
        if not isinstance(json_dict, dict):
            raise SnapshotFormatError("snapshot document must be a JSON object", source)
        try:
            block_height = json_dict["blockHeight"]
            raw_timestamp = json_dict["timestamp"]
            raw_transactions = json_dict["transactions"]
        except KeyError as e:
            raise SnapshotFormatError(f"missing field {e.args[0]}", source) from e

        if not isinstance(block_height, int) or isinstance(block_height, bool):
            raise SnapshotFormatError(f"blockHeight must be an integer, got {block_height!r}", source)
        if not isinstance(raw_timestamp, str):
            raise SnapshotFormatError(f"timestamp must be an ISO-8601 string, got {raw_timestamp!r}", source)
        try:
            timestamp = parse_timestamp(raw_timestamp)
        except ValueError as e:
            raise SnapshotFormatError(str(e), source) from e
        if not isinstance(raw_transactions, list):
            raise SnapshotFormatError("transactions must be a list", source)

        transactions = []
        for raw in raw_transactions:
            try:
                transactions.append(MempoolTransaction(weight=int(raw["weight"]), fee=int(raw["fee"])))
            except (KeyError, TypeError, ValueError) as e:
                raise SnapshotFormatError(f"invalid transaction entry {raw!r}", source) from e

        return cls(block_height=block_height, timestamp=timestamp, transactions=tuple(transactions))
