from __future__ import annotations

import re
from datetime import date, datetime
from typing import Optional

from augurref.types.mempool_snapshot import MempoolSnapshot

PARTITION_DATE_FORMAT = "%Y-%m-%d"
SNAPSHOT_SUFFIX = ".json"

_PARTITION_NAME_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def to_local(moment: datetime) -> datetime:
    """Aware datetime in the system's local zone; naive input is taken to already be local time."""
    return moment.astimezone()


def partition_name(day: date) -> str:
    return day.strftime(PARTITION_DATE_FORMAT)


def parse_partition_name(name: str) -> Optional[date]:
    if _PARTITION_NAME_RE.match(name) is None:
        return None
    try:
        return datetime.strptime(name, PARTITION_DATE_FORMAT).date()
    except ValueError:
        return None


def partition_date(snapshot: MempoolSnapshot) -> date:
    return to_local(snapshot.timestamp).date()


def snapshot_filename(snapshot: MempoolSnapshot) -> str:
    return f"{snapshot.block_height}_{snapshot.epoch_seconds}{SNAPSHOT_SUFFIX}"
