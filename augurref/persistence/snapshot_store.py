from __future__ import annotations

import asyncio
import json
import logging
import os
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Optional

import aiofiles
from typing_extensions import Protocol

from augurref.persistence.partitions import (
    SNAPSHOT_SUFFIX,
    partition_date,
    partition_name,
    snapshot_filename,
    to_local,
)
from augurref.persistence.retention import RetentionManager
from augurref.types.mempool_snapshot import MempoolSnapshot
from augurref.util.errors import SnapshotFormatError
from augurref.util.files import write_file_async
from augurref.util.log_exceptions import log_exceptions


class SnapshotStore(Protocol):
    async def append(self, snapshot: MempoolSnapshot) -> None:
        """Persist a snapshot. Raises OSError if it could not be written."""

    async def range_query(self, start: datetime, end: datetime) -> list[MempoolSnapshot]:
        """Snapshots with start <= timestamp <= end, oldest first. Naive bounds are local time."""


@dataclass
class FileSnapshotStore:
    """
    One JSON document per snapshot, grouped into one directory per local calendar date:

        <data_directory>/2025-01-15/883042_1736935200.json

    Files are write-once and only ever removed together with their whole partition.
    """

    data_directory: Path
    retention: Optional[RetentionManager] = None
    log: logging.Logger = field(default_factory=lambda: logging.getLogger(__name__))

    def __post_init__(self) -> None:
        self.log.debug(f"Initializing mempool persistence with data directory: {self.data_directory}")
        self.data_directory.mkdir(parents=True, exist_ok=True)

    def partition_directory(self, day: date) -> Path:
        return self.data_directory / partition_name(day)

    def snapshot_path(self, snapshot: MempoolSnapshot) -> Path:
        return self.partition_directory(partition_date(snapshot)) / snapshot_filename(snapshot)

    async def append(self, snapshot: MempoolSnapshot) -> None:
        path = self.snapshot_path(snapshot)
        self.log.debug(f"Saving snapshot to {path}")
        await write_file_async(path, json.dumps(snapshot.to_json_dict()))

        if self.retention is not None and self.retention.inline:
            with log_exceptions(self.log, consume=True, message="Error during mempool data cleanup"):
                await self.retention.sweep_async()

    async def range_query(self, start: datetime, end: datetime) -> list[MempoolSnapshot]:
        start_local = to_local(start)
        end_local = to_local(end)
        self.log.debug(f"Fetching snapshots from {start_local} to {end_local}")

        snapshots: list[MempoolSnapshot] = []
        day = start_local.date()
        while day <= end_local.date():
            for path in await asyncio.to_thread(self._list_partition, day):
                snapshot = await self._read_snapshot(path)
                if snapshot is not None and start_local <= snapshot.timestamp <= end_local:
                    snapshots.append(snapshot)
            day += timedelta(days=1)

        snapshots.sort(key=lambda s: (s.timestamp, s.block_height))
        self.log.debug(f"Found {len(snapshots)} snapshots in date range")
        return snapshots

    def _list_partition(self, day: date) -> list[Path]:
        directory = self.partition_directory(day)
        try:
            with os.scandir(directory) as entries:
                names = [entry.name for entry in entries if entry.name.endswith(SNAPSHOT_SUFFIX)]
        except (FileNotFoundError, NotADirectoryError):
            return []
        except OSError as e:
            self.log.error(f"Error listing partition {directory}: {e}")
            return []
        return [directory / name for name in sorted(names)]

    async def _read_snapshot(self, path: Path) -> Optional[MempoolSnapshot]:
        try:
            async with aiofiles.open(path, encoding="utf-8") as f:
                contents = await f.read()
        except FileNotFoundError:
            self.log.warning(f"Snapshot file {path} disappeared before it could be read")
            return None
        except (OSError, UnicodeDecodeError) as e:
            self.log.error(f"Error reading snapshot file {path}: {e}")
            return None

        try:
            return MempoolSnapshot.from_json_dict(json.loads(contents), source=str(path))
        except (json.JSONDecodeError, SnapshotFormatError) as e:
            self.log.error(f"Error reading snapshot file {path}: {e}")
            return None
