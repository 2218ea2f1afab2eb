from __future__ import annotations

import asyncio
import enum
import logging
import os
import shutil
import time
from dataclasses import dataclass, field
from datetime import date, timedelta
from pathlib import Path
from typing import Callable, Optional

from augurref.persistence.partitions import parse_partition_name
from augurref.util.periodic_task import PeriodicTask

log = logging.getLogger(__name__)


class RetentionMode(str, enum.Enum):
    SCHEDULED = "scheduled"
    INLINE = "inline"


@dataclass(frozen=True)
class SweepResult:
    directories_deleted: int = 0
    files_deleted: int = 0
    errors: int = 0


def count_files(directory: str) -> int:
    def on_error(e: OSError) -> None:
        log.warning(f"Error counting files in directory {directory}: {e}")

    return sum(len(files) for _, _, files in os.walk(directory, onerror=on_error))


@dataclass
class RetentionManager:
    """
    Deletes whole date partitions of the data directory once they fall out of the retention
    window. A partition dated `today - retention_days` is kept; anything strictly older goes.
    Directories whose name is not a date are never touched, and neither are plain files.
    """

    data_directory: Path
    retention_days: int
    mode: RetentionMode = RetentionMode.SCHEDULED
    interval_seconds: float = 3600
    today: Callable[[], date] = date.today
    log: logging.Logger = field(default_factory=lambda: logging.getLogger(__name__))
    _periodic: Optional[PeriodicTask] = None

    @property
    def enabled(self) -> bool:
        return self.retention_days > 0

    @property
    def inline(self) -> bool:
        return self.enabled and self.mode is RetentionMode.INLINE

    def cutoff(self) -> date:
        return self.today() - timedelta(days=self.retention_days)

    def sweep(self) -> SweepResult:
        if not self.enabled:
            return SweepResult()

        start_time = time.monotonic()
        if not self.data_directory.is_dir():
            self.log.debug(f"Data directory does not exist: {self.data_directory}")
            return SweepResult()

        cutoff = self.cutoff()
        self.log.debug(f"Cleaning up partitions older than {cutoff}")

        directories_deleted = 0
        files_deleted = 0
        errors = 0
        try:
            entries = list(os.scandir(self.data_directory))
        except OSError as e:
            self.log.error(f"Error listing data directory {self.data_directory}: {e}")
            return SweepResult(errors=1)

        for entry in entries:
            partition_date = parse_partition_name(entry.name)
            if partition_date is None or partition_date >= cutoff:
                continue
            try:
                if not entry.is_dir(follow_symlinks=False):
                    continue
                file_count = count_files(entry.path)
                shutil.rmtree(entry.path)
            except FileNotFoundError:
                self.log.debug(f"Partition {entry.name} disappeared before it could be deleted")
                continue
            except OSError as e:
                errors += 1
                self.log.error(f"Failed to delete directory {entry.path}: {e}")
                continue
            directories_deleted += 1
            files_deleted += file_count
            self.log.info(f"Deleted directory: {entry.name} (contained {file_count} files)")

        elapsed = time.monotonic() - start_time
        self.log.info(
            f"Mempool cleanup completed in {elapsed:.2f} seconds: deleted {directories_deleted} directories "
            f"({files_deleted} files), {errors} errors"
        )
        return SweepResult(directories_deleted=directories_deleted, files_deleted=files_deleted, errors=errors)

    async def sweep_async(self) -> SweepResult:
        return await asyncio.to_thread(self.sweep)

    async def _scheduled_sweep(self) -> None:
        await self.sweep_async()

    def start(self) -> None:
        if not self.enabled:
            self.log.info(f"Mempool data cleanup disabled (retention_days={self.retention_days})")
            return
        if self.mode is RetentionMode.INLINE:
            self.log.info(f"Mempool data cleanup runs after every snapshot, {self.retention_days} day retention")
            return

        self.log.info(
            f"Starting mempool data cleanup with {self.retention_days} day retention, "
            f"checking every {self.interval_seconds} seconds"
        )
        self._periodic = PeriodicTask(
            name="mempool-cleanup", interval=self.interval_seconds, tick=self._scheduled_sweep, log=self.log
        )
        self._periodic.start()

    def close(self) -> None:
        if self._periodic is not None:
            self.log.info("Stopping mempool data cleanup")
            self._periodic.close()

    async def await_closed(self) -> None:
        if self._periodic is not None:
            await self._periodic.await_closed()
            self._periodic = None
