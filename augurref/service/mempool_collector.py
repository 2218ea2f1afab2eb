from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Optional

from typing_extensions import Protocol

from augurref.estimation.fee_estimator_constants import ESTIMATE_WINDOW_SECONDS
from augurref.estimation.fee_estimator_interface import FeeEstimatorInterface
from augurref.persistence.snapshot_store import SnapshotStore
from augurref.types.fee_estimate import FeeEstimate
from augurref.types.mempool_snapshot import MempoolSnapshot, MempoolTransaction
from augurref.util.latest_value import LatestValue
from augurref.util.log_exceptions import log_exceptions
from augurref.util.periodic_task import PeriodicTask


class MempoolSource(Protocol):
    async def get_height_and_mempool_transactions(self) -> tuple[int, list[MempoolTransaction]]: ...


def local_now() -> datetime:
    now = datetime.now().astimezone()
    return now.replace(microsecond=now.microsecond - now.microsecond % 1000)


@dataclass
class MempoolCollector:
    """
    Samples the node's mempool on a fixed-rate schedule, persists every sample and keeps
    the estimate over the trailing window in a single slot readers can poll without blocking.
    """

    node_client: MempoolSource
    store: SnapshotStore
    estimator: FeeEstimatorInterface
    collection_interval: float = 30
    now: Callable[[], datetime] = local_now
    log: logging.Logger = field(default_factory=lambda: logging.getLogger(__name__))
    _latest_fee_estimate: LatestValue[FeeEstimate] = field(default_factory=LatestValue)
    _periodic: Optional[PeriodicTask] = None

    def latest_estimate(self) -> Optional[FeeEstimate]:
        return self._latest_fee_estimate.get()

    def start(self) -> None:
        if self._periodic is not None:
            raise RuntimeError("MempoolCollector already started")
        self.log.info(f"Starting mempool data collection every {self.collection_interval} seconds")
        self._periodic = PeriodicTask(
            name="mempool-collector",
            interval=self.collection_interval,
            tick=self.update_fee_estimates,
            log=self.log,
        )
        self._periodic.start()

    def close(self) -> None:
        if self._periodic is not None:
            self.log.info("Stopping mempool data collection")
            self._periodic.close()

    async def await_closed(self) -> None:
        if self._periodic is not None:
            await self._periodic.await_closed()
            self._periodic = None

    async def update_fee_estimates(self) -> None:
        start_time = time.monotonic()
        self.log.debug("Collecting mempool data")

        block_height, transactions = await self.node_client.get_height_and_mempool_transactions()
        self.log.debug(f"Got mempool data: {len(transactions)} transactions at height {block_height}")
        now = self.now()
        snapshot = MempoolSnapshot.from_mempool_transactions(
            transactions=transactions, block_height=block_height, timestamp=now
        )

        with log_exceptions(self.log, consume=True, message="Error saving mempool snapshot"):
            await self.store.append(snapshot)
            self.log.info(f"Mempool snapshot saved: {len(transactions)} transactions at height {block_height}")

        last_day_snapshots = await self.store.range_query(now - timedelta(seconds=ESTIMATE_WINDOW_SECONDS), now)
        self.log.debug(f"Retrieved {len(last_day_snapshots)} snapshots from the last day")

        if len(last_day_snapshots) > 0:
            previous_fee_estimate = self._latest_fee_estimate.get()
            new_fee_estimate = await asyncio.to_thread(self.estimator.calculate_estimates, last_day_snapshots)
            # an overlapping update may have published while this one was estimating
            if self._latest_fee_estimate.compare_and_set(previous_fee_estimate, new_fee_estimate):
                self.log.info("Fee estimates updated")
            else:
                self.log.info("Fee estimates were updated concurrently, discarding this result")
        else:
            self.log.warning("No snapshots available for fee estimation")

        self.log.info(f"Updating fee estimates finished in {time.monotonic() - start_time:.2f} seconds")
