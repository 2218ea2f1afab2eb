from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from augurref.estimation.fee_estimator_constants import ESTIMATE_WINDOW_SECONDS
from augurref.estimation.fee_estimator_interface import FeeEstimatorInterface
from augurref.persistence.snapshot_store import SnapshotStore
from augurref.service.mempool_collector import MempoolCollector, local_now
from augurref.types.fee_estimate import FeeEstimate
from augurref.types.mempool_snapshot import MempoolSnapshot


@dataclass
class FeeQueryService:
    """
    Read side of the service. Everything except `latest_estimate` re-reads the store and
    re-runs the estimator per call.

    "No data" is an empty FeeEstimate, not None: None from `latest_estimate` means nothing
    has been collected yet, and None from `estimates_over_range` means the request was
    invalid or every step came up empty.
    """

    store: SnapshotStore
    estimator: FeeEstimatorInterface
    collector: MempoolCollector
    now: Callable[[], datetime] = local_now
    log: logging.Logger = field(default_factory=lambda: logging.getLogger(__name__))

    def latest_estimate(self) -> Optional[FeeEstimate]:
        return self.collector.latest_estimate()

    async def _trailing_window(self, end: datetime) -> list[MempoolSnapshot]:
        snapshots = await self.store.range_query(end - timedelta(seconds=ESTIMATE_WINDOW_SECONDS), end)
        self.log.debug(f"Retrieved {len(snapshots)} snapshots for the day ending {end}")
        return snapshots

    async def latest_estimate_for_target(self, block_target: float) -> Optional[FeeEstimate]:
        last_day_snapshots = await self._trailing_window(self.now())
        if len(last_day_snapshots) == 0:
            self.log.warning("No snapshots available for fee estimation")
            return FeeEstimate.empty()
        return await asyncio.to_thread(self.estimator.calculate_estimates, last_day_snapshots, block_target)

    async def estimate_at_timestamp(self, unix_seconds: int) -> FeeEstimate:
        moment = datetime.fromtimestamp(unix_seconds, tz=timezone.utc).astimezone()
        last_day_snapshots = await self._trailing_window(moment)
        if len(last_day_snapshots) == 0:
            self.log.warning(f"No snapshots available for fee estimation at {unix_seconds}")
            return FeeEstimate.empty(moment.astimezone(timezone.utc))
        return await asyncio.to_thread(self.estimator.calculate_estimates, last_day_snapshots)

    async def estimates_over_range(
        self, start_unix_seconds: int, end_unix_seconds: int, interval_seconds: int
    ) -> Optional[list[FeeEstimate]]:
        if start_unix_seconds > end_unix_seconds:
            self.log.warning("Start timestamp is after end timestamp")
            return None
        if interval_seconds <= 0:
            raise ValueError(f"interval must be positive, got {interval_seconds}")

        estimates: list[FeeEstimate] = []
        current = start_unix_seconds
        while current < end_unix_seconds:
            self.log.debug(f"Processing fee estimate for {current}")
            fee_estimate = await self.estimate_at_timestamp(current)
            if not fee_estimate.is_empty():
                estimates.append(fee_estimate)
            else:
                self.log.debug(f"No valid fee estimate for {current}")
            current += interval_seconds

        if len(estimates) == 0:
            self.log.warning("No fee estimates collected for the date range")
            return None
        return estimates
