from __future__ import annotations

from datetime import timezone
from pathlib import Path

import pytest

from augurref._tests.util.misc import T0, FakeMempoolSource, make_snapshot, tx_at_rate, utc_datetime
from augurref.estimation.fee_estimator import MempoolFeeEstimator
from augurref.persistence.snapshot_store import FileSnapshotStore
from augurref.service.fee_query import FeeQueryService
from augurref.service.mempool_collector import MempoolCollector
from augurref.types.fee_estimate import EPOCH

MEMPOOL = [tx_at_rate(100), tx_at_rate(50), tx_at_rate(20), tx_at_rate(10)]


def fee_query_service(data_directory: Path, now_unix_seconds: int = T0 + 60) -> FeeQueryService:
    store = FileSnapshotStore(data_directory=data_directory)
    estimator = MempoolFeeEstimator()
    collector = MempoolCollector(node_client=FakeMempoolSource([(1, [])]), store=store, estimator=estimator)
    return FeeQueryService(
        store=store,
        estimator=estimator,
        collector=collector,
        now=lambda: utc_datetime(now_unix_seconds).astimezone(),
    )


async def seed(service: FeeQueryService, *unix_seconds: int) -> None:
    for i, moment in enumerate(unix_seconds):
        await service.store.append(make_snapshot(883000 + i, utc_datetime(moment), MEMPOOL))


@pytest.mark.anyio
async def test_latest_estimate_before_collection(data_directory: Path) -> None:
    assert fee_query_service(data_directory).latest_estimate() is None


@pytest.mark.anyio
async def test_estimate_for_target(data_directory: Path) -> None:
    service = fee_query_service(data_directory)
    await seed(service, T0)

    estimate = await service.latest_estimate_for_target(1)
    assert estimate is not None
    assert estimate.estimates.keys() == {1}
    assert estimate.timestamp == utc_datetime(T0)
    assert estimate.estimates[1].probabilities[0.5] == 20.0


@pytest.mark.anyio
async def test_estimate_for_target_without_data(data_directory: Path) -> None:
    estimate = await fee_query_service(data_directory).latest_estimate_for_target(6)
    assert estimate is not None
    assert estimate.is_empty()
    assert estimate.timestamp == EPOCH


@pytest.mark.anyio
async def test_estimate_at_timestamp_uses_trailing_day(data_directory: Path) -> None:
    service = fee_query_service(data_directory)
    await seed(service, T0 - 3600, T0)

    estimate = await service.estimate_at_timestamp(T0 + 60)
    assert not estimate.is_empty()
    assert estimate.timestamp == utc_datetime(T0)

    # only the older snapshot is visible from before T0
    estimate = await service.estimate_at_timestamp(T0 - 1)
    assert estimate.timestamp == utc_datetime(T0 - 3600)

    # both snapshots have left the window a day later
    late = await service.estimate_at_timestamp(T0 + 86_401)
    assert late.is_empty()
    assert late.timestamp == utc_datetime(T0 + 86_401)
    assert late.timestamp.tzinfo == timezone.utc


@pytest.mark.anyio
async def test_estimate_before_any_data(data_directory: Path) -> None:
    service = fee_query_service(data_directory)
    await seed(service, T0)
    estimate = await service.estimate_at_timestamp(T0 - 60)
    assert estimate.is_empty()


@pytest.mark.anyio
async def test_estimates_over_range(data_directory: Path) -> None:
    service = fee_query_service(data_directory)
    await seed(service, T0)

    # steps at T0 - 3600 (nothing yet), T0 and T0 + 3600
    estimates = await service.estimates_over_range(T0 - 3600, T0 + 7200, 3600)
    assert estimates is not None
    assert len(estimates) == 2
    assert all(estimate.timestamp == utc_datetime(T0) for estimate in estimates)


@pytest.mark.anyio
async def test_estimates_over_range_excludes_end(data_directory: Path) -> None:
    service = fee_query_service(data_directory)
    await seed(service, T0)
    assert await service.estimates_over_range(T0 - 3600, T0, 3600) is None
    assert await service.estimates_over_range(T0, T0, 3600) is None


@pytest.mark.anyio
async def test_estimates_over_range_rejects_backwards_range(data_directory: Path) -> None:
    service = fee_query_service(data_directory)
    await seed(service, T0)
    assert await service.estimates_over_range(T0 + 3600, T0, 60) is None


@pytest.mark.anyio
async def test_estimates_over_range_without_data(data_directory: Path) -> None:
    assert await fee_query_service(data_directory).estimates_over_range(T0, T0 + 7200, 600) is None


@pytest.mark.anyio
@pytest.mark.parametrize("interval", [0, -60])
async def test_estimates_over_range_rejects_interval(data_directory: Path, interval: int) -> None:
    with pytest.raises(ValueError):
        await fee_query_service(data_directory).estimates_over_range(T0, T0 + 7200, interval)
