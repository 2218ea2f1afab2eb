from __future__ import annotations

import os
import shutil
from datetime import date
from pathlib import Path

import pytest
from pytest_mock import MockerFixture

from augurref._tests.util.time_out_assert import time_out_assert
from augurref.persistence.retention import RetentionManager, RetentionMode, SweepResult, count_files

TODAY = date(2025, 1, 15)


def make_partitions(data_directory: Path, *names: str, files_per_partition: int = 2) -> None:
    for name in names:
        partition = data_directory / name
        partition.mkdir(parents=True)
        for i in range(files_per_partition):
            (partition / f"{i}_{i}.json").write_text("{}")


def remaining(data_directory: Path) -> list[str]:
    return sorted(p.name for p in data_directory.iterdir())


def test_partition_on_cutoff_is_kept(data_directory: Path) -> None:
    make_partitions(data_directory, "2025-01-12", "2025-01-13", "2025-01-14", "2025-01-15")
    manager = RetentionManager(data_directory=data_directory, retention_days=2, today=lambda: TODAY)

    assert manager.cutoff() == date(2025, 1, 13)
    assert manager.sweep() == SweepResult(directories_deleted=1, files_deleted=2, errors=0)
    assert remaining(data_directory) == ["2025-01-13", "2025-01-14", "2025-01-15"]


def test_only_dated_directories_are_deleted(data_directory: Path) -> None:
    make_partitions(data_directory, "2024-12-01", "backup", "2024-13-01")
    (data_directory / "2024-11-30").write_text("a file, not a partition")
    (data_directory / "README").write_text("keep me")
    make_partitions(data_directory, "2025-02-01")

    manager = RetentionManager(data_directory=data_directory, retention_days=1, today=lambda: TODAY)
    result = manager.sweep()

    assert result.directories_deleted == 1
    assert remaining(data_directory) == ["2024-11-30", "2024-13-01", "2025-02-01", "README", "backup"]


def test_nested_directories_are_counted(data_directory: Path) -> None:
    make_partitions(data_directory, "2025-01-01")
    nested = data_directory / "2025-01-01" / "nested"
    nested.mkdir()
    (nested / "extra.json").write_text("{}")

    manager = RetentionManager(data_directory=data_directory, retention_days=7, today=lambda: TODAY)
    assert manager.sweep() == SweepResult(directories_deleted=1, files_deleted=3, errors=0)


@pytest.mark.parametrize("retention_days", [0, -1])
def test_disabled_retention_deletes_nothing(data_directory: Path, retention_days: int) -> None:
    make_partitions(data_directory, "2020-01-01")
    manager = RetentionManager(data_directory=data_directory, retention_days=retention_days, today=lambda: TODAY)
    assert not manager.enabled
    assert manager.sweep() == SweepResult()
    assert remaining(data_directory) == ["2020-01-01"]


def test_missing_data_directory(tmp_path: Path) -> None:
    manager = RetentionManager(data_directory=tmp_path / "absent", retention_days=3, today=lambda: TODAY)
    assert manager.sweep() == SweepResult()


def test_inline_requires_enabled(data_directory: Path) -> None:
    assert RetentionManager(data_directory=data_directory, retention_days=3, mode=RetentionMode.INLINE).inline
    assert not RetentionManager(data_directory=data_directory, retention_days=0, mode=RetentionMode.INLINE).inline
    assert not RetentionManager(data_directory=data_directory, retention_days=3).inline


@pytest.mark.anyio
async def test_scheduled_sweep_runs_on_start(data_directory: Path) -> None:
    make_partitions(data_directory, "2025-01-01", "2025-01-15")
    manager = RetentionManager(
        data_directory=data_directory, retention_days=3, interval_seconds=3600, today=lambda: TODAY
    )
    manager.start()
    try:
        await time_out_assert(5, remaining, ["2025-01-15"], data_directory)
    finally:
        manager.close()
        await manager.await_closed()


@pytest.mark.anyio
@pytest.mark.parametrize("mode, retention_days", [(RetentionMode.INLINE, 3), (RetentionMode.SCHEDULED, 0)])
async def test_start_without_background_task(data_directory: Path, mode: RetentionMode, retention_days: int) -> None:
    make_partitions(data_directory, "2025-01-01")
    manager = RetentionManager(
        data_directory=data_directory, retention_days=retention_days, mode=mode, today=lambda: TODAY
    )
    manager.start()
    assert manager._periodic is None
    manager.close()
    await manager.await_closed()
    assert remaining(data_directory) == ["2025-01-01"]


def test_failed_delete_does_not_stop_sweep(
    data_directory: Path, mocker: MockerFixture, caplog: pytest.LogCaptureFixture
) -> None:
    make_partitions(data_directory, "2025-01-01", "2025-01-02", "2025-01-15")
    rmtree = shutil.rmtree

    def rmtree_failing_once(path: str) -> None:
        if os.path.basename(path) == "2025-01-01":
            raise PermissionError(13, "Permission denied", path)
        rmtree(path)

    mocker.patch("augurref.persistence.retention.shutil.rmtree", side_effect=rmtree_failing_once)
    manager = RetentionManager(data_directory=data_directory, retention_days=3, today=lambda: TODAY)

    assert manager.sweep() == SweepResult(directories_deleted=1, files_deleted=2, errors=1)
    assert remaining(data_directory) == ["2025-01-01", "2025-01-15"]
    assert "Failed to delete directory" in caplog.text


def test_count_files_logs_unreadable_directory(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    assert count_files(str(tmp_path / "absent")) == 0
    assert "Error counting files" in caplog.text
