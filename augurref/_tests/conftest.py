from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Iterator
from pathlib import Path

import pytest

from augurref._tests.util.misc import RecordingBitcoinNode


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(name="data_directory")
def data_directory_fixture(tmp_path: Path) -> Path:
    return tmp_path / "mempool_data"


@pytest.fixture(name="bitcoin_node")
async def bitcoin_node_fixture() -> AsyncIterator[RecordingBitcoinNode]:
    node = await RecordingBitcoinNode.create(hostname="127.0.0.1", port=0)
    try:
        yield node
    finally:
        await node.await_closed()


@pytest.fixture(name="restore_root_logger")
def restore_root_logger_fixture() -> Iterator[logging.Logger]:
    root_logger = logging.getLogger()
    handlers = list(root_logger.handlers)
    level = root_logger.level
    try:
        yield root_logger
    finally:
        for handler in root_logger.handlers:
            if handler not in handlers:
                root_logger.removeHandler(handler)
                handler.close()
        root_logger.setLevel(level)
