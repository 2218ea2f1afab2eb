from __future__ import annotations

import asyncio
import logging
import signal
import sys
from dataclasses import dataclass
from pathlib import Path
from types import FrameType
from typing import Optional

import click
from setproctitle import setproctitle

from augurref import __version__
from augurref.estimation.fee_estimator import MempoolFeeEstimator
from augurref.persistence.retention import RetentionManager
from augurref.persistence.snapshot_store import FileSnapshotStore
from augurref.rpc.bitcoin_rpc_client import BitcoinRpcClient
from augurref.rpc.fee_api import FeeRpcApi
from augurref.server.signal_handlers import SignalHandlers
from augurref.service.fee_query import FeeQueryService
from augurref.service.mempool_collector import MempoolCollector, MempoolSource
from augurref.util.augur_logging import initialize_logging
from augurref.util.config import AppConfig, load_config, log_config_summary
from augurref.util.default_root import resolve_root_path
from augurref.util.network import WebServer

SERVICE_NAME = "augur_reference"
log = logging.getLogger(__name__)


@dataclass
class AugurService:
    """
    Owns every long-lived component. Start order is retention, collector, web server;
    shutdown runs in reverse so nothing is queried after its backing store stops.
    """

    config: AppConfig
    node_client: MempoolSource
    retention: RetentionManager
    collector: MempoolCollector
    fee_api: FeeRpcApi
    shutdown_event: asyncio.Event
    webserver: Optional[WebServer] = None

    @classmethod
    def create(cls, config: AppConfig, root_path: Path, node_client: MempoolSource) -> AugurService:
        data_directory = config.persistence.data_path(root_path)
        retention = RetentionManager(
            data_directory=data_directory,
            retention_days=config.persistence.retention_days,
            mode=config.persistence.retention_mode,
            interval_seconds=config.persistence.retention_interval_seconds,
        )
        store = FileSnapshotStore(data_directory=data_directory, retention=retention)
        estimator = MempoolFeeEstimator()
        collector = MempoolCollector(
            node_client=node_client,
            store=store,
            estimator=estimator,
            collection_interval=config.collector.interval_seconds,
        )
        fee_query = FeeQueryService(store=store, estimator=estimator, collector=collector)
        return cls(
            config=config,
            node_client=node_client,
            retention=retention,
            collector=collector,
            fee_api=FeeRpcApi(fee_query),
            shutdown_event=asyncio.Event(),
        )

    async def start(self, signal_handlers: Optional[SignalHandlers] = None) -> None:
        if self.webserver is not None:
            raise RuntimeError("AugurService already started")

        if signal_handlers is not None:
            signal_handlers.setup_sync_signal_handler(handler=self._accept_signal)

        log.info(f"Starting {SERVICE_NAME} {__version__}")
        self.retention.start()
        self.collector.start()
        self.webserver = await WebServer.create(
            hostname=self.config.server.host,
            port=self.config.server.port,
            routes=self.fee_api.routes(),
        )
        log.info(f"Serving fee estimates on {self.webserver.hostname}:{self.webserver.listen_port}")

    def close(self) -> None:
        if self.shutdown_event.is_set():
            return
        self.shutdown_event.set()
        log.info(f"Stop triggered for {SERVICE_NAME}")
        if self.webserver is not None:
            self.webserver.close()
        self.collector.close()
        self.retention.close()

    async def await_closed(self) -> None:
        if self.webserver is not None:
            await self.webserver.await_closed()
            self.webserver = None
        await self.collector.await_closed()
        await self.retention.await_closed()
        log.info(f"{SERVICE_NAME} stopped")

    def _accept_signal(
        self,
        signal_: signal.Signals,
        stack_frame: Optional[FrameType],
        loop: asyncio.AbstractEventLoop,
    ) -> None:
        log.info("Received signal %s (%s), shutting down.", signal_.name, signal_.value)
        self.close()


async def async_start(root_path: Path) -> int:
    config = load_config()
    setproctitle(SERVICE_NAME)
    initialize_logging(
        service_name=SERVICE_NAME,
        logging_config=config.logging,
        root_path=root_path,
    )
    log_config_summary(config, root_path)

    async with BitcoinRpcClient.create_as_context(
        url=config.bitcoin_rpc.url,
        username=config.bitcoin_rpc.username,
        password=config.bitcoin_rpc.password,
        timeout=config.bitcoin_rpc.timeout_seconds,
    ) as node_client:
        service = AugurService.create(config=config, root_path=root_path, node_client=node_client)
        async with SignalHandlers.manage() as signal_handlers:
            await service.start(signal_handlers=signal_handlers)
            await service.shutdown_event.wait()
            await service.await_closed()

    return 0


@click.command()
@click.option(
    "-r",
    "--root-path",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Root for relative data and log paths [default: $AUGUR_ROOT or the working directory]",
)
def main(root_path: Optional[Path] = None) -> int:
    return asyncio.run(async_start(resolve_root_path(override=root_path)))


if __name__ == "__main__":
    sys.exit(main())
