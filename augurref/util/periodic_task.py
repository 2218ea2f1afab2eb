from __future__ import annotations

import asyncio
import contextlib
import logging
import math
from collections.abc import Awaitable
from dataclasses import dataclass, field
from typing import Callable, Optional

from augurref.util.log_exceptions import log_exceptions
from augurref.util.task_referencer import create_referenced_task


@dataclass
class PeriodicTask:
    """
    Runs `tick` on a fixed-rate schedule: run k is due at start + k * interval.

    A tick that raises is logged and the schedule carries on. A tick that overruns one or
    more periods skips the missed slots rather than firing them back to back. `close`
    only stops future runs; a tick already running is allowed to finish.
    """

    name: str
    interval: float
    tick: Callable[[], Awaitable[None]]
    log: logging.Logger = field(default_factory=lambda: logging.getLogger(__name__))
    _task: Optional[asyncio.Task[None]] = None
    _wake: Optional[asyncio.Event] = None
    _shut_down: bool = False

    def __post_init__(self) -> None:
        if self.interval <= 0:
            raise ValueError(f"{self.name}: interval must be positive, got {self.interval}")

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self._task is not None:
            raise RuntimeError(f"{self.name} already started")
        self._shut_down = False
        self._wake = asyncio.Event()
        self._task = create_referenced_task(self._run(), name=self.name)

    def close(self) -> None:
        self._shut_down = True
        if self._wake is not None:
            self._wake.set()

    async def await_closed(self) -> None:
        if self._task is not None:
            await self._task
            self._task = None

    async def _run(self) -> None:
        assert self._wake is not None
        loop = asyncio.get_running_loop()
        next_run = loop.time()
        while not self._shut_down:
            with log_exceptions(self.log, consume=True, message=f"Error in {self.name}"):
                await self.tick()

            next_run += self.interval
            now = loop.time()
            if next_run < now:
                missed = math.ceil((now - next_run) / self.interval)
                self.log.warning(f"{self.name} overran its interval, skipping {missed} run(s)")
                next_run += missed * self.interval
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._wake.wait(), timeout=next_run - now)
