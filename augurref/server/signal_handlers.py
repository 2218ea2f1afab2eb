from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import functools
import signal
import sys
from collections.abc import AsyncIterator
from types import FrameType
from typing import Optional, final

from typing_extensions import Protocol


class Handler(Protocol):
    def __call__(
        self,
        signal_: signal.Signals,
        stack_frame: Optional[FrameType],
        loop: asyncio.AbstractEventLoop,
    ) -> None: ...


@final
@dataclasses.dataclass
class SignalHandlers:
    """Routes SIGINT/SIGTERM to a shutdown handler and restores the defaults on exit."""

    installed: list[signal.Signals] = dataclasses.field(default_factory=list)

    @classmethod
    @contextlib.asynccontextmanager
    async def manage(cls) -> AsyncIterator[SignalHandlers]:
        self = cls()
        try:
            yield self
        finally:
            self.remove_handlers()

    def remove_handlers(self) -> None:
        if sys.platform == "win32" or sys.platform == "cygwin":
            for signal_ in self.installed:
                signal.signal(signal_, signal.SIG_DFL)
        else:
            loop = asyncio.get_running_loop()
            for signal_ in self.installed:
                loop.remove_signal_handler(signal_)
        self.installed.clear()

    def setup_sync_signal_handler(self, handler: Handler) -> None:
        loop = asyncio.get_running_loop()

        if sys.platform == "win32" or sys.platform == "cygwin":

            def ensure_signal_object_not_int(
                signal_: int,
                stack_frame: Optional[FrameType],
                *,
                handler: Handler = handler,
                loop: asyncio.AbstractEventLoop = loop,
            ) -> None:
                signal_ = signal.Signals(signal_)
                # signal.signal handlers run outside the loop
                loop.call_soon_threadsafe(functools.partial(handler, signal_=signal_, stack_frame=stack_frame, loop=loop))

            for signal_ in [signal.SIGBREAK, signal.SIGINT, signal.SIGTERM]:
                signal.signal(signal_, ensure_signal_object_not_int)
                self.installed.append(signal_)
        else:
            for signal_ in [signal.SIGINT, signal.SIGTERM]:
                loop.add_signal_handler(
                    signal_,
                    functools.partial(handler, signal_=signal_, stack_frame=None, loop=loop),
                )
                self.installed.append(signal_)
