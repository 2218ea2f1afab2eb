from __future__ import annotations

import asyncio
import time
from typing import Any, Callable


async def time_out_assert(timeout: float, function: Callable[..., Any], value: object = True, *args: object) -> None:
    __tracebackhide__ = True

    start = time.monotonic()
    while True:
        if asyncio.iscoroutinefunction(function):
            f_res = await function(*args)
        else:
            f_res = function(*args)
        if f_res == value:
            return
        if time.monotonic() - start > timeout:
            break
        await asyncio.sleep(0.01)
    assert False, f"Timed assertion timed out after {timeout} seconds: expected {value!r}, got {f_res!r}"
