from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Union


@contextmanager
def log_exceptions(
    log: logging.Logger,
    *,
    consume: bool = False,
    message: str = "Caught exception",
    level: int = logging.ERROR,
    show_traceback: bool = True,
    exceptions_to_process: Union[type[BaseException], tuple[type[BaseException], ...]] = Exception,
) -> Iterator[None]:
    """Log exceptions raised in the block, re-raising them unless `consume` is set."""
    try:
        yield
    except exceptions_to_process as e:
        log.log(level, f"{message}: {type(e).__name__}: {e}", exc_info=show_traceback)
        if not consume:
            raise
