from __future__ import annotations

from typing import Any, Optional


class AugurError(Exception):
    pass


class SnapshotFormatError(AugurError, ValueError):
    def __init__(self, error_msg: str, source: Optional[str] = None):
        if source is not None:
            error_msg = f"{source}: {error_msg}"
        super().__init__(error_msg)
        self.source = source


class BitcoinRpcError(AugurError):
    def __init__(self, error_msg: str, rpc_error: Any = None):
        super().__init__(error_msg if rpc_error is None else f"{error_msg}: {rpc_error}")
        self.rpc_error = rpc_error
