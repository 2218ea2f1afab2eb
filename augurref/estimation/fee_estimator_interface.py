from __future__ import annotations

from collections.abc import Sequence
from typing import Optional

from typing_extensions import Protocol

from augurref.types.fee_estimate import FeeEstimate
from augurref.types.mempool_snapshot import MempoolSnapshot


class FeeEstimatorInterface(Protocol):
    def calculate_estimates(
        self, snapshots: Sequence[MempoolSnapshot], block_target: Optional[float] = None
    ) -> FeeEstimate:
        """
        snapshots: ordered oldest first
        block_target: when given, only this confirmation target is estimated
        Must not mutate its input or keep state between calls.
        """
