from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


@dataclass(frozen=True)
class BlockTarget:
    """
    probabilities: maps a confirmation probability in (0, 1] to the fee rate (sat/vbyte)
    needed to be confirmed within the target number of blocks with that probability.
    """

    probabilities: dict[float, float] = field(default_factory=dict)


@dataclass(frozen=True)
class FeeEstimate:
    """
    timestamp: capture time of the newest snapshot in the window the estimate was computed from
    estimates: keyed by confirmation target in blocks, which may be fractional
    """

    timestamp: datetime
    estimates: dict[float, BlockTarget] = field(default_factory=dict)

    @classmethod
    def empty(cls, timestamp: datetime = EPOCH) -> FeeEstimate:
        return cls(timestamp=timestamp, estimates={})

    def is_empty(self) -> bool:
        return len(self.estimates) == 0
