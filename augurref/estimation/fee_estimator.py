from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Optional

from augurref.estimation.fee_estimator_constants import (
    DEFAULT_BLOCK_TARGETS,
    DEFAULT_PROBABILITIES,
    MAX_BLOCK_WEIGHT,
    MIN_FEE_RATE,
)
from augurref.types.fee_estimate import BlockTarget, FeeEstimate
from augurref.types.mempool_snapshot import MempoolSnapshot
from augurref.util.math import make_monotonically_decreasing, quantile


def inclusion_thresholds(snapshot: MempoolSnapshot, block_targets: Sequence[float]) -> list[float]:
    """
    For each target (ascending), the lowest fee rate that would still have been mined within
    `target` blocks had no other transaction arrived after the snapshot was taken.
    """
    ordered = sorted(snapshot.transactions, key=lambda tx: tx.fee_rate, reverse=True)
    thresholds: list[float] = []
    cumulative_weight = 0
    index = 0
    for target in block_targets:
        capacity = target * MAX_BLOCK_WEIGHT
        while index < len(ordered) and cumulative_weight + ordered[index].weight <= capacity:
            cumulative_weight += ordered[index].weight
            index += 1
        if index >= len(ordered):
            # everything fits, the mempool is shallower than `target` blocks
            thresholds.append(MIN_FEE_RATE)
        else:
            # the next transaction does not fit, so it has to be outbid
            thresholds.append(max(ordered[index].fee_rate, MIN_FEE_RATE))
    return thresholds


@dataclass
class MempoolFeeEstimator:
    """
    Reference estimator: projects each snapshot's mempool onto upcoming blocks and reads
    the per-probability fee rate off the distribution of those projections over the window.
    """

    block_targets: Sequence[float] = DEFAULT_BLOCK_TARGETS
    probabilities: Sequence[float] = DEFAULT_PROBABILITIES
    log: logging.Logger = field(default_factory=lambda: logging.getLogger(__name__))

    def calculate_estimates(
        self, snapshots: Sequence[MempoolSnapshot], block_target: Optional[float] = None
    ) -> FeeEstimate:
        if len(snapshots) == 0:
            return FeeEstimate.empty()
        timestamp = max(snapshot.timestamp for snapshot in snapshots)

        if block_target is None:
            targets = sorted(self.block_targets)
        elif math.isfinite(block_target) and block_target > 0:
            targets = [block_target]
        else:
            self.log.warning(f"Ignoring invalid block target {block_target}")
            return FeeEstimate.empty(timestamp)

        per_target: list[list[float]] = [[] for _ in targets]
        for snapshot in snapshots:
            for i, threshold in enumerate(inclusion_thresholds(snapshot, targets)):
                per_target[i].append(threshold)
        for values in per_target:
            values.sort()

        rates_by_probability = {
            probability: make_monotonically_decreasing([quantile(values, probability) for values in per_target])
            for probability in sorted(self.probabilities)
        }
        estimates = {
            target: BlockTarget(
                probabilities={probability: rates[i] for probability, rates in rates_by_probability.items()}
            )
            for i, target in enumerate(targets)
        }
        self.log.debug(f"Calculated estimates for {len(targets)} targets from {len(snapshots)} snapshots")
        return FeeEstimate(timestamp=timestamp, estimates=estimates)
