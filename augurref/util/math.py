from __future__ import annotations

from collections.abc import Sequence


def clamp(n: float, smallest: float, largest: float) -> float:
    return max(smallest, min(n, largest))


def make_monotonically_decreasing(seq: list[float]) -> list[float]:
    out: list[float] = []
    if len(seq) > 0:
        min = seq[0]
        for n in seq:
            if n <= min:
                out.append(n)
                min = n
            else:
                out.append(min)
    return out


def quantile(sorted_values: Sequence[float], q: float) -> float:
    """Linear interpolation between closest ranks. `sorted_values` must be sorted ascending and non-empty."""
    if len(sorted_values) == 0:
        raise ValueError("quantile of an empty sequence")
    position = clamp(q, 0.0, 1.0) * (len(sorted_values) - 1)
    lower = int(position)
    upper = min(lower + 1, len(sorted_values) - 1)
    fraction = position - lower
    return sorted_values[lower] + (sorted_values[upper] - sorted_values[lower]) * fraction
