from __future__ import annotations

MAX_BLOCK_WEIGHT = 4_000_000  # consensus block weight limit

MIN_FEE_RATE = 1.0  # sat/vbyte, default minimum relay fee rate

DEFAULT_BLOCK_TARGETS: tuple[float, ...] = (3, 6, 9, 12, 18, 24, 36, 48, 72, 96, 144)
DEFAULT_PROBABILITIES: tuple[float, ...] = (0.05, 0.20, 0.50, 0.80, 0.95)

ESTIMATE_WINDOW_SECONDS = 24 * 60 * 60
