"""
Adaptive pacing after successful writes.

When recent batches arrive full (at batch_size) the producer is saturated and
no extra delay is added. When they shrink, the sink sleeps in proportion to
the spare headroom, easing pressure on the store.
"""

from __future__ import annotations

import math
from collections import deque
from dataclasses import dataclass
from typing import Iterator

HISTORY_CAPACITY = 20


class BatchSizeHistory:
    """Fixed-capacity FIFO of recent batch sizes."""

    def __init__(self, capacity: int = HISTORY_CAPACITY):
        if capacity <= 0:
            raise ValueError("capacity must be > 0")
        self._sizes: deque[int] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._sizes.maxlen

    def append(self, size: int) -> None:
        self._sizes.append(size)

    def max(self) -> int:
        return max(self._sizes)

    def __len__(self) -> int:
        return len(self._sizes)

    def __iter__(self) -> Iterator[int]:
        return iter(self._sizes)


@dataclass(frozen=True)
class PacingParameters:
    batch_size: int
    min_delay_ms: int = 0
    max_delay_ms: int = 0  # 0 disables adaptive pacing

    def __post_init__(self):
        if self.batch_size <= 0:
            raise ValueError("batch_size must be > 0")
        if self.min_delay_ms < 0 or self.max_delay_ms < 0:
            raise ValueError("delays must be >= 0")


class PacingCalculator:
    """Derives the post-write sleep from the largest recent batch."""

    def __init__(self, params: PacingParameters, history: BatchSizeHistory | None = None):
        self.params = params
        self.history = history if history is not None else BatchSizeHistory()

    def compute_delay(self, new_batch_size: int) -> int:
        """Record new_batch_size and return the delay in ms before the next delivery."""
        self.history.append(new_batch_size)

        p = self.params
        if p.max_delay_ms == 0:
            return p.min_delay_ms

        observed = min(p.batch_size, self.history.max())
        ratio = 1.0 - observed / p.batch_size
        return max(p.min_delay_ms, math.floor(p.max_delay_ms * ratio))
