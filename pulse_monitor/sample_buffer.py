"""
Bounded FIFO window of brightness samples.

The buffer is bounded by sample *count*, not by time: at a 60 Hz tick rate
the default capacity of 300 covers about five seconds, at lower rates it
covers proportionally more.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Deque, Tuple

import numpy as np

MAX_SAMPLES = 60 * 5


@dataclass(frozen=True)
class Sample:
    """One brightness reading.  ``time`` is in monotonic milliseconds."""

    value: float
    time: float


class SampleBuffer:
    """
    Sliding window of the most recent samples in chronological order.

    Parameters
    ----------
    max_samples:
        Capacity.  Pushing onto a full buffer evicts exactly one sample
        from the front.
    """

    def __init__(self, max_samples: int = MAX_SAMPLES) -> None:
        if max_samples < 1:
            raise ValueError(f"max_samples must be positive, got {max_samples}")
        self._samples: Deque[Sample] = deque(maxlen=max_samples)

    def __len__(self) -> int:
        return len(self._samples)

    @property
    def capacity(self) -> int:
        return self._samples.maxlen

    @property
    def fill_ratio(self) -> float:
        """How full the buffer is (0 – 1)."""
        return len(self._samples) / self._samples.maxlen

    def reset(self) -> None:
        """Drop every sample."""
        self._samples.clear()

    def push(self, sample: Sample) -> None:
        self._samples.append(sample)

    def snapshot(self) -> Tuple[Sample, ...]:
        """Return the current contents as an immutable, ordered tuple."""
        return tuple(self._samples)

    def values(self) -> np.ndarray:
        """Sample values in chronological order as a float64 array."""
        return np.fromiter((s.value for s in self._samples), dtype=np.float64,
                           count=len(self._samples))
