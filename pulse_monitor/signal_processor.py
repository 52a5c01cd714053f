"""
PPG signal analysis in the time domain.

Algorithm
---------
1. Compute the mean, minimum and maximum of every sample in the window.
   The whole window is re-scanned on each tick; there is no running
   baseline, so the mean follows the recent trend of the signal.
2. Mark each sample where the signal drops from above the mean to below
   it.  On the plotted waveform (higher brightness drawn lower) these show
   up as the rising edges passing the midpoint.
3. The mean spacing between the first and last marked sample gives the
   beat interval; ``60000 / interval_ms`` is the heart rate.

A stable fingertip reading has a value range of roughly 0.002 – 0.02.  The
range is reported for diagnostics only and never gates the estimate.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

from pulse_monitor.sample_buffer import Sample

HEALTHY_RANGE: Tuple[float, float] = (0.002, 0.02)


@dataclass(frozen=True)
class AnalysisResult:
    """Statistics of one window, recomputed every tick."""

    average: float
    min: float
    max: float
    range: float
    crossings: Tuple[Sample, ...]

    @property
    def is_healthy_range(self) -> bool:
        low, high = HEALTHY_RANGE
        return low <= self.range <= high


def analyze_samples(
    samples: Sequence[Sample], values: Optional[np.ndarray] = None
) -> AnalysisResult:
    """
    Summarise *samples* and detect their mean crossings.

    *values* may carry the sample values already laid out as an array (see
    :meth:`SampleBuffer.values`); it is built from *samples* otherwise.

    Raises
    ------
    ValueError
        If *samples* is empty.
    """
    if len(samples) == 0:
        raise ValueError("Cannot analyse an empty sample window.")

    values = sample_values(samples, values)
    average = float(values.mean())
    lo = float(values.min())
    hi = float(values.max())

    return AnalysisResult(
        average=average,
        min=lo,
        max=hi,
        range=hi - lo,
        crossings=find_average_crossings(samples, average, values),
    )


def find_average_crossings(
    samples: Sequence[Sample],
    average: float,
    values: Optional[np.ndarray] = None,
) -> Tuple[Sample, ...]:
    """Return the samples at which the signal fell below *average*."""
    if len(samples) < 2:
        return ()
    values = sample_values(samples, values)
    falling = (values[:-1] > average) & (values[1:] < average)
    return tuple(samples[i + 1] for i in np.flatnonzero(falling))


def sample_values(
    samples: Sequence[Sample], values: Optional[np.ndarray] = None
) -> np.ndarray:
    """Return *values* if given, else the values of *samples* as float64."""
    if values is not None:
        if len(values) != len(samples):
            raise ValueError(
                f"Got {len(values)} values for {len(samples)} samples."
            )
        return values
    return np.fromiter((s.value for s in samples), dtype=np.float64,
                       count=len(samples))


def calculate_bpm(crossings: Sequence[Sample]) -> Optional[float]:
    """
    Beats per minute from the mean interval between *crossings*.

    Returns *None* when there is no estimate: fewer than two crossings, or
    all crossings share one timestamp.
    """
    if len(crossings) < 2:
        return None
    span = crossings[-1].time - crossings[0].time
    if span <= 0:
        return None
    average_interval = span / (len(crossings) - 1)
    return 60000.0 / average_interval
