"""
Monitoring session.

:class:`HeartRateMonitor` drives one tick per camera frame:

    frame source → brightness → buffer → analysis → BPM → display

All of it runs synchronously inside the tick.  A stop request is honoured
between ticks; the tick in progress always completes.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable, List, Optional, Protocol, Tuple

import numpy as np

from pulse_monitor.brightness import BrightnessExtractor, RedGreenBrightness
from pulse_monitor.sample_buffer import MAX_SAMPLES, Sample, SampleBuffer
from pulse_monitor.signal_processor import (
    AnalysisResult,
    analyze_samples,
    calculate_bpm,
)
from pulse_monitor.visualizer import compute_waveform

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------

class FrameSource(Protocol):
    def open(self) -> None: ...
    def close(self) -> None: ...
    def read_sample(self) -> Optional[Tuple[np.ndarray, float]]: ...


class TorchControl(Protocol):
    def set_enabled(self, enabled: bool) -> None: ...


class DisplaySurface(Protocol):
    size: Tuple[int, int]
    stroke_width: int

    def show_bpm(self, bpm: Optional[int]) -> None: ...
    def draw_waveform(self, points: np.ndarray) -> None: ...


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------

class SessionStatus(Enum):
    IDLE        = auto()
    STABILIZING = auto()   # device open, waiting for auto-exposure to settle
    RUNNING     = auto()


@dataclass
class MonitorConfig:
    """
    Attributes
    ----------
    max_samples:
        Capacity of the sample window (300 ≈ 5 s at 60 Hz).
    start_delay:
        Seconds to wait after opening the camera before the first tick.
    max_failed_reads:
        Consecutive failed frame reads after which the session stops.
    """

    max_samples: int = MAX_SAMPLES
    start_delay: float = 1.5
    max_failed_reads: int = 10

    def __post_init__(self) -> None:
        if self.max_samples < 1:
            raise ValueError(f"max_samples must be positive, got {self.max_samples}")
        if self.start_delay < 0:
            raise ValueError(f"start_delay must not be negative, got {self.start_delay}")
        if self.max_failed_reads < 1:
            raise ValueError(
                f"max_failed_reads must be positive, got {self.max_failed_reads}"
            )


class BpmChannel:
    """Latest BPM estimate plus notifications when it changes."""

    def __init__(self) -> None:
        self._latest: Optional[int] = None
        self._subscribers: List[Callable[[Optional[int]], None]] = []

    @property
    def latest(self) -> Optional[int]:
        return self._latest

    def subscribe(
        self, callback: Callable[[Optional[int]], None]
    ) -> Callable[[], None]:
        """Register *callback*; returns a function that unregisters it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, bpm: Optional[int]) -> None:
        """Store *bpm*; subscribers are only notified when the value changes."""
        if bpm == self._latest:
            return
        self._latest = bpm
        for callback in list(self._subscribers):
            callback(bpm)

    def clear(self) -> None:
        self.publish(None)


# ---------------------------------------------------------------------------
# Monitor
# ---------------------------------------------------------------------------

class HeartRateMonitor:
    """
    Owns one sample buffer and drives the processing pipeline.

    Parameters
    ----------
    frame_source:
        Opened on session start, closed on stop.
    display:
        Receives the BPM readout and the waveform points every tick.
    torch:
        Optional illumination control.  Failures are logged, not raised.
    extractor:
        Brightness strategy (default :class:`RedGreenBrightness`).
    config:
        Buffer capacity and timing, see :class:`MonitorConfig`.
    sleep:
        Used for the stabilisation delay; injectable for tests.
    """

    def __init__(
        self,
        frame_source: FrameSource,
        display: DisplaySurface,
        torch: Optional[TorchControl] = None,
        extractor: Optional[BrightnessExtractor] = None,
        config: Optional[MonitorConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.frame_source = frame_source
        self.display = display
        self.torch = torch
        self.extractor = extractor if extractor is not None else RedGreenBrightness()
        self.config = config if config is not None else MonitorConfig()
        self._sleep = sleep

        self.bpm = BpmChannel()
        self._buffer = SampleBuffer(self.config.max_samples)
        self._status = SessionStatus.IDLE
        self._failed_reads = 0
        self._last_analysis: Optional[AnalysisResult] = None

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def is_monitoring(self) -> bool:
        return self._status is not SessionStatus.IDLE

    @property
    def buffer(self) -> SampleBuffer:
        return self._buffer

    @property
    def last_analysis(self) -> Optional[AnalysisResult]:
        return self._last_analysis

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start_session(self) -> None:
        """
        Reset the window and open the camera.

        Raises
        ------
        pulse_monitor.camera.DeviceUnavailableError
            If the frame source cannot be opened; the session stays idle.
        """
        if self.is_monitoring:
            logger.info("Session already active – start request ignored.")
            return

        self._buffer.reset()
        self._last_analysis = None
        self._failed_reads = 0
        self.bpm.clear()
        self.display.show_bpm(None)

        self.frame_source.open()
        self._set_torch(True)

        self._status = SessionStatus.STABILIZING
        logger.info(
            "Session started – waiting %.1f s for the image to stabilise.",
            self.config.start_delay,
        )

    def stop_session(self) -> None:
        """Stop ticking and release the devices.  The buffer is kept."""
        if not self.is_monitoring:
            return
        self._set_torch(False)
        self.frame_source.close()
        self._status = SessionStatus.IDLE
        logger.info("Session stopped – %d samples in buffer.", len(self._buffer))

    def toggle_monitoring(self) -> None:
        if self.is_monitoring:
            self.stop_session()
        else:
            self.start_session()

    def run(self) -> None:
        """
        Tick until the session is stopped.

        Waits out the stabilisation delay first.  The liveness check happens
        after every tick, so a stop request from a display callback ends the
        loop before the next frame is read.
        """
        if self._status is SessionStatus.IDLE:
            raise RuntimeError("No active session.  Call start_session() first.")

        if self._status is SessionStatus.STABILIZING:
            self._sleep(self.config.start_delay)
            if self._status is SessionStatus.STABILIZING:
                self._status = SessionStatus.RUNNING
                logger.info("Starting main loop.")

        while self._status is SessionStatus.RUNNING:
            self.tick()

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def tick(self) -> bool:
        """
        Process one frame.

        Returns
        -------
        bool
            *True* if a sample was added, *False* if the frame read failed.
        """
        result = self.frame_source.read_sample()
        if result is None:
            self._failed_reads += 1
            if self._failed_reads >= self.config.max_failed_reads:
                logger.error(
                    "Camera returned %d consecutive empty frames – stopping.",
                    self._failed_reads,
                )
                self.stop_session()
            return False
        self._failed_reads = 0

        pixels, time_ms = result
        self._buffer.push(Sample(value=self.extractor(pixels), time=time_ms))

        samples = self._buffer.snapshot()
        values = self._buffer.values()
        stats = analyze_samples(samples, values)
        self._last_analysis = stats
        logger.debug(
            "n=%d fill=%.2f range=%.5f crossings=%d%s",
            len(samples), self._buffer.fill_ratio, stats.range, len(stats.crossings),
            "" if stats.is_healthy_range else " (range outside healthy band)",
        )

        bpm = calculate_bpm(stats.crossings)
        if bpm is not None:
            rounded = int(math.floor(bpm + 0.5))
            self.bpm.publish(rounded)
            self.display.show_bpm(rounded)

        width, height = self.display.size
        points = compute_waveform(
            samples, stats, width, height,
            stroke_inset=self.display.stroke_width,
            max_samples=self._buffer.capacity,
            values=values,
        )
        self.display.draw_waveform(points)
        return True

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _set_torch(self, enabled: bool) -> None:
        if self.torch is None:
            return
        try:
            self.torch.set_enabled(enabled)
        except Exception as exc:                         # noqa: BLE001
            logger.warning(
                "Switching torch %s failed: %s", "on" if enabled else "off", exc,
            )
