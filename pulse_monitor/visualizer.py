"""
Scrolling waveform display.

:func:`compute_waveform` maps the sample window to drawing coordinates and
is free of side effects.  :class:`Visualizer` is the OpenCV display surface
that strokes those points and shows the BPM readout.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Dict, Optional, Sequence, Tuple

import cv2
import numpy as np

from pulse_monitor.sample_buffer import MAX_SAMPLES, Sample
from pulse_monitor.signal_processor import AnalysisResult, sample_values

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Colour palette (BGR)
# ---------------------------------------------------------------------------
_RED    = (60, 20, 220)
_WHITE  = (255, 255, 255)
_GREY   = (150, 150, 150)
_DARK   = (30, 30, 30)


def compute_waveform(
    samples: Sequence[Sample],
    stats: AnalysisResult,
    width: float,
    height: float,
    stroke_inset: float,
    max_samples: int = MAX_SAMPLES,
    values: Optional[np.ndarray] = None,
) -> np.ndarray:
    """
    Map *samples* onto a ``width × height`` surface.

    The newest sample sits at ``width - x_scale`` and older samples scroll
    left, so a partly filled window stays anchored to the right edge.
    Values are scaled from ``[min, max]`` into
    ``[stroke_inset, height - stroke_inset]``; a flat window, or a sample of
    exactly 0, maps to ``stroke_inset``.  A point whose y equals the
    previous sample's y is dropped.  *values* is an optional precomputed
    array of the sample values.

    Returns
    -------
    numpy.ndarray
        ``(N, 2)`` float array of ``(x, y)`` points, x non-decreasing.
    """
    n = len(samples)
    if n == 0:
        return np.empty((0, 2), dtype=np.float64)

    x_scale = width / max_samples
    x_offset = (max_samples - n) * x_scale
    xs = x_scale * np.arange(n, dtype=np.float64) + x_offset

    values = sample_values(samples, values)
    ys = np.full(n, float(stroke_inset))
    span = stats.max - stats.min
    if span != 0:
        max_height = height - stroke_inset * 2
        scaled = max_height * (values - stats.min) / span + stroke_inset
        ys = np.where(values != 0, scaled, ys)

    keep = np.diff(ys, prepend=0.0) != 0
    return np.column_stack([xs[keep], ys[keep]])


class Visualizer:
    """
    Draws the waveform and BPM readout onto an OpenCV canvas.

    Parameters
    ----------
    size:
        ``(width, height)`` of the graph canvas in pixels.
    stroke_color:
        BGR colour of the waveform line.
    stroke_width:
        Line thickness.  Also used as the vertical inset so the line is not
        clipped at the canvas edges.
    window_name:
        When set, every drawn frame is shown in this window and key presses
        are dispatched to handlers registered with :meth:`on_key`.
    """

    PLACEHOLDER = "--"

    def __init__(
        self,
        size: Tuple[int, int] = (640, 240),
        stroke_color: Tuple[int, int, int] = _RED,
        stroke_width: int = 6,
        window_name: Optional[str] = None,
    ) -> None:
        self.width, self.height = size
        self.stroke_color = stroke_color
        self.stroke_width = stroke_width
        self.window_name = window_name

        self._bpm: Optional[int] = None
        self._canvas = np.zeros((self.height, self.width, 3), dtype=np.uint8)
        self._key_handlers: Dict[int, Callable[[], None]] = {}

        if window_name is not None:
            cv2.namedWindow(window_name, cv2.WINDOW_NORMAL)
            cv2.resizeWindow(window_name, self.width, self.height)

    # ------------------------------------------------------------------
    # Display surface
    # ------------------------------------------------------------------

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    @property
    def canvas(self) -> np.ndarray:
        """The last drawn image (BGR, H × W × 3)."""
        return self._canvas

    @property
    def bpm(self) -> Optional[int]:
        return self._bpm

    def show_bpm(self, bpm: Optional[int]) -> None:
        """Set the readout; *None* shows the "no reading yet" placeholder."""
        self._bpm = bpm

    def draw_waveform(self, points: np.ndarray) -> None:
        """Clear the canvas, stroke *points* and overlay the readout."""
        self._canvas[:] = _DARK

        if len(points) > 1:
            pts = np.round(points).astype(np.int32)
            cv2.polylines(
                self._canvas, [pts[:, None, :]], False,
                self.stroke_color, self.stroke_width, cv2.LINE_AA,
            )

        self._draw_readout()
        self._present()

    # ------------------------------------------------------------------
    # Window helpers
    # ------------------------------------------------------------------

    def on_key(self, key: str | int, callback: Callable[[], None]) -> None:
        """Run *callback* whenever *key* is pressed in the window."""
        code = ord(key) if isinstance(key, str) else key
        self._key_handlers[code] = callback

    def poll_keys(self, delay_ms: int = 1) -> None:
        """Pump the window event loop once and dispatch a pending key."""
        if self.window_name is None:
            return
        key = cv2.waitKey(delay_ms) & 0xFF
        handler = self._key_handlers.get(key)
        if handler is not None:
            handler()

    def save_snapshot(self, path: str | Path) -> None:
        cv2.imwrite(str(path), self._canvas)
        logger.info("Saved snapshot: %s", path)

    def close(self) -> None:
        if self.window_name is not None:
            cv2.destroyWindow(self.window_name)

    # ------------------------------------------------------------------
    # Private drawing helpers
    # ------------------------------------------------------------------

    def _draw_readout(self) -> None:
        text = f"{self._bpm} BPM" if self._bpm is not None else f"{self.PLACEHOLDER} BPM"
        colour = _WHITE if self._bpm is not None else _GREY
        cv2.putText(
            self._canvas, text,
            (16, 40), cv2.FONT_HERSHEY_SIMPLEX, 1.2, _DARK, 5, cv2.LINE_AA,
        )
        cv2.putText(
            self._canvas, text,
            (16, 40), cv2.FONT_HERSHEY_SIMPLEX, 1.2, colour, 2, cv2.LINE_AA,
        )

    def _present(self) -> None:
        if self.window_name is None:
            return
        cv2.imshow(self.window_name, self._canvas)
        self.poll_keys()
