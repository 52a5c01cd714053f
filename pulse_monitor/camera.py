"""
Camera frame source and torch control.

:class:`FingertipCamera` wraps OpenCV ``VideoCapture`` and turns each frame
into a tiny RGBA pixel sample plus a monotonic timestamp, which is all the
brightness extractor needs.
"""

from __future__ import annotations

import logging
import time
from typing import Optional, Tuple

import cv2
import numpy as np

logger = logging.getLogger(__name__)


# V4L2 exposure modes: 1 = manual, 3 = aperture priority (auto).
_MANUAL_EXPOSURE = 1


class DeviceUnavailableError(RuntimeError):
    """The camera is missing, busy or could not be opened."""


class IlluminationError(RuntimeError):
    """The torch could not be switched."""


class FingertipCamera:
    """
    Frame source for fingertip sampling.

    Parameters
    ----------
    camera_index:
        OpenCV ``VideoCapture`` device index.
    sample_size:
        ``(width, height)`` each frame is downscaled to before sampling.
    resolution:
        Requested capture ``(width, height)``.  Small values are fine; the
        frame is averaged down to *sample_size* anyway.
    manual_controls:
        Ask the backend to lock exposure, white balance and focus so the
        brightness only changes with the blood volume.  Backends that do
        not support a control are left on automatic.
    """

    def __init__(
        self,
        camera_index: int = 0,
        sample_size: Tuple[int, int] = (30, 30),
        resolution: Tuple[int, int] = (320, 240),
        manual_controls: bool = True,
    ) -> None:
        if min(sample_size) < 1:
            raise ValueError(f"sample_size must be positive, got {sample_size}")
        self.camera_index = camera_index
        self.sample_size = sample_size
        self.resolution = resolution
        self.manual_controls = manual_controls

        self._cap: "cv2.VideoCapture | None" = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_open(self) -> bool:
        return self._cap is not None

    def open(self) -> None:
        """Open the capture device."""
        cap = cv2.VideoCapture(self.camera_index)
        if not cap.isOpened():
            cap.release()
            raise DeviceUnavailableError(
                f"Cannot open video capture device index={self.camera_index}"
            )
        w, h = self.resolution
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, w)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, h)
        if self.manual_controls:
            _lock_auto_controls(cap)
        self._cap = cap
        logger.info(
            "Camera opened – index=%d resolution=%s sample_size=%s",
            self.camera_index, self.resolution, self.sample_size,
        )

    def close(self) -> None:
        """Release the capture device."""
        if self._cap is None:
            return
        self._cap.release()
        self._cap = None
        logger.info("Camera closed.")

    def __enter__(self) -> "FingertipCamera":
        self.open()
        return self

    def __exit__(self, *_) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Sampling
    # ------------------------------------------------------------------

    def read_sample(self) -> Optional[Tuple[np.ndarray, float]]:
        """
        Capture one frame and reduce it to a pixel sample.

        Returns
        -------
        tuple or None
            ``(pixels, time_ms)`` where *pixels* is an RGBA uint8 array of
            ``sample_size`` and *time_ms* is monotonic milliseconds, or
            *None* when the read failed.
        """
        if self._cap is None:
            raise RuntimeError("Camera is not open.  Call open() first.")

        ok, frame = self._cap.read()
        if not ok or frame is None:
            logger.warning("VideoCapture.read() returned False.")
            return None
        time_ms = time.monotonic() * 1000.0
        return to_pixel_sample(frame, self.sample_size), time_ms


def _lock_auto_controls(cap: "cv2.VideoCapture") -> None:
    """Switch off auto exposure, white balance and focus where supported."""
    controls = (
        ("auto exposure", cv2.CAP_PROP_AUTO_EXPOSURE, _MANUAL_EXPOSURE),
        ("auto white balance", cv2.CAP_PROP_AUTO_WB, 0),
        ("autofocus", cv2.CAP_PROP_AUTOFOCUS, 0),
    )
    for name, prop, value in controls:
        try:
            ok = cap.set(prop, value)
        except cv2.error as exc:
            ok = False
            logger.debug("Setting %s raised: %s", name, exc)
        if not ok:
            logger.debug("Backend left %s unchanged.", name)


def to_pixel_sample(frame: np.ndarray, sample_size: Tuple[int, int]) -> np.ndarray:
    """Downscale a BGR *frame* to *sample_size* and convert it to RGBA."""
    small = cv2.resize(frame, sample_size, interpolation=cv2.INTER_AREA)
    return cv2.cvtColor(small, cv2.COLOR_BGR2RGBA)


class NullTorch:
    """
    Torch control for capture backends that cannot drive a flash LED.

    Switching off always succeeds; switching on raises
    :class:`IlluminationError` so the failure is reported.
    """

    def set_enabled(self, enabled: bool) -> None:
        if enabled:
            raise IlluminationError(
                "Torch control is not supported by the OpenCV capture backend; "
                "use an external light source."
            )
