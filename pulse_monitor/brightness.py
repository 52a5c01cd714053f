"""
Brightness extraction strategies.

Each strategy turns one small rectangular pixel sample into a single scalar
in ``[0, 1]`` that follows the blood-volume driven absorption of the
fingertip.  The pixel sample is an ``H × W × C`` uint8 array in RGB(A)
channel order, as produced by :class:`pulse_monitor.camera.FingertipCamera`.
"""

from __future__ import annotations

from typing import Protocol

import numpy as np


class BrightnessExtractor(Protocol):
    def __call__(self, pixels: np.ndarray) -> float: ...


def _check_pixels(pixels: np.ndarray, min_channels: int) -> None:
    if pixels.ndim != 3 or pixels.shape[2] < min_channels:
        raise ValueError(
            f"Expected an H x W x C pixel sample with C >= {min_channels}, "
            f"got shape {pixels.shape}"
        )
    if pixels.shape[0] == 0 or pixels.shape[1] == 0:
        raise ValueError("Pixel sample has zero area.")


class RedGreenBrightness:
    """
    Sum of the red and green intensities, normalised to ``[0, 1]``.

    Red and green together track the absorption changes better than all
    three channels or a luminance formula.  Blue and alpha are ignored.
    """

    def __call__(self, pixels: np.ndarray) -> float:
        _check_pixels(pixels, 2)
        total_pixels = pixels.shape[0] * pixels.shape[1]
        rg_sum = pixels[:, :, :2].sum(dtype=np.float64)
        return float(rg_sum / (total_pixels * 2 * 255))


class MeanRgbBrightness:
    """Mean of the red, green and blue intensities, normalised to ``[0, 1]``."""

    def __call__(self, pixels: np.ndarray) -> float:
        _check_pixels(pixels, 3)
        return float(pixels[:, :, :3].mean(dtype=np.float64) / 255.0)


EXTRACTORS = {
    "red-green": RedGreenBrightness,
    "rgb": MeanRgbBrightness,
}


def make_extractor(name: str) -> BrightnessExtractor:
    """Build the strategy registered under *name* in :data:`EXTRACTORS`."""
    try:
        return EXTRACTORS[name]()
    except KeyError:
        raise ValueError(
            f"Unknown extractor {name!r}; choose from {sorted(EXTRACTORS)}"
        ) from None
