"""
Unit tests for the brightness strategies and the camera pixel sampling.
Run with:  pytest tests/
"""

from __future__ import annotations

import cv2
import numpy as np
import pytest

from pulse_monitor.brightness import (
    EXTRACTORS,
    MeanRgbBrightness,
    RedGreenBrightness,
    make_extractor,
)
from pulse_monitor.camera import (
    DeviceUnavailableError,
    FingertipCamera,
    IlluminationError,
    NullTorch,
    to_pixel_sample,
)


def _rgba(r, g, b, a=255, shape=(30, 30)) -> np.ndarray:
    pixels = np.zeros((*shape, 4), dtype=np.uint8)
    pixels[:, :, 0] = r
    pixels[:, :, 1] = g
    pixels[:, :, 2] = b
    pixels[:, :, 3] = a
    return pixels


class TestRedGreenBrightness:

    def test_full_red_and_green(self):
        assert RedGreenBrightness()(_rgba(255, 255, 0)) == pytest.approx(1.0)

    def test_black(self):
        assert RedGreenBrightness()(_rgba(0, 0, 0)) == 0.0

    def test_red_only_is_half(self):
        assert RedGreenBrightness()(_rgba(255, 0, 0)) == pytest.approx(0.5)

    def test_blue_and_alpha_ignored(self):
        extract = RedGreenBrightness()
        assert extract(_rgba(100, 50, 0, a=0)) == extract(_rgba(100, 50, 255, a=255))

    def test_mixed_pixels(self):
        pixels = _rgba(0, 0, 0, shape=(1, 2))
        pixels[0, 0, :2] = (255, 255)
        # Two pixels, four channel readings, half of them saturated
        assert RedGreenBrightness()(pixels) == pytest.approx(0.5)

    def test_accepts_rgb_without_alpha(self):
        pixels = _rgba(51, 102, 200)[:, :, :3]
        assert RedGreenBrightness()(pixels) == pytest.approx(153 / 510)

    def test_zero_area_rejected(self):
        with pytest.raises(ValueError):
            RedGreenBrightness()(np.zeros((0, 5, 4), dtype=np.uint8))

    def test_wrong_shape_rejected(self):
        with pytest.raises(ValueError):
            RedGreenBrightness()(np.zeros((5, 5), dtype=np.uint8))


class TestMeanRgbBrightness:

    def test_uses_all_three_channels(self):
        assert MeanRgbBrightness()(_rgba(255, 0, 255)) == pytest.approx(2 / 3)

    def test_needs_three_channels(self):
        with pytest.raises(ValueError):
            MeanRgbBrightness()(np.zeros((4, 4, 2), dtype=np.uint8))


class TestMakeExtractor:

    def test_known_names(self):
        assert isinstance(make_extractor("red-green"), RedGreenBrightness)
        assert isinstance(make_extractor("rgb"), MeanRgbBrightness)
        assert sorted(EXTRACTORS) == ["red-green", "rgb"]

    def test_unknown_name(self):
        with pytest.raises(ValueError):
            make_extractor("luma")


class FakeCapture:
    """Stand-in for cv2.VideoCapture that records property writes."""

    unsupported = {cv2.CAP_PROP_AUTOFOCUS}

    def __init__(self, index, opened=True):
        self.index = index
        self.opened = opened
        self.props = {}
        self.released = False

    def isOpened(self):
        return self.opened

    def set(self, prop, value):
        if prop in self.unsupported:
            return False
        self.props[prop] = value
        return True

    def read(self):
        return True, np.full((48, 64, 3), 90, dtype=np.uint8)

    def release(self):
        self.released = True


class TestCameraSampling:

    def test_to_pixel_sample_converts_bgr_to_rgba(self):
        frame = np.zeros((240, 320, 3), dtype=np.uint8)
        frame[:, :] = (10, 20, 30)          # B, G, R
        pixels = to_pixel_sample(frame, (30, 30))
        assert pixels.shape == (30, 30, 4)
        assert tuple(pixels[0, 0]) == (30, 20, 10, 255)

    def test_sampled_frame_brightness(self):
        frame = np.full((120, 160, 3), 100, dtype=np.uint8)
        value = RedGreenBrightness()(to_pixel_sample(frame, (30, 30)))
        assert value == pytest.approx(100 / 255)

    def test_read_before_open_raises(self):
        cam = FingertipCamera()
        assert not cam.is_open
        with pytest.raises(RuntimeError):
            cam.read_sample()

    def test_close_without_open_is_noop(self):
        FingertipCamera().close()


class TestNullTorch:

    def test_enable_fails(self):
        with pytest.raises(IlluminationError):
            NullTorch().set_enabled(True)

    def test_disable_succeeds(self):
        NullTorch().set_enabled(False)


class TestCameraLifecycle:

    def _patch(self, monkeypatch, opened=True):
        made = []

        def factory(index):
            cap = FakeCapture(index, opened=opened)
            made.append(cap)
            return cap

        monkeypatch.setattr(cv2, "VideoCapture", factory)
        return made

    def test_open_requests_manual_controls(self, monkeypatch):
        made = self._patch(monkeypatch)
        cam = FingertipCamera(camera_index=2, resolution=(64, 48))
        cam.open()
        cap = made[0]
        assert cap.index == 2
        assert cap.props[cv2.CAP_PROP_FRAME_WIDTH] == 64
        assert cap.props[cv2.CAP_PROP_AUTO_EXPOSURE] == 1
        assert cap.props[cv2.CAP_PROP_AUTO_WB] == 0
        # Unsupported autofocus is skipped without failing the open
        assert cv2.CAP_PROP_AUTOFOCUS not in cap.props
        assert cam.is_open

    def test_manual_controls_can_be_disabled(self, monkeypatch):
        made = self._patch(monkeypatch)
        FingertipCamera(manual_controls=False).open()
        assert cv2.CAP_PROP_AUTO_EXPOSURE not in made[0].props

    def test_read_and_close(self, monkeypatch):
        made = self._patch(monkeypatch)
        with FingertipCamera(sample_size=(10, 10)) as cam:
            pixels, time_ms = cam.read_sample()
        assert pixels.shape == (10, 10, 4)
        assert time_ms > 0
        assert made[0].released
        assert not cam.is_open

    def test_unavailable_device(self, monkeypatch):
        made = self._patch(monkeypatch, opened=False)
        cam = FingertipCamera()
        with pytest.raises(DeviceUnavailableError):
            cam.open()
        assert made[0].released
        assert not cam.is_open

    def test_invalid_sample_size(self):
        with pytest.raises(ValueError):
            FingertipCamera(sample_size=(0, 30))
