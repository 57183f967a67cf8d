"""
Unit tests for the centre ROI helpers and SkinGate.
Run with:  pytest tests/test_roi.py
"""

from __future__ import annotations

import numpy as np
import pytest

from pulse_engine.roi import SkinGate, center_roi, crop


def _make_frame(r, g, b, noise=0, shape=(120, 160)) -> np.ndarray:
    """Create a uniform-colour BGR frame with optional noise."""
    rng = np.random.default_rng(42)
    frame = np.zeros((*shape, 3), dtype=np.uint8)
    frame[:, :, 2] = np.clip(r + rng.integers(-noise, noise + 1, shape), 0, 255)
    frame[:, :, 1] = np.clip(g + rng.integers(-noise, noise + 1, shape), 0, 255)
    frame[:, :, 0] = np.clip(b + rng.integers(-noise, noise + 1, shape), 0, 255)
    return frame


class TestCenterRoi:

    def test_square_in_frame_centre(self):
        assert center_roi((480, 640, 3), 0.5) == (200, 120, 240, 240)

    def test_crop_shape(self):
        frame = np.zeros((480, 640, 3), dtype=np.uint8)
        patch = crop(frame, center_roi(frame.shape, 0.25))
        assert patch.shape == (120, 120, 3)

    @pytest.mark.parametrize("fraction", [0.0, 1.5])
    def test_invalid_fraction(self, fraction):
        with pytest.raises(ValueError):
            center_roi((480, 640), fraction)


class TestSkinGate:

    def test_skin_tone_accepted(self):
        frame = _make_frame(r=200, g=150, b=120, noise=5)
        assert SkinGate().is_skin(frame) is True

    def test_blue_scene_rejected(self):
        frame = _make_frame(r=50, g=100, b=200, noise=5)
        assert SkinGate().is_skin(frame) is False

    def test_dark_frame_rejected(self):
        frame = _make_frame(r=20, g=12, b=10)
        assert SkinGate().is_skin(frame) is False

    def test_empty_patch_rejected(self):
        assert SkinGate().is_skin(np.zeros((0, 0, 3), dtype=np.uint8)) is False

    def test_skin_fraction_range(self):
        gate = SkinGate()
        assert gate.skin_fraction(_make_frame(200, 150, 120)) == pytest.approx(1.0)
        assert gate.skin_fraction(_make_frame(50, 100, 200)) == pytest.approx(0.0)
