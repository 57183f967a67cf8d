"""
Region-of-interest helpers.

Face localisation is outside this package; these helpers cover the simple
case where the subject sits centred in front of the camera.  A heuristic
skin gate keeps the engine from ingesting frames where no skin is visible,
so the buffer simply does not advance during such gaps.
"""

from __future__ import annotations

from typing import Tuple

import cv2
import numpy as np


def center_roi(shape: Tuple[int, ...], fraction: float = 0.35) -> Tuple[int, int, int, int]:
    """
    Square ``(x, y, w, h)`` centred in a frame of *shape*.

    The side is *fraction* of the shorter frame dimension.
    """
    if not 0 < fraction <= 1:
        raise ValueError(f"fraction must be in (0, 1], got {fraction}")
    h, w = shape[:2]
    side = max(1, int(min(w, h) * fraction))
    cx, cy = w // 2, h // 2
    return cx - side // 2, cy - side // 2, side, side


def crop(frame: np.ndarray, roi: Tuple[int, int, int, int]) -> np.ndarray:
    x, y, w, h = roi
    return frame[y:y + h, x:x + w]


class SkinGate:
    """
    Heuristic check: does a BGR patch look like exposed skin?

    Parameters
    ----------
    min_brightness, max_brightness:
        Allowed mean luminance (0 – 255).  Rejects covered lenses and
        saturated patches.
    min_skin_fraction:
        Minimum share of pixels inside the YCrCb skin cluster.
    red_dominance:
        Minimum ``mean_red / mean_green`` ratio.
    """

    # Chai & Ngan YCrCb skin cluster
    _CR_RANGE = (133, 173)
    _CB_RANGE = (77, 127)

    def __init__(
        self,
        min_brightness: float = 40.0,
        max_brightness: float = 240.0,
        min_skin_fraction: float = 0.5,
        red_dominance: float = 1.0,
    ) -> None:
        self.min_brightness = min_brightness
        self.max_brightness = max_brightness
        self.min_skin_fraction = min_skin_fraction
        self.red_dominance = red_dominance

    def skin_fraction(self, patch: np.ndarray) -> float:
        """Share of pixels of *patch* inside the skin cluster (0 – 1)."""
        ycrcb = cv2.cvtColor(np.ascontiguousarray(patch[:, :, :3]), cv2.COLOR_BGR2YCrCb)
        cr = ycrcb[:, :, 1]
        cb = ycrcb[:, :, 2]
        mask = ((cr >= self._CR_RANGE[0]) & (cr <= self._CR_RANGE[1]) &
                (cb >= self._CB_RANGE[0]) & (cb <= self._CB_RANGE[1]))
        return float(mask.mean())

    def is_skin(self, patch: np.ndarray) -> bool:
        """Return *True* if *patch* looks like skin."""
        if patch.size == 0:
            return False
        b_ch = patch[:, :, 0].astype(np.float64)
        g_ch = patch[:, :, 1].astype(np.float64)
        r_ch = patch[:, :, 2].astype(np.float64)

        mean_r = float(r_ch.mean())
        mean_g = float(g_ch.mean())
        mean_b = float(b_ch.mean())
        brightness = (mean_r + mean_g + mean_b) / 3.0
        red_ratio = mean_r / (mean_g + 1e-6)

        lit_enough = self.min_brightness <= brightness <= self.max_brightness
        skin_tone  = red_ratio >= self.red_dominance

        return lit_enough and skin_tone and self.skin_fraction(patch) >= self.min_skin_fraction
