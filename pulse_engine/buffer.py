"""
Per-frame colour sampling and the rolling RGB buffer.

Each delivered frame (already cropped to the skin region) is reduced to the
mean intensity of its red, green and blue channels.  The triples are stored
in a fixed-capacity circular buffer; once it has wrapped at least once the
engine can take a chronologically ordered snapshot of the last
``window_size`` samples.
"""

from __future__ import annotations

import logging
import math
import threading
from typing import NamedTuple, Tuple

import numpy as np

from pulse_engine.errors import NotReadyError

logger = logging.getLogger(__name__)


class ColorSample(NamedTuple):
    """Mean channel intensities of one frame."""
    r: float
    g: float
    b: float


def reduce_frame(frame: np.ndarray, order: str = "bgr") -> ColorSample:
    """
    Reduce *frame* to its mean (R, G, B).

    Parameters
    ----------
    frame:
        Image array (H × W × C, C = 3 or 4).  A fourth alpha / padding
        channel is ignored.
    order:
        Channel order of *frame*: ``"bgr"`` (OpenCV, default) or ``"rgb"``.
    """
    if frame.ndim != 3 or frame.shape[2] not in (3, 4):
        raise ValueError(f"expected an H×W×3 or H×W×4 frame, got shape {frame.shape}")
    if frame.shape[0] == 0 or frame.shape[1] == 0:
        raise ValueError("cannot reduce an empty frame")

    means = frame[:, :, :3].reshape(-1, 3).mean(axis=0, dtype=np.float64)
    if order == "bgr":
        return ColorSample(float(means[2]), float(means[1]), float(means[0]))
    if order == "rgb":
        return ColorSample(float(means[0]), float(means[1]), float(means[2]))
    raise ValueError(f"unknown channel order {order!r}")


class RingBuffer:
    """
    Circular store of the last *window_size* colour samples.

    ``push`` and ``snapshot`` hold the same lock, so a snapshot taken from
    the estimation thread always sees a settled write index and storage.
    """

    def __init__(self, window_size: int) -> None:
        if window_size < 1:
            raise ValueError(f"window_size must be >= 1, got {window_size}")
        self._window_size = window_size
        self._data = np.zeros((3, window_size), dtype=np.float64)
        self._idx = 0
        self._full = False
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def push(self, sample: ColorSample) -> None:
        """
        Write *sample* at the cursor and advance it.

        Raises :class:`ValueError` for a non-finite sample; the buffer is
        left unchanged.
        """
        if not all(math.isfinite(v) for v in sample):
            raise ValueError(f"non-finite colour sample {tuple(sample)!r}")
        with self._lock:
            self._data[:, self._idx] = sample
            self._idx += 1
            if self._idx >= self._window_size:
                self._idx = 0
                if not self._full:
                    logger.debug("Ring buffer filled (%d samples).", self._window_size)
                self._full = True

    def snapshot(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Return ``(R, G, B)`` copies ordered oldest sample first.

        Raises :class:`~pulse_engine.errors.NotReadyError` until the buffer
        has been filled once.
        """
        with self._lock:
            if not self._full:
                raise NotReadyError(
                    f"buffer holds {self._idx}/{self._window_size} samples"
                )
            ordered = np.concatenate(
                (self._data[:, self._idx:], self._data[:, :self._idx]), axis=1
            )
        return ordered[0], ordered[1], ordered[2]

    def clear(self) -> None:
        with self._lock:
            self._data.fill(0.0)
            self._idx = 0
            self._full = False

    @property
    def window_size(self) -> int:
        return self._window_size

    @property
    def full(self) -> bool:
        return self._full

    @property
    def fill_ratio(self) -> float:
        """How full the buffer is (0 – 1)."""
        if self._full:
            return 1.0
        return self._idx / self._window_size

    def __len__(self) -> int:
        return self._window_size if self._full else self._idx
