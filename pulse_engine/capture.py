"""
Frame source for the pulse engine.

Wraps OpenCV ``VideoCapture`` to provide a simple iterator of BGR frames
from a webcam index or a video file.  Frames can be throttled to a target
rate so that delivery matches the engine's configured sample rate.
"""

from __future__ import annotations

import logging
import math
import time
from typing import Generator, Tuple, Union

import cv2
import numpy as np

logger = logging.getLogger(__name__)


class FrameSource:
    """
    Thin wrapper around ``cv2.VideoCapture``.

    Parameters
    ----------
    source:
        Camera index (``int`` or digit string) or path to a video file.
    resolution:
        Requested (width, height) for cameras; ignored for files.
    fps:
        Requested capture rate, also the throttle rate when *throttle* is set.
    throttle:
        Drop frames that arrive faster than ``1 / fps`` (live cameras only).
    flip_horizontal:
        Mirror the image left-to-right.
    """

    def __init__(
        self,
        source: Union[int, str] = 0,
        resolution: Tuple[int, int] = (640, 480),
        fps: float = 30.0,
        throttle: bool = True,
        flip_horizontal: bool = False,
    ) -> None:
        if isinstance(source, str) and source.isdigit():
            source = int(source)
        self.source = source
        self.resolution = resolution
        self.fps = fps
        self.throttle = throttle
        self.flip_horizontal = flip_horizontal

        self._cap: "cv2.VideoCapture | None" = None
        self._last_delivery = 0.0

    @property
    def is_file(self) -> bool:
        return not isinstance(self.source, int)

    @property
    def native_fps(self) -> float:
        """Frame rate reported by the open source, or 0.0 when unknown."""
        if self._cap is None:
            return 0.0
        fps = float(self._cap.get(cv2.CAP_PROP_FPS))
        return fps if math.isfinite(fps) and fps > 0 else 0.0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> None:
        """Open the capture device or file (no-op when already open)."""
        if self._cap is not None:
            return
        cap = cv2.VideoCapture(self.source)
        if not cap.isOpened():
            raise RuntimeError(f"Cannot open video source {self.source!r}")
        if not self.is_file:
            w, h = self.resolution
            cap.set(cv2.CAP_PROP_FRAME_WIDTH, w)
            cap.set(cv2.CAP_PROP_FRAME_HEIGHT, h)
            cap.set(cv2.CAP_PROP_FPS, self.fps)
        self._cap = cap
        logger.info("Video source opened – source=%r fps=%.1f", self.source, self.fps)

    def close(self) -> None:
        if self._cap is None:
            return
        self._cap.release()
        self._cap = None
        logger.info("Video source closed.")

    def __enter__(self) -> "FrameSource":
        self.open()
        return self

    def __exit__(self, *_) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Frame acquisition
    # ------------------------------------------------------------------

    def read_frame(self) -> np.ndarray | None:
        """Capture a single BGR frame, or *None* on failure / end of file."""
        if self._cap is None:
            raise RuntimeError("Video source is not open.  Call open() first.")
        ok, frame = self._cap.read()
        if not ok:
            return None
        if self.flip_horizontal:
            frame = cv2.flip(frame, 1)
        return frame

    def frames(self) -> Generator[np.ndarray, None, None]:
        """
        Yield frames until the source is exhausted or fails repeatedly.

        Usage::

            with FrameSource(0) as src:
                for frame in src.frames():
                    engine.push_frame(frame)
        """
        interval = 1.0 / self.fps if self.fps > 0 else 0.0
        null_streak = 0
        while self._cap is not None:
            frame = self.read_frame()
            if frame is None:
                if self.is_file:
                    logger.info("End of video file.")
                    break
                null_streak += 1
                if null_streak >= 10:
                    logger.error("Camera returned 10 consecutive empty reads – aborting.")
                    break
                continue
            null_streak = 0

            if self.throttle and not self.is_file:
                now = time.monotonic()
                if now - self._last_delivery < interval:
                    continue
                self._last_delivery = now
            yield frame
