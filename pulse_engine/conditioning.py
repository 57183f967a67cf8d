"""
Signal conditioning ahead of spectral analysis.

Each extracted pulse channel is mean-centred, linearly detrended, passed
through a streaming Butterworth band-pass and finally Hamming-windowed.
The band-pass keeps its internal state between calls: it is *not* reset
from one estimation tick to the next, so consecutive windows are filtered
as one continuous stream.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

import numpy as np
from scipy.signal import butter, sosfilt
from scipy.signal import detrend as linear_detrend

logger = logging.getLogger(__name__)


def detrend(signal: np.ndarray) -> np.ndarray:
    """Subtract the least-squares line fitted over sample index."""
    y = np.asarray(signal, dtype=np.float64)
    if len(y) < 2:
        return y - y.mean() if len(y) else y.copy()
    return linear_detrend(y, type="linear")


class StreamingBandpass:
    """
    Butterworth band-pass in second-order sections with persistent state.

    Parameters
    ----------
    sample_rate:
        Sampling frequency in Hz.
    low_cutoff, high_cutoff:
        Pass band edges in Hz.
    order:
        Butterworth order (the band-pass has twice as many poles).
    """

    def __init__(
        self,
        sample_rate: float,
        low_cutoff: float,
        high_cutoff: float,
        order: int = 3,
    ) -> None:
        self.sample_rate = sample_rate
        self.low_cutoff = low_cutoff
        self.high_cutoff = high_cutoff
        self.order = order
        self._sos = butter(order, [low_cutoff, high_cutoff], btype="bandpass",
                           fs=sample_rate, output="sos")
        self._zi: Optional[np.ndarray] = None

    def process(self, samples: np.ndarray) -> np.ndarray:
        """
        Filter *samples*, continuing from the state left by the last call.

        A state left non-finite by bad input is re-primed from rest, so the
        stream recovers on the next finite block.
        """
        if self._zi is not None and not np.all(np.isfinite(self._zi)):
            logger.warning("Band-pass state is non-finite; re-priming the filter.")
            self._zi = None
        if self._zi is None:
            self._zi = np.zeros((self._sos.shape[0], 2))
        filtered, self._zi = sosfilt(self._sos, samples, zi=self._zi)
        return filtered

    def reset(self) -> None:
        self._zi = None

    @property
    def primed(self) -> bool:
        """Whether the filter has processed at least one block."""
        return self._zi is not None


class SignalConditioner:
    """
    Per-pipeline conditioning chain.

    One :class:`StreamingBandpass` is kept per channel so channels never
    share filter state.  Filters are created lazily the first time a given
    channel count is seen.
    """

    def __init__(
        self,
        sample_rate: float,
        low_cutoff: float,
        high_cutoff: float,
        order: int = 3,
        normalize: bool = False,
    ) -> None:
        self.sample_rate = sample_rate
        self.low_cutoff = low_cutoff
        self.high_cutoff = high_cutoff
        self.order = order
        self.normalize = normalize
        self._filters: List[StreamingBandpass] = []

    def condition(self, channels: Sequence[np.ndarray]) -> List[np.ndarray]:
        """Return one conditioned signal per input channel."""
        while len(self._filters) < len(channels):
            self._filters.append(StreamingBandpass(
                self.sample_rate, self.low_cutoff, self.high_cutoff, self.order,
            ))

        out = []
        for bandpass, channel in zip(self._filters, channels):
            signal = np.asarray(channel, dtype=np.float64)
            signal = signal - signal.mean()
            if self.normalize:
                rms = np.sqrt(np.mean(signal ** 2))
                if rms > 0:
                    signal = signal / rms
            signal = detrend(signal)
            signal = bandpass.process(signal)
            out.append(signal * np.hamming(len(signal)))
        return out

    def reset(self) -> None:
        for bandpass in self._filters:
            bandpass.reset()
