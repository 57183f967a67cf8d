"""
Spectral heart-rate estimation.

Algorithm
---------
1. Welch power spectral density: Hamming-windowed segments (25 % overlap),
   zero-padded to ``nfft`` and averaged.  With the default segment length
   equal to the whole signal this reduces to a single periodogram.
2. Restrict the PSD to the pulse band ``[low_cutoff, high_cutoff]`` Hz
   (both edges inclusive) and take the bin of maximum power.
3. Convert the bin frequency to BPM and clamp to the configured limits.
   When the band holds fewer than two bins or carries no power, a fallback
   BPM is reported instead of failing.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

import numpy as np

logger = logging.getLogger(__name__)

DEFAULT_FALLBACK_BPM = 75.0


def welch_psd(
    signal: np.ndarray,
    sample_rate: float,
    nfft: int = 1024,
    segment_length: Optional[int] = None,
) -> np.ndarray:
    """
    Welch-averaged PSD of *signal*, ``nfft // 2 + 1`` bins.

    Bin ``k`` corresponds to ``k * sample_rate / nfft`` Hz.
    """
    signal = np.asarray(signal, dtype=np.float64)
    n = len(signal)
    seg = n if segment_length is None else min(segment_length, n)
    if seg < 1:
        return np.zeros(nfft // 2 + 1)
    if seg > nfft:
        raise ValueError(f"segment length {seg} exceeds nfft {nfft}")

    overlap = seg // 4
    hop = seg - overlap
    n_segments = max(1, (n - seg) // hop + 1)

    window = np.hamming(seg)
    power_correction = float(np.mean(window ** 2))
    scale = sample_rate * power_correction

    psd = np.zeros(nfft // 2 + 1)
    for i in range(n_segments):
        start = i * hop
        spectrum = np.fft.rfft(signal[start:start + seg] * window, n=nfft)
        psd += np.abs(spectrum) ** 2 / scale
    return psd / n_segments


def peak_bpm(
    psd: np.ndarray,
    sample_rate: float,
    nfft: int,
    low_cutoff: float,
    high_cutoff: float,
    lower_limit_bpm: float,
    upper_limit_bpm: float,
    fallback_bpm: float = DEFAULT_FALLBACK_BPM,
) -> float:
    """Dominant in-band frequency of *psd*, in clamped BPM."""
    freqs = np.arange(len(psd)) * (sample_rate / nfft)
    band = np.flatnonzero((freqs >= low_cutoff) & (freqs <= high_cutoff))
    if len(band) < 2:
        logger.debug(
            "No spectral peak: band %.2f–%.2f Hz holds %d bin(s); using %.1f BPM.",
            low_cutoff, high_cutoff, len(band), fallback_bpm,
        )
        return fallback_bpm

    band_power = psd[band]
    if not np.all(np.isfinite(band_power)):
        logger.debug("Non-finite PSD values in band; using %.1f BPM.", fallback_bpm)
        return fallback_bpm
    if band_power.max() <= 0:
        logger.debug("No power in band; using %.1f BPM.", fallback_bpm)
        return fallback_bpm

    peak = band[int(np.argmax(band_power))]
    bpm = freqs[peak] * 60.0
    return float(min(upper_limit_bpm, max(lower_limit_bpm, bpm)))


class SpectralEstimator:
    """
    Welch PSD + band-limited peak search with fixed parameters.

    Parameters
    ----------
    sample_rate:
        Sampling frequency in Hz.
    nfft:
        FFT length; sets the bin width ``sample_rate / nfft``.
    low_cutoff, high_cutoff:
        Peak-search band in Hz.
    lower_limit_bpm, upper_limit_bpm:
        Clamp applied to every estimate.
    fallback_bpm:
        Reported when the band contains no usable peak.
    """

    def __init__(
        self,
        sample_rate: float,
        nfft: int = 1024,
        low_cutoff: float = 0.7,
        high_cutoff: float = 4.0,
        lower_limit_bpm: float = 40.0,
        upper_limit_bpm: float = 200.0,
        fallback_bpm: float = DEFAULT_FALLBACK_BPM,
    ) -> None:
        self.sample_rate = sample_rate
        self.nfft = nfft
        self.low_cutoff = low_cutoff
        self.high_cutoff = high_cutoff
        self.lower_limit_bpm = lower_limit_bpm
        self.upper_limit_bpm = upper_limit_bpm
        self.fallback_bpm = fallback_bpm

    def estimate_channel(self, signal: np.ndarray) -> float:
        psd = welch_psd(signal, self.sample_rate, self.nfft)
        return peak_bpm(
            psd, self.sample_rate, self.nfft,
            self.low_cutoff, self.high_cutoff,
            self.lower_limit_bpm, self.upper_limit_bpm,
            self.fallback_bpm,
        )

    def estimate(self, channels: Sequence[np.ndarray]) -> float:
        """Mean of the per-channel BPM estimates."""
        if not channels:
            return self.fallback_bpm
        return float(np.mean([self.estimate_channel(c) for c in channels]))
