"""
rPPG extraction methods.

Every method takes the chronologically ordered red, green and blue traces
(equal length) plus the sample rate and returns a list of pulse signals of
the same length.  Methods are plain functions selected by name; they hold
no state.

References
----------
- De Haan G., Jeanne V., "Robust pulse rate from chrominance-based rPPG."
  IEEE Trans. Biomed. Eng., 2013.  (CHROM)
- Wang W. et al., "Algorithmic principles of remote PPG."
  IEEE Trans. Biomed. Eng., 2017.  (POS)
- Verkruysse W. et al., "Remote plethysmographic imaging using ambient light."
  Opt Express, 2008.  (GREEN)
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Tuple

import numpy as np

from pulse_engine.errors import UnknownMethodError

logger = logging.getLogger(__name__)

ExtractionMethod = Callable[[np.ndarray, np.ndarray, np.ndarray, float], List[np.ndarray]]

# Plane-orthogonal-to-skin projection
_POS_PROJECTION = np.array([[0.0, 1.0, -1.0],
                            [-2.0, 1.0, 1.0]])

# Length of the POS sliding window in seconds
POS_WINDOW_SECONDS = 1.6


def _std_ratio(num: np.ndarray, den: np.ndarray) -> float:
    """
    ``std(num) / std(den)`` using the population standard deviation.

    A zero (or non-finite) denominator yields 0 so that a degenerate
    channel never injects NaN / Inf downstream.
    """
    s_den = float(np.std(den))
    if s_den == 0.0 or not np.isfinite(s_den):
        logger.debug("Degenerate signal: zero variance in denominator channel.")
        return 0.0
    return float(np.std(num)) / s_den


# ---------------------------------------------------------------------------
# Methods
# ---------------------------------------------------------------------------

def chrom(r: np.ndarray, g: np.ndarray, b: np.ndarray,
          sample_rate: float) -> List[np.ndarray]:
    """Chrominance-based pulse signal over the whole window, zero mean."""
    x = 3.0 * r - 2.0 * g
    y = 1.5 * r + g - 1.5 * b
    s = x - _std_ratio(x, y) * y
    return [s - s.mean()]


def pos(r: np.ndarray, g: np.ndarray, b: np.ndarray,
        sample_rate: float) -> List[np.ndarray]:
    """
    Plane-orthogonal-to-skin pulse signal.

    Sliding windows of ``round(1.6 * sample_rate)`` samples are temporally
    normalised, projected onto the POS plane, tuned and overlap-added into
    the output.  The first ``window - 1`` samples are covered by fewer than
    a full set of windows and are left at zero.
    """
    rgb = np.vstack((r, g, b)).astype(np.float64)
    total = rgb.shape[1]
    win = max(1, int(round(POS_WINDOW_SECONDS * sample_rate)))
    result = np.zeros(total, dtype=np.float64)
    if total < win:
        return [result]

    for n in range(win - 1, total):
        m = n - win + 1
        window = rgb[:, m:n + 1]

        means = window.mean(axis=1)
        scale = np.ones(3)
        nonzero = means != 0
        scale[nonzero] = 1.0 / means[nonzero]
        normalized = window * scale[:, np.newaxis]

        s0, s1 = _POS_PROJECTION @ normalized
        h = s0 + _std_ratio(s0, s1) * s1
        result[m:n + 1] += h - h.mean()

    result[:win - 1] = 0.0
    return [result]


def green(r: np.ndarray, g: np.ndarray, b: np.ndarray,
          sample_rate: float) -> List[np.ndarray]:
    """Raw green trace (haemoglobin absorption is strongest in green)."""
    return [np.asarray(g, dtype=np.float64).copy()]


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

_METHODS: Dict[str, ExtractionMethod] = {
    "chrom": chrom,
    "pos":   pos,
    "green": green,
}


def available_methods() -> Tuple[str, ...]:
    return tuple(_METHODS)


def get_method(name: str) -> ExtractionMethod:
    """Look up an extraction method by (case-insensitive) name."""
    try:
        return _METHODS[name.lower()]
    except KeyError:
        raise UnknownMethodError(
            f"unknown extraction method {name!r}; "
            f"choose from {', '.join(available_methods())}"
        ) from None
