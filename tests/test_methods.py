"""
Unit tests for the CHROM, POS and GREEN extraction methods.
Run with:  pytest tests/test_methods.py
"""

from __future__ import annotations

import numpy as np
import pytest

from pulse_engine.errors import ConfigError, UnknownMethodError
from pulse_engine.methods import available_methods, chrom, get_method, green, pos

FS = 30.0


def _pulse_rgb(n: int = 512, hz: float = 1.2, amplitude: float = 1.0):
    """Constant skin baseline plus a blood-volume pulse in all three channels."""
    t = np.arange(n) / FS
    wave = amplitude * np.sin(2 * np.pi * hz * t)
    r = 100.0 + 0.33 * wave
    g = 80.0 + 0.77 * wave
    b = 60.0 + 0.53 * wave
    return r, g, b


# ---------------------------------------------------------------------------
# CHROM
# ---------------------------------------------------------------------------

class TestChrom:

    def test_constant_input_gives_zeros(self):
        n = 256
        r = np.full(n, 100.0)
        g = np.full(n, 80.0)
        b = np.full(n, 60.0)
        (signal,) = chrom(r, g, b, FS)
        assert signal.shape == (n,)
        assert np.allclose(signal, 0.0, atol=1e-9)

    def test_zero_variance_y_is_guarded(self):
        # R and B vary together with G constant, so Y = 1.5R + G - 1.5B is flat.
        n = 128
        ramp = np.arange(n, dtype=np.float64)
        r = 100.0 + ramp
        g = np.full(n, 80.0)
        b = 60.0 + ramp
        (signal,) = chrom(r, g, b, FS)
        assert np.all(np.isfinite(signal))
        x = 3 * r - 2 * g
        assert np.allclose(signal, x - x.mean())

    def test_pulse_recovered(self):
        r, g, b = _pulse_rgb()
        (signal,) = chrom(r, g, b, FS)
        assert signal.std() > 0.1
        # Dominant frequency stays at the pulse rate.
        spectrum = np.abs(np.fft.rfft(signal))
        freqs = np.fft.rfftfreq(len(signal), d=1.0 / FS)
        assert abs(freqs[np.argmax(spectrum)] - 1.2) < 0.1


# ---------------------------------------------------------------------------
# POS
# ---------------------------------------------------------------------------

class TestPos:

    def test_output_length_and_warmup_zeros(self):
        rng = np.random.default_rng(0)
        n = 200
        r, g, b = (100.0 + rng.normal(0, 1, n) for _ in range(3))
        (signal,) = pos(r, g, b, FS)
        win = int(round(1.6 * FS))
        assert signal.shape == (n,)
        assert np.all(signal[:win - 1] == 0.0)
        assert np.any(signal[win - 1:] != 0.0)

    def test_input_shorter_than_window(self):
        n = 20
        r, g, b = _pulse_rgb(n)
        (signal,) = pos(r, g, b, FS)
        assert signal.shape == (n,)
        assert np.all(signal == 0.0)

    def test_zero_mean_channel_not_divided(self):
        r, g, _ = _pulse_rgb(120)
        b = np.zeros(120)
        (signal,) = pos(r, g, b, FS)
        assert np.all(np.isfinite(signal))

    def test_constant_input_is_finite_and_flat(self):
        n = 100
        (signal,) = pos(np.full(n, 90.0), np.full(n, 70.0), np.full(n, 50.0), FS)
        assert np.all(np.isfinite(signal))
        assert np.allclose(signal, 0.0, atol=1e-9)

    def test_pulse_recovered(self):
        r, g, b = _pulse_rgb()
        (signal,) = pos(r, g, b, FS)
        spectrum = np.abs(np.fft.rfft(signal - signal.mean()))
        freqs = np.fft.rfftfreq(len(signal), d=1.0 / FS)
        assert abs(freqs[np.argmax(spectrum)] - 1.2) < 0.1


# ---------------------------------------------------------------------------
# GREEN / registry
# ---------------------------------------------------------------------------

class TestGreenAndRegistry:

    def test_green_returns_copy_of_green(self):
        r, g, b = _pulse_rgb(64)
        (signal,) = green(r, g, b, FS)
        assert np.array_equal(signal, g)
        signal[0] = -1.0
        assert g[0] != -1.0

    def test_lookup_is_case_insensitive(self):
        assert get_method("CHROM") is chrom
        assert get_method("Pos") is pos

    def test_unknown_method(self):
        with pytest.raises(UnknownMethodError):
            get_method("ica")
        with pytest.raises(ConfigError):
            get_method("ica")
        with pytest.raises(ValueError):
            get_method("ica")

    def test_available_methods(self):
        assert set(available_methods()) == {"chrom", "pos", "green"}
