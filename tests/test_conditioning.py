"""
Unit tests for detrending, the streaming band-pass and SignalConditioner.
Run with:  pytest tests/test_conditioning.py
"""

from __future__ import annotations

import numpy as np
import pytest

from pulse_engine.conditioning import SignalConditioner, StreamingBandpass, detrend

FS = 30.0


def _sine(hz: float, n: int = 512, amplitude: float = 1.0) -> np.ndarray:
    return amplitude * np.sin(2 * np.pi * hz * np.arange(n) / FS)


class TestDetrend:

    def test_removes_line(self):
        t = np.arange(100, dtype=np.float64)
        assert np.allclose(detrend(3.0 * t + 5.0), 0.0, atol=1e-9)

    def test_matches_polyfit_residual(self):
        rng = np.random.default_rng(1)
        y = rng.normal(0, 1, 300) + np.linspace(0, 10, 300)
        t = np.arange(300)
        slope, intercept = np.polyfit(t, y, 1)
        assert np.allclose(detrend(y), y - (slope * t + intercept))

    def test_short_inputs(self):
        assert detrend(np.array([])).size == 0
        assert np.allclose(detrend(np.array([4.0])), [0.0])


class TestStreamingBandpass:

    def test_state_persists_between_calls(self):
        x = _sine(1.2, 128)
        bp = StreamingBandpass(FS, 0.7, 4.0, order=3)
        assert not bp.primed
        first = bp.process(x)
        second = bp.process(x)
        assert bp.primed
        assert not np.allclose(first, second)

    def test_reset_restores_initial_state(self):
        x = _sine(1.2, 128)
        bp = StreamingBandpass(FS, 0.7, 4.0, order=3)
        first = bp.process(x)
        bp.process(x)
        bp.reset()
        assert np.allclose(bp.process(x), first)

    def test_continuous_stream_equals_blockwise(self):
        x = _sine(1.5, 300)
        whole = StreamingBandpass(FS, 0.7, 4.0).process(x)
        blocks = StreamingBandpass(FS, 0.7, 4.0)
        pieces = np.concatenate([blocks.process(x[:100]), blocks.process(x[100:])])
        assert np.allclose(whole, pieces)

    def test_non_finite_state_is_reprimed(self):
        x = _sine(1.2, 128)
        poisoned = x.copy()
        poisoned[10] = np.nan
        bp = StreamingBandpass(FS, 0.7, 4.0)
        bp.process(poisoned)
        recovered = bp.process(x)
        assert np.all(np.isfinite(recovered))
        assert np.allclose(recovered, StreamingBandpass(FS, 0.7, 4.0).process(x))

    def test_passband_and_stopband(self):
        n = 600
        bp_in = StreamingBandpass(FS, 0.7, 4.0)
        bp_out = StreamingBandpass(FS, 0.7, 4.0)
        passed = bp_in.process(_sine(1.2, n))[200:]
        stopped = bp_out.process(_sine(10.0, n))[200:]
        rms_pass = np.sqrt(np.mean(passed ** 2))
        rms_stop = np.sqrt(np.mean(stopped ** 2))
        assert rms_pass > 0.5
        assert rms_stop < 0.2 * rms_pass


class TestSignalConditioner:

    def test_one_output_per_channel_same_length(self):
        sc = SignalConditioner(FS, 0.7, 4.0)
        out = sc.condition([_sine(1.2), _sine(2.0)])
        assert len(out) == 2
        assert all(o.shape == (512,) for o in out)
        assert all(np.all(np.isfinite(o)) for o in out)

    def test_channels_do_not_share_state(self):
        a, b = _sine(1.2, 256), _sine(2.5, 256)
        pair = SignalConditioner(FS, 0.7, 4.0).condition([a, b])
        alone = SignalConditioner(FS, 0.7, 4.0).condition([a])
        assert np.allclose(pair[0], alone[0])

    def test_offset_and_trend_do_not_matter(self):
        x = _sine(1.2, 256)
        ramp = 50.0 + 0.1 * np.arange(256)
        plain = SignalConditioner(FS, 0.7, 4.0).condition([x])[0]
        shifted = SignalConditioner(FS, 0.7, 4.0).condition([x + ramp])[0]
        assert np.allclose(plain, shifted)

    def test_hamming_tapers_ends(self):
        out = SignalConditioner(FS, 0.7, 4.0).condition([_sine(1.2)])[0]
        mid = np.abs(out[200:312]).max()
        assert abs(out[-1]) < 0.15 * mid

    def test_reset_clears_filter_state(self):
        x = _sine(1.2, 256)
        sc = SignalConditioner(FS, 0.7, 4.0)
        first = sc.condition([x])[0]
        second = sc.condition([x])[0]
        assert not np.allclose(first, second)
        sc.reset()
        assert np.allclose(sc.condition([x])[0], first)

    @pytest.mark.parametrize("scale", [0.01, 25.0])
    def test_normalize_makes_output_scale_free(self, scale):
        x = _sine(1.2, 256) + 0.3 * _sine(2.2, 256)
        ref = SignalConditioner(FS, 0.7, 4.0, normalize=True).condition([x])[0]
        scaled = SignalConditioner(FS, 0.7, 4.0, normalize=True).condition([scale * x])[0]
        assert np.allclose(ref, scaled)

    def test_without_normalize_output_scales_linearly(self):
        x = _sine(1.2, 256)
        ref = SignalConditioner(FS, 0.7, 4.0).condition([x])[0]
        scaled = SignalConditioner(FS, 0.7, 4.0).condition([3.0 * x])[0]
        assert np.allclose(scaled, 3.0 * ref)
