"""
Engine configuration.

All values are fixed at initialisation; there is no hot reload.  The
defaults reproduce a 30 fps webcam with a ~17 s analysis window and a
0.7 – 4.0 Hz (42 – 240 BPM) pulse band.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass, field, fields, replace
from typing import Tuple

from pulse_engine.errors import ConfigError
from pulse_engine.methods import get_method


@dataclass(frozen=True)
class EngineConfig:
    window_size:               int   = 512      # ring-buffer capacity (samples)
    sample_rate:               float = 30.0     # Hz, must match frame delivery
    low_cutoff:                float = 0.7      # Hz, band-pass and peak search
    high_cutoff:               float = 4.0      # Hz
    lower_limit_bpm:           float = 40.0     # clamp / reject band
    upper_limit_bpm:           float = 200.0
    average_pulse_sample_size: int   = 30       # smoothing history length
    nfft:                      int   = 1024     # spectral resolution
    methods:                   Tuple[str, ...] = field(default=("chrom", "pos"))
    filter_order:              int   = 3
    fallback_bpm:              float = 75.0     # reported when no spectral peak exists
    tick_interval:             float = 1.0      # seconds between estimates
    history_seconds:           float = 15.0     # time-stamped reading log span
    normalize:                 bool  = False    # divide by RMS before detrending
    parallel:                  bool  = False    # run pipelines on worker threads

    def __post_init__(self) -> None:
        # Accept any iterable of names (lists come in from argparse / dicts).
        object.__setattr__(self, "methods", tuple(self.methods))

    @property
    def bin_width(self) -> float:
        """Frequency resolution of the PSD in Hz."""
        return self.sample_rate / self.nfft

    def validate(self) -> "EngineConfig":
        """
        Check the configuration for consistency.

        Returns *self* so the call can be chained.  Raises
        :class:`~pulse_engine.errors.ConfigError` describing the first
        problem found.
        """
        if self.window_size < 2:
            raise ConfigError(f"window_size must be >= 2, got {self.window_size}")
        if self.sample_rate <= 0:
            raise ConfigError(f"sample_rate must be positive, got {self.sample_rate}")
        if self.nfft < self.window_size:
            raise ConfigError(
                f"nfft ({self.nfft}) must be >= window_size ({self.window_size})"
            )
        nyq = self.sample_rate / 2.0
        if not 0 < self.low_cutoff < self.high_cutoff < nyq:
            raise ConfigError(
                "cut-offs must satisfy 0 < low_cutoff < high_cutoff < sample_rate/2, "
                f"got low={self.low_cutoff} high={self.high_cutoff} nyquist={nyq}"
            )
        if self.lower_limit_bpm >= self.upper_limit_bpm:
            raise ConfigError(
                f"lower_limit_bpm ({self.lower_limit_bpm}) must be below "
                f"upper_limit_bpm ({self.upper_limit_bpm})"
            )
        if self.average_pulse_sample_size < 1:
            raise ConfigError("average_pulse_sample_size must be >= 1")
        if self.filter_order < 1:
            raise ConfigError("filter_order must be >= 1")
        if self.tick_interval <= 0:
            raise ConfigError("tick_interval must be positive")
        if self.history_seconds < 0:
            raise ConfigError("history_seconds must be >= 0")
        if not self.methods:
            raise ConfigError("at least one extraction method is required")

        seen = set()
        for name in self.methods:
            get_method(name)
            key = name.lower()
            if key in seen:
                raise ConfigError(f"duplicate extraction method: {name!r}")
            seen.add(key)
        return self

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "EngineConfig":
        """
        Build a config from parsed command-line arguments.

        Only attributes that exist on *args* and are not ``None`` override
        the defaults.
        """
        overrides = {}
        for f in fields(cls):
            value = getattr(args, f.name, None)
            if value is not None:
                overrides[f.name] = value
        return replace(cls(), **overrides)
