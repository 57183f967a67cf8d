"""
Pulse Engine — remote photoplethysmography (rPPG) heart-rate estimation.

Per-frame mean skin colour is collected in a ring buffer; at a fixed
cadence the buffer is run through one or more extraction pipelines
(CHROM, POS, GREEN), band-pass conditioned and converted to BPM from the
peak of a Welch power spectrum.
"""

from pulse_engine.buffer import ColorSample, RingBuffer, reduce_frame
from pulse_engine.config import EngineConfig
from pulse_engine.errors import (
    ConfigError,
    NotReadyError,
    PulseEngineError,
    UnknownMethodError,
)
from pulse_engine.pipeline import EngineState, Pipeline, PulseEngine, Reading
from pulse_engine.scheduler import TickScheduler

__version__ = "0.1.0"
__author__ = "pulse_engine"

__all__ = [
    "ColorSample",
    "ConfigError",
    "EngineConfig",
    "EngineState",
    "NotReadyError",
    "Pipeline",
    "PulseEngine",
    "PulseEngineError",
    "Reading",
    "RingBuffer",
    "TickScheduler",
    "UnknownMethodError",
    "reduce_frame",
]
