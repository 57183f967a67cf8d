"""
Multi-pipeline pulse estimation.

A :class:`PulseEngine` owns the RGB ring buffer and one :class:`Pipeline`
per configured extraction method.  Frames are pushed at capture rate; at a
fixed, independent cadence :meth:`PulseEngine.tick` takes one snapshot of
the buffer and runs it through every pipeline:

    snapshot → extraction → conditioning → Welch PSD peak → history mean

Each pipeline owns its band-pass filter state and BPM history exclusively,
so pipelines can be evaluated concurrently on worker threads.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from enum import Enum, auto
from typing import Callable, Deque, Dict, List, NamedTuple, Optional

import numpy as np

from pulse_engine.buffer import ColorSample, RingBuffer, reduce_frame
from pulse_engine.conditioning import SignalConditioner
from pulse_engine.config import EngineConfig
from pulse_engine.errors import NotReadyError
from pulse_engine.methods import ExtractionMethod, get_method
from pulse_engine.spectral import SpectralEstimator

logger = logging.getLogger(__name__)

Results = Dict[str, Optional[float]]
Listener = Callable[[Results], None]

# Peak-to-peak below this fraction of the input scale counts as no signal.
_FLAT_TOLERANCE = 1e-9


class EngineState(Enum):
    WARMING = auto()   # buffer not yet full, no estimate produced
    ACTIVE  = auto()   # every tick runs the full chain


class Reading(NamedTuple):
    bpm:       float
    timestamp: float   # time.monotonic()


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

class Pipeline:
    """
    One extraction method with its own conditioning state and BPM history.

    Parameters
    ----------
    name:
        Identifier reported to listeners (usually the method name).
    method:
        Extraction function, see :mod:`pulse_engine.methods`.
    config:
        Engine configuration supplying filter, spectral and smoothing
        parameters.
    clock:
        Time source for the reading log (``time.monotonic`` by default).
    """

    def __init__(
        self,
        name: str,
        method: ExtractionMethod,
        config: EngineConfig,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.method = method
        self.config = config
        self._clock = clock

        self.conditioner = SignalConditioner(
            sample_rate=config.sample_rate,
            low_cutoff=config.low_cutoff,
            high_cutoff=config.high_cutoff,
            order=config.filter_order,
            normalize=config.normalize,
        )
        self.estimator = SpectralEstimator(
            sample_rate=config.sample_rate,
            nfft=config.nfft,
            low_cutoff=config.low_cutoff,
            high_cutoff=config.high_cutoff,
            lower_limit_bpm=config.lower_limit_bpm,
            upper_limit_bpm=config.upper_limit_bpm,
            fallback_bpm=config.fallback_bpm,
        )
        self._history: Deque[float] = deque(maxlen=config.average_pulse_sample_size)
        self._readings: Deque[Reading] = deque()
        self._bpm: Optional[float] = None
        self._last_instant: Optional[float] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def estimate(self, r: np.ndarray, g: np.ndarray, b: np.ndarray) -> float:
        """
        Instantaneous BPM of one snapshot (updates filter state only).

        A snapshot holding non-finite values yields NaN and leaves the filter
        state untouched.  Extracted channels that are flat to within rounding
        noise carry no pulse and are left out of the average; when every
        channel is flat the result is ``fallback_bpm``.
        """
        rgb = np.stack((r, g, b))
        if not np.all(np.isfinite(rgb)):
            logger.warning("[%s] snapshot holds non-finite samples; skipping.", self.name)
            return float("nan")

        channels = self.method(r, g, b, self.config.sample_rate)
        conditioned = self.conditioner.condition(channels)

        tolerance = _FLAT_TOLERANCE * max(1.0, float(np.abs(rgb).max()))
        live = [s for raw, s in zip(channels, conditioned) if np.ptp(raw) > tolerance]
        if conditioned and not live:
            logger.debug("[%s] flat pulse signal; using %.1f BPM.",
                         self.name, self.estimator.fallback_bpm)
        return self.estimator.estimate(live)

    def process(self, r: np.ndarray, g: np.ndarray, b: np.ndarray) -> Optional[float]:
        """
        Run one snapshot through the chain and update the smoothed BPM.

        Returns the reported BPM, which is unchanged when this tick's
        estimate falls outside the configured limits.
        """
        instant = self.estimate(r, g, b)
        self._last_instant = instant
        self.update(instant)
        return self._bpm

    def update(self, instant: float) -> bool:
        """
        Feed an instantaneous estimate into the history.

        Returns *True* if it was accepted.
        """
        cfg = self.config
        if not math.isfinite(instant) or not (
            cfg.lower_limit_bpm <= instant <= cfg.upper_limit_bpm
        ):
            logger.debug("[%s] discarding out-of-range estimate %.1f BPM",
                         self.name, instant)
            return False

        self._history.append(instant)
        self._bpm = float(np.mean(self._history))

        now = self._clock()
        self._readings.append(Reading(self._bpm, now))
        while self._readings and now - self._readings[0].timestamp > cfg.history_seconds:
            self._readings.popleft()
        return True

    def reset(self) -> None:
        self.conditioner.reset()
        self._history.clear()
        self._readings.clear()
        self._bpm = None
        self._last_instant = None

    @property
    def bpm(self) -> Optional[float]:
        """Smoothed BPM, or *None* before the first accepted estimate."""
        return self._bpm

    @property
    def last_instant(self) -> Optional[float]:
        """Most recent instantaneous estimate, accepted or not."""
        return self._last_instant

    @property
    def history(self) -> List[float]:
        return list(self._history)

    @property
    def readings(self) -> List[Reading]:
        """Accepted readings from the last ``history_seconds`` seconds."""
        return list(self._readings)

    def __repr__(self) -> str:
        return f"Pipeline(name={self.name!r}, bpm={self._bpm!r})"


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class PulseEngine:
    """
    Ring buffer plus a set of independent estimation pipelines.

    Parameters
    ----------
    config:
        Validated on construction.  Defaults to :class:`EngineConfig()`.
    clock:
        Time source passed to every pipeline.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = (config or EngineConfig()).validate()
        self.buffer = RingBuffer(self.config.window_size)
        self.pipelines: Dict[str, Pipeline] = {}
        for name in self.config.methods:
            key = name.lower()
            self.pipelines[key] = Pipeline(key, get_method(key), self.config, clock)

        self._listeners: List[Listener] = []
        self._tick_lock = threading.Lock()
        self._executor: Optional[ThreadPoolExecutor] = None
        if self.config.parallel and len(self.pipelines) > 1:
            self._executor = ThreadPoolExecutor(
                max_workers=len(self.pipelines), thread_name_prefix="pulse-pipeline",
            )

        logger.info(
            "Pulse engine ready – methods=%s window=%d fs=%.1f Hz band=%.2f–%.2f Hz "
            "resolution=%.2f BPM",
            ",".join(self.pipelines), self.config.window_size,
            self.config.sample_rate, self.config.low_cutoff, self.config.high_cutoff,
            self.config.bin_width * 60.0,
        )

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def push_sample(self, sample: ColorSample) -> bool:
        """
        Append *sample* to the buffer.

        Non-finite samples are dropped with a warning so one bad frame never
        reaches the pipelines.  Returns whether the sample was stored.
        """
        try:
            self.buffer.push(sample)
        except ValueError as exc:
            logger.warning("Dropping colour sample: %s", exc)
            return False
        return True

    def push_frame(self, frame: np.ndarray, order: str = "bgr") -> ColorSample:
        """Reduce *frame* to its mean colour and push it.  Returns the sample."""
        sample = reduce_frame(frame, order)
        self.push_sample(sample)
        return sample

    # ------------------------------------------------------------------
    # Estimation
    # ------------------------------------------------------------------

    @property
    def state(self) -> EngineState:
        return EngineState.ACTIVE if self.buffer.full else EngineState.WARMING

    def tick(self) -> Optional[Results]:
        """
        Run every pipeline on the current buffer contents.

        Returns a mapping of pipeline name to reported BPM, or *None* while
        the buffer is still warming up.
        """
        with self._tick_lock:
            try:
                r, g, b = self.buffer.snapshot()
            except NotReadyError as exc:
                logger.debug("Skipping tick: %s", exc)
                return None

            if self._executor is not None:
                futures = {
                    name: self._executor.submit(p.process, r, g, b)
                    for name, p in self.pipelines.items()
                }
                results = {name: f.result() for name, f in futures.items()}
            else:
                results = {name: p.process(r, g, b) for name, p in self.pipelines.items()}

        self._notify(results)
        return results

    @property
    def results(self) -> Results:
        """Last reported BPM per pipeline."""
        return {name: p.bpm for name, p in self.pipelines.items()}

    def bpm(self, name: str) -> Optional[float]:
        return self.pipelines[name.lower()].bpm

    def readings(self, name: str) -> List[Reading]:
        return self.pipelines[name.lower()].readings

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, callback: Listener) -> None:
        """Call *callback(results)* after every tick that produced results."""
        self._listeners.append(callback)

    def remove_listener(self, callback: Listener) -> None:
        self._listeners.remove(callback)

    def _notify(self, results: Results) -> None:
        for callback in list(self._listeners):
            try:
                callback(dict(results))
            except Exception:                               # noqa: BLE001
                logger.exception("Pulse listener %r failed.", callback)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def reset(self) -> None:
        """Clear the buffer and every pipeline's filter state and history."""
        with self._tick_lock:
            self.buffer.clear()
            for p in self.pipelines.values():
                p.reset()
        logger.info("Pulse engine reset.")

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def __enter__(self) -> "PulseEngine":
        return self

    def __exit__(self, *_) -> None:
        self.close()
