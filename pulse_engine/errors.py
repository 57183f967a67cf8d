"""
Exceptions raised by the pulse engine.

Only :class:`NotReadyError` is raised during normal operation; callers are
expected to treat it as "skip this tick", not as a failure.  Degenerate
statistics and empty spectral bands are handled inside the engine and never
surface as exceptions.
"""

from __future__ import annotations


class PulseEngineError(Exception):
    """Base class for every error raised by :mod:`pulse_engine`."""


class NotReadyError(PulseEngineError):
    """The ring buffer has not been filled yet."""


class ConfigError(PulseEngineError, ValueError):
    """Inconsistent or out-of-range engine configuration."""


class UnknownMethodError(ConfigError):
    """An extraction method name that is not registered."""
