#!/usr/bin/env python3
"""
Pulse Engine – main entry point.

Usage
-----
    python main.py [OPTIONS]

Options
-------
    --source SRC         Camera index or video file path (default: 0)
    --fps FLOAT          Frame / sample rate in Hz (default: file rate, else 30)
    --window INT         Ring-buffer capacity in samples (default: 512)
    --methods NAMES      Comma-separated extraction methods (default: chrom,pos)
    --low-cutoff FLOAT   Pulse band lower edge in Hz (default: 0.7)
    --high-cutoff FLOAT  Pulse band upper edge in Hz (default: 4.0)
    --smoothing INT      BPM history length (default: 30)
    --interval FLOAT     Seconds between estimates (default: 1.0)
    --roi-fraction FLOAT Centre ROI side as a fraction of the frame (default: 0.35)
    --no-skin-gate       Ingest every frame, even without visible skin
    --parallel           Evaluate pipelines on worker threads
    --duration FLOAT     Stop after this many seconds (default: run until Ctrl-C)
    --verbose            Debug logging

BPM per pipeline is logged once per estimation tick.
"""

from __future__ import annotations

import argparse
import logging
import sys
import time

from pulse_engine.capture import FrameSource
from pulse_engine.config import EngineConfig
from pulse_engine.errors import ConfigError
from pulse_engine.methods import available_methods
from pulse_engine.pipeline import PulseEngine
from pulse_engine.roi import SkinGate, center_roi, crop
from pulse_engine.scheduler import TickScheduler

logger = logging.getLogger("pulse_engine")


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def _method_list(value: str) -> tuple:
    return tuple(v.strip() for v in value.split(",") if v.strip())


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    defaults = EngineConfig()
    parser = argparse.ArgumentParser(
        description="Webcam heart-rate estimation (rPPG)",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--source", default="0",
                        help="Camera index or path to a video file")
    parser.add_argument("--fps", dest="sample_rate", type=float, default=None,
                        help="Frame delivery / sample rate in Hz "
                             f"(video files: their own rate, else {defaults.sample_rate:g})")
    parser.add_argument("--window", dest="window_size", type=int,
                        default=defaults.window_size,
                        help="Ring-buffer capacity in samples")
    parser.add_argument("--methods", type=_method_list,
                        default=defaults.methods,
                        help=f"Comma-separated methods ({', '.join(available_methods())})")
    parser.add_argument("--low-cutoff", type=float, default=defaults.low_cutoff,
                        help="Pulse band lower edge in Hz")
    parser.add_argument("--high-cutoff", type=float, default=defaults.high_cutoff,
                        help="Pulse band upper edge in Hz")
    parser.add_argument("--smoothing", dest="average_pulse_sample_size", type=int,
                        default=defaults.average_pulse_sample_size,
                        help="Number of estimates averaged into the reported BPM")
    parser.add_argument("--interval", dest="tick_interval", type=float,
                        default=defaults.tick_interval,
                        help="Seconds between BPM estimates")
    parser.add_argument("--roi-fraction", type=float, default=0.35,
                        help="Centre ROI side as a fraction of the shorter frame side")
    parser.add_argument("--no-skin-gate", action="store_true",
                        help="Ingest every frame without the skin check")
    parser.add_argument("--parallel", action="store_true",
                        help="Evaluate pipelines on worker threads")
    parser.add_argument("--duration", type=float, default=None,
                        help="Stop after this many seconds")
    parser.add_argument("--verbose", action="store_true",
                        help="Enable debug logging")
    return parser.parse_args(argv)


def _log_results(results: dict) -> None:
    parts = []
    for name, bpm in results.items():
        parts.append(f"{name.upper()}={bpm:.1f}" if bpm is not None else f"{name.upper()}=–")
    logger.info("BPM  %s", "  ".join(parts))


def resolve_sample_rate(requested: float | None, native: float) -> float | None:
    """
    Sample rate to analyse a video file at.

    Without ``--fps`` the file's own frame rate is used.  An explicit rate
    that disagrees with the file is kept but warned about, since every BPM
    value is scaled by ``requested / native``.
    """
    if native <= 0:
        return requested
    if requested is None:
        logger.info("Using the file's frame rate of %.2f Hz.", native)
        return native
    if abs(requested - native) > 0.01 * native:
        logger.warning(
            "--fps %.2f differs from the file's frame rate of %.2f Hz; "
            "BPM values will be off by a factor of %.3f.",
            requested, native, requested / native,
        )
    return requested


# ---------------------------------------------------------------------------
# Main loop
# ---------------------------------------------------------------------------

def run(args: argparse.Namespace) -> int:
    source = FrameSource(args.source, fps=args.sample_rate or EngineConfig.sample_rate)
    try:
        source.open()
    except RuntimeError as exc:
        logger.error("%s", exc)
        return 1
    if source.is_file:
        args.sample_rate = resolve_sample_rate(args.sample_rate, source.native_fps)

    try:
        config = EngineConfig.from_args(args).validate()
    except ConfigError as exc:
        logger.error("Invalid configuration: %s", exc)
        source.close()
        return 1
    source.fps = config.sample_rate

    gate = None if args.no_skin_gate else SkinGate()
    engine = PulseEngine(config)
    engine.add_listener(_log_results)
    scheduler = TickScheduler(engine.tick, config.tick_interval)

    logger.info("Starting pulse engine.  Press Ctrl-C to quit.")
    started = time.monotonic()
    rejected = 0

    try:
        with engine, source, scheduler:
            roi = None
            for frame in source.frames():
                if roi is None:
                    roi = center_roi(frame.shape, args.roi_fraction)
                patch = crop(frame, roi)

                if gate is not None and not gate.is_skin(patch):
                    rejected += 1
                    if rejected % max(1, int(config.sample_rate)) == 0:
                        logger.info("No skin in region of interest – waiting.")
                else:
                    engine.push_frame(patch)

                if args.duration is not None and time.monotonic() - started >= args.duration:
                    break

            if source.is_file:
                # Offline input arrives faster than real time; flush one final tick.
                engine.tick()
    except KeyboardInterrupt:
        logger.info("Interrupted.")
    except RuntimeError as exc:
        logger.error("%s", exc)
        return 1

    return 0


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s – %(message)s",
        datefmt="%H:%M:%S",
    )
    return run(args)


if __name__ == "__main__":
    sys.exit(main())
