#!/usr/bin/env python3
"""
Baby Beat – main entry point.

Replays a recorded WAV clip through a listening session and logs the
heartbeat read-out as it would have appeared live.

Usage
-----
    python main.py CLIP.wav [OPTIONS]

Options
-------
    --frame-size INT     Samples per analysis frame (default: 2048)
    --sensitivity FLOAT  Sensitivity slider 1 – 10 (default: 7)
    --filter-hz FLOAT    Listening-band centre in Hz (default: 70)
    --mic-type STR       default / dji-mic-mini / professional / stethoscope
    --single             Track the fetal band only (no maternal band)
    --report-every FLOAT Seconds between read-out lines (default: 1)
    --verbose            Debug logging (every beat decision)
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Tuple

import numpy as np
from scipy.io import wavfile

from babybeat.beat_estimator import FrameResult
from babybeat.config import ConfigurationError, fetal_config
from babybeat.session import ListeningSession, SessionResult

logger = logging.getLogger("babybeat")

MIC_TYPES = ("default", "dji-mic-mini", "professional", "stethoscope")


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Baby heartbeat BPM estimator (offline replay of a WAV clip)",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("clip", type=Path,
                        help="WAV file to analyse")
    parser.add_argument("--frame-size", type=int, default=2048,
                        help="Samples per analysis frame")
    parser.add_argument("--sensitivity", type=float, default=7.0,
                        help="Sensitivity slider (1 – 10)")
    parser.add_argument("--filter-hz", type=float, default=70.0,
                        help="Listening-band centre in Hz")
    parser.add_argument("--mic-type", choices=MIC_TYPES, default="default",
                        help="Microphone preset (selects the analysed channel)")
    parser.add_argument("--single", action="store_true",
                        help="Track the fetal band only")
    parser.add_argument("--report-every", type=float, default=1.0,
                        help="Seconds between read-out lines")
    parser.add_argument("--verbose", action="store_true",
                        help="Log every beat decision")
    return parser.parse_args(argv)


# ---------------------------------------------------------------------------
# Audio helpers
# ---------------------------------------------------------------------------

def load_clip(path: Path) -> Tuple[int, np.ndarray]:
    """Read *path* and return ``(sample_rate, samples)`` as floats in [-1, 1]."""
    rate, data = wavfile.read(str(path))
    if data.dtype == np.uint8:
        samples = (data.astype(np.float64) - 128.0) / 128.0
    elif np.issubdtype(data.dtype, np.integer):
        samples = data.astype(np.float64) / float(np.iinfo(data.dtype).max + 1)
    elif np.issubdtype(data.dtype, np.floating):
        samples = data.astype(np.float64)
    else:
        logger.warning("Unexpected sample type %s in %s; converting to float", data.dtype, path)
        samples = data.astype(np.float64)
    return int(rate), samples


def format_reading(result: SessionResult) -> str:
    if isinstance(result, FrameResult):
        if result.bpm is None:
            return "Waiting for a steady rhythm…"
        return f"{round(result.bpm)} BPM"
    return result.describe()


# ---------------------------------------------------------------------------
# Main loop
# ---------------------------------------------------------------------------

def run(args: argparse.Namespace) -> int:
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s – %(message)s",
        datefmt="%H:%M:%S",
    )

    if args.frame_size <= 0:
        logger.error("--frame-size must be positive.")
        return 1
    if args.report_every <= 0:
        logger.error("--report-every must be positive.")
        return 1
    if not args.clip.is_file():
        logger.error("Clip not found: %s", args.clip)
        return 1

    try:
        rate, samples = load_clip(args.clip)
    except ValueError as e:
        logger.error("Could not read %s: %s", args.clip, e)
        return 1

    try:
        config = fetal_config(sensitivity=args.sensitivity, filter_center_hz=args.filter_hz)
    except ConfigurationError as e:
        logger.error("Invalid settings: %s", e)
        return 1

    session = ListeningSession(
        rate, config=config, mic_type=args.mic_type, dual_band=not args.single,
    )
    logger.info("Analysing %s (%d Hz, %.1f s)", args.clip, rate, len(samples) / rate)

    beats = 0
    next_report_ms = args.report_every * 1000.0
    result: SessionResult = session.last_result

    with session:
        for start in range(0, len(samples), args.frame_size):
            block = samples[start:start + args.frame_size]
            now_ms = (start + len(block)) * 1000.0 / rate
            result = session.feed(block, now_ms)
            if result.beat_detected:
                beats += 1
            if now_ms >= next_report_ms:
                print(f"[{now_ms / 1000.0:7.2f}s] {format_reading(result)}  conf={result.confidence:.2f}")
                next_report_ms += args.report_every * 1000.0

        logger.info("Done: %d beats detected. Final read-out: %s", beats, format_reading(result))

    return 0


def main(argv: list[str] | None = None) -> int:
    return run(parse_args(argv))


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    sys.exit(main())
