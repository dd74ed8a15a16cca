"""
Signal-quality helpers.

Three exponential envelopes follow the RMS energy of each frame:

* a very slow *noise floor* (fed with a fraction of the energy, so it sits
  below the signal),
* a slow *signal envelope*,
* a fast envelope that reacts to individual beats.

The ratio of signal envelope to noise floor gives an SNR in dB.  None of
these values gate beat detection; they only feed the displayed
confidence score.
"""

from __future__ import annotations

import math
from typing import Sequence

import numpy as np

NOISE_FLOOR_ALPHA = 0.001
SIGNAL_ENVELOPE_ALPHA = 0.2
FAST_ENVELOPE_ALPHA = 0.35
NOISE_FLOOR_FRACTION = 0.3
INITIAL_NOISE_FLOOR = 0.001

STRONG_PEAK = 0.7      # empirical "strong" peak amplitude
GOOD_SNR_DB = 10.0


def ema(prev: float, value: float, alpha: float) -> float:
    """One step of an exponential moving average."""
    return prev + alpha * (value - prev)


def rms(samples: np.ndarray) -> float:
    """Root-mean-square of *samples* (0.0 for an empty array)."""
    if samples.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(np.square(samples))))


def snr_db(signal: float, noise: float) -> float:
    """Signal-to-noise ratio in dB; 0.0 when either level is not positive."""
    if noise <= 0 or signal <= 0:
        return 0.0
    return 20.0 * math.log10(signal / noise)


def beat_quality(peak: float, snr: float) -> float:
    """
    Score a single beat in [0, 1].

    60 % amplitude strength (relative to :data:`STRONG_PEAK`) and 40 % SNR
    (relative to :data:`GOOD_SNR_DB`).
    """
    amp_quality = min(1.0, max(0.0, peak / STRONG_PEAK))
    snr_quality = min(1.0, max(0.0, snr / GOOD_SNR_DB))
    return amp_quality * 0.6 + snr_quality * 0.4


def interval_consistency(intervals_ms: Sequence[float]) -> float:
    """
    Inverse spread of the intervals in [0, 1].

    ``1 / (1 + 10 * cv)`` where *cv* is the coefficient of variation, so
    perfectly regular beats score 1.0 and a 10 % spread scores 0.5.
    Fewer than two intervals score 0.0.
    """
    if len(intervals_ms) < 2:
        return 0.0
    arr = np.asarray(intervals_ms, dtype=np.float64)
    mean = float(arr.mean())
    if mean <= 0:
        return 0.0
    cv = float(arr.std()) / mean
    return 1.0 / (1.0 + 10.0 * cv)


class EnvelopeTracker:
    """Slow/fast amplitude envelopes and a noise-floor estimate."""

    def __init__(self) -> None:
        self.reset()

    def update(self, energy: float) -> float:
        """Feed one frame's RMS *energy*; return the current SNR in dB."""
        self.noise_floor = ema(self.noise_floor, energy * NOISE_FLOOR_FRACTION, NOISE_FLOOR_ALPHA)
        self.signal_envelope = ema(self.signal_envelope, energy, SIGNAL_ENVELOPE_ALPHA)
        self.fast_envelope = ema(self.fast_envelope, energy, FAST_ENVELOPE_ALPHA)
        return self.snr

    @property
    def snr(self) -> float:
        return snr_db(self.signal_envelope, self.noise_floor)

    def reset(self) -> None:
        self.noise_floor: float = INITIAL_NOISE_FLOOR
        self.signal_envelope: float = 0.0
        self.fast_envelope: float = 0.0
