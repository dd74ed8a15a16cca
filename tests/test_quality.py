"""
Unit tests for the signal-quality helpers.
Run with:  pytest tests/test_quality.py
"""

from __future__ import annotations

import numpy as np
import pytest

from babybeat.quality import (
    INITIAL_NOISE_FLOOR,
    EnvelopeTracker,
    beat_quality,
    ema,
    interval_consistency,
    rms,
    snr_db,
)


class TestQualityHelpers:

    def test_ema_step(self):
        assert ema(0.0, 1.0, 0.25) == pytest.approx(0.25)
        assert ema(2.0, 2.0, 0.9) == pytest.approx(2.0)

    def test_rms(self):
        assert rms(np.array([1.0, -1.0, 1.0, -1.0])) == pytest.approx(1.0)
        assert rms(np.array([])) == 0.0

    def test_snr(self):
        assert snr_db(1.0, 0.1) == pytest.approx(20.0)
        assert snr_db(1.0, 0.0) == 0.0
        assert snr_db(0.0, 0.1) == 0.0

    def test_beat_quality_bounds(self):
        assert beat_quality(0.0, 0.0) == 0.0
        assert beat_quality(5.0, 100.0) == pytest.approx(1.0)
        assert beat_quality(0.35, 5.0) == pytest.approx(0.5)

    def test_interval_consistency(self):
        assert interval_consistency([500, 500, 500]) == pytest.approx(1.0)
        assert interval_consistency([500]) == 0.0
        regular = interval_consistency([490, 510, 500])
        irregular = interval_consistency([500, 1000, 500, 1000])
        assert regular > irregular


class TestEnvelopeTracker:

    def test_snr_rises_with_signal(self):
        env = EnvelopeTracker()
        assert env.snr == 0.0
        for _ in range(20):
            env.update(0.5)
        assert env.snr > 10.0
        assert env.fast_envelope > env.signal_envelope > env.noise_floor

    def test_reset(self):
        env = EnvelopeTracker()
        env.update(1.0)
        env.reset()
        assert env.noise_floor == INITIAL_NOISE_FLOOR
        assert env.signal_envelope == 0.0
        assert env.fast_envelope == 0.0
