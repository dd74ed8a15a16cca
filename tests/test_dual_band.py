"""
Unit tests for the fetal / maternal DualBandMonitor.
Run with:  pytest tests/test_dual_band.py
"""

from __future__ import annotations

import numpy as np
import pytest

from babybeat.beat_estimator import FrameResult
from babybeat.dual_band import DualBandMonitor, DualBandResult

LOUD = np.full(32, 1.0)
QUIET = np.zeros(32)


def _feed(monitor: DualBandMonitor, period_ms: float, n_beats: int) -> DualBandResult:
    beats = {i * period_ms for i in range(n_beats)}
    result = monitor.last_result
    t = 0.0
    while t <= (n_beats - 1) * period_ms:
        result = monitor.process_frame(LOUD if t in beats else QUIET, t)
        t += 50.0
    return result


class TestDualBandMonitor:

    def test_fetal_rhythm_goes_to_fetal_band(self):
        mon = DualBandMonitor()
        result = _feed(mon, 500.0, 7)
        assert result.fetal.locked is True
        assert result.fetal.bpm == pytest.approx(120.0, abs=0.5)
        assert result.maternal.bpm is None
        assert mon.maternal.recent_intervals_ms == ()
        assert result.primary_label == "fetal"
        assert result.primary_bpm == result.fetal.bpm
        assert result.fetal_in_ideal_range is True

    def test_maternal_rhythm_goes_to_maternal_band(self):
        mon = DualBandMonitor()
        result = _feed(mon, 800.0, 6)
        assert result.fetal.bpm is None
        assert mon.fetal.recent_intervals_ms == ()
        assert result.maternal.locked is True
        assert result.maternal.bpm == pytest.approx(75.0, abs=0.5)
        assert result.primary_label == "maternal"
        assert result.bpm == result.maternal.bpm

    def test_primary_moves_to_maternal_when_rhythm_slows(self):
        mon = DualBandMonitor()
        _feed(mon, 500.0, 7)                      # fetal locks, last beat at 3000
        slow = {3000.0 + i * 800.0 for i in range(1, 9)}
        t = 3050.0
        result = mon.last_result
        while t <= 9500.0:
            result = mon.process_frame(LOUD if t in slow else QUIET, t)
            t += 50.0

        assert result.fetal.locked is False
        assert result.fetal.bpm is None
        assert result.maternal.locked is True
        assert result.maternal.bpm == pytest.approx(75.0, abs=0.5)
        assert result.primary_label == "maternal"
        assert result.primary_bpm == result.maternal.bpm

    def test_both_bands_share_beat_timing(self):
        mon = DualBandMonitor()
        _feed(mon, 800.0, 4)
        assert mon.fetal.last_beat_ms == mon.maternal.last_beat_ms == 2400.0

    def test_describe(self):
        mon = DualBandMonitor()
        fetal = _feed(mon, 500.0, 7)
        assert fetal.describe() == "Fetal: 120 BPM (candidate, in fetal range) • Maternal: —"

        mon.reset()
        maternal = _feed(mon, 800.0, 6)
        assert maternal.describe() == "Fetal: — • Maternal: 75 BPM (likely maternal)"

    def test_describe_outside_ideal_range(self):
        result = DualBandResult(
            fetal=FrameResult(bpm=175.0, locked=True),
            maternal=FrameResult(),
        )
        assert result.fetal_in_ideal_range is False
        assert result.describe() == "Fetal: 175 BPM (candidate) • Maternal: —"

    def test_nothing_locked(self):
        result = DualBandMonitor().last_result
        assert result.primary_label is None
        assert result.primary_bpm is None
        assert result.beat_detected is False
        assert result.describe() == "Fetal: — • Maternal: —"

    def test_set_sensitivity_applies_to_both(self):
        mon = DualBandMonitor()
        assert mon.set_sensitivity(15) == 10
        assert mon.fetal.config.sensitivity == 10
        assert mon.maternal.config.sensitivity == 10
        assert mon.set_sensitivity(-2) == 1

    def test_set_filter_hz_applies_to_both(self):
        mon = DualBandMonitor()
        mon.set_filter_hz(90.0)
        assert mon.fetal.config.filter_center_hz == 90.0
        assert mon.maternal.config.filter_center_hz == 90.0

    def test_reset(self):
        mon = DualBandMonitor()
        _feed(mon, 500.0, 7)
        mon.reset()
        assert mon.fetal.locked is False
        assert mon.fetal.last_beat_ms is None
        assert mon.maternal.last_beat_ms is None
