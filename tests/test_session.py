"""
Unit tests for ListeningSession and the WAV replay CLI.
Run with:  pytest tests/test_session.py
"""

from __future__ import annotations

import logging

import numpy as np
import pytest
from scipy.io import wavfile

import main as cli
from babybeat.beat_estimator import BeatEstimator, FrameResult
from babybeat.config import fetal_config
from babybeat.dual_band import DualBandMonitor, DualBandResult
from babybeat.session import ListeningSession

FS = 8000
BLOCK = 400                      # 50 ms at 8 kHz


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _heartbeat_clip(bpm: float, seconds: float, amp: float = 0.05, channels: int = 2) -> np.ndarray:
    """Silence with one 50 ms, 60 Hz thump per beat, aligned to 50 ms blocks."""
    n = int(FS * seconds)
    clip = np.zeros(n)
    period = int(round(FS * 60.0 / bpm / BLOCK)) * BLOCK
    burst = amp * np.sin(2 * np.pi * 60.0 * np.arange(BLOCK) / FS)
    for start in range(0, n - BLOCK + 1, period):
        clip[start:start + BLOCK] = burst
    if channels == 1:
        return clip
    return np.column_stack([clip] * channels)


def _feed_clip(session: ListeningSession, clip: np.ndarray):
    results = []
    for start in range(0, len(clip), BLOCK):
        block = clip[start:start + BLOCK]
        results.append(session.feed(block, (start + len(block)) * 1000.0 / FS))
    return results


# ---------------------------------------------------------------------------
# ListeningSession
# ---------------------------------------------------------------------------

class TestListeningSession:

    def test_ignores_blocks_while_stopped(self):
        session = ListeningSession(FS)
        result = session.feed(_heartbeat_clip(120, 0.05), 50.0)
        assert session.running is False
        assert result.beat_detected is False
        assert session.detector.fetal.last_beat_ms is None

    def test_detects_fetal_rhythm(self):
        session = ListeningSession(FS)
        session.start()
        results = _feed_clip(session, _heartbeat_clip(120, 5.0))
        final = results[-1]
        assert isinstance(final, DualBandResult)
        assert sum(r.beat_detected for r in results) == 10
        assert final.fetal.locked is True
        assert final.primary_bpm == pytest.approx(120.0, abs=1.0)
        assert final.maternal.bpm is None

    def test_single_band_session(self):
        session = ListeningSession(FS, dual_band=False, mic_type="stethoscope")
        assert isinstance(session.detector, BeatEstimator)
        with session:
            results = _feed_clip(session, _heartbeat_clip(150, 5.0))
            final = results[-1]
            assert isinstance(final, FrameResult)
            assert final.locked is True
            assert final.bpm == pytest.approx(150.0, abs=1.0)
        assert session.running is False
        assert session.detector.locked is False

    def test_stop_resets_state(self):
        session = ListeningSession(FS)
        session.start()
        _feed_clip(session, _heartbeat_clip(120, 4.0))
        session.stop()
        assert session.last_result.primary_bpm is None
        assert session.detector.fetal.recent_intervals_ms == ()

    def test_quiet_input_gives_no_beats(self):
        session = ListeningSession(FS)
        session.start()
        results = _feed_clip(session, _heartbeat_clip(120, 3.0, amp=0.001))
        assert not any(r.beat_detected for r in results)

    def test_sensitivity_slider(self):
        session = ListeningSession(FS)
        assert session.set_sensitivity(0) == 1
        assert session.set_sensitivity(12) == 10
        assert session.config.sensitivity == 10
        assert session.detector.maternal.config.sensitivity == 10

        single = ListeningSession(FS, dual_band=False)
        assert single.set_sensitivity(4) == 4
        assert single.config.sensitivity == 4

    def test_filter_slider(self):
        session = ListeningSession(FS)
        assert session.set_filter_hz(500) == 200
        assert session.set_filter_hz(10) == 30
        assert session.config.filter_center_hz == 30

        single = ListeningSession(FS, dual_band=False)
        assert single.set_filter_hz(90) == 90
        assert single.config.filter_center_hz == 90

    def test_initial_settings_shared_with_maternal_band(self):
        session = ListeningSession(FS, config=fetal_config(sensitivity=3, filter_center_hz=50))
        assert isinstance(session.detector, DualBandMonitor)
        assert session.detector.maternal.config.sensitivity == 3
        assert session.detector.maternal.config.filter_center_hz == 50


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

class TestCli:

    def _write_clip(self, path, bpm=120.0, seconds=6.0, channels=2):
        clip = _heartbeat_clip(bpm, seconds, channels=channels)
        wavfile.write(str(path), FS, (clip * 32767).astype(np.int16))
        return path

    def test_parse_args_defaults(self, tmp_path):
        args = cli.parse_args([str(tmp_path / "x.wav")])
        assert args.frame_size == 2048
        assert args.sensitivity == 7.0
        assert args.mic_type == "default"
        assert args.single is False

    def test_single_band_replay(self, tmp_path, capsys):
        clip = self._write_clip(tmp_path / "beat.wav")
        code = cli.main([str(clip), "--frame-size", str(BLOCK), "--single"])
        out = capsys.readouterr().out
        assert code == 0
        assert "Waiting for a steady rhythm" in out
        assert "120 BPM" in out

    def test_dual_band_replay(self, tmp_path, capsys):
        clip = self._write_clip(tmp_path / "beat.wav", channels=1)
        code = cli.main([str(clip), "--frame-size", str(BLOCK)])
        out = capsys.readouterr().out
        assert code == 0
        assert "Fetal: 120 BPM (candidate, in fetal range)" in out

    def test_missing_clip(self, tmp_path):
        assert cli.main([str(tmp_path / "missing.wav")]) == 1

    def test_invalid_sensitivity(self, tmp_path):
        clip = self._write_clip(tmp_path / "beat.wav", seconds=1.0)
        assert cli.main([str(clip), "--sensitivity", "0"]) == 1

    def test_load_clip_scales_pcm(self, tmp_path):
        path = tmp_path / "pcm.wav"
        wavfile.write(str(path), FS, np.array([0, 16384, -32768], dtype=np.int16))
        rate, samples = cli.load_clip(path)
        assert rate == FS
        np.testing.assert_allclose(samples, [0.0, 0.5, -1.0])

    def test_load_clip_warns_on_unexpected_sample_type(self, tmp_path, monkeypatch, caplog):
        path = self._write_clip(tmp_path / "beat.wav", seconds=0.1)
        monkeypatch.setattr(cli.wavfile, "read", lambda _: (FS, np.array([True, False])))
        with caplog.at_level(logging.WARNING, logger="babybeat"):
            rate, samples = cli.load_clip(path)
        assert rate == FS
        np.testing.assert_allclose(samples, [1.0, 0.0])
        assert "Unexpected sample type bool" in caplog.text

    def test_float_clip_loads_without_warning(self, tmp_path, caplog):
        path = tmp_path / "float.wav"
        wavfile.write(str(path), FS, np.array([0.0, 0.5, -0.25], dtype=np.float32))
        with caplog.at_level(logging.WARNING, logger="babybeat"):
            _, samples = cli.load_clip(path)
        np.testing.assert_allclose(samples, [0.0, 0.5, -0.25])
        assert caplog.records == []

    @pytest.mark.parametrize("value", ["0", "-1"])
    def test_invalid_report_interval(self, tmp_path, capsys, value):
        clip = self._write_clip(tmp_path / "beat.wav", seconds=1.0)
        assert cli.main([str(clip), "--report-every", value]) == 1
        assert capsys.readouterr().out == ""
