"""
Acoustic beat detector and BPM estimator.

Algorithm
---------
1. For every incoming mono frame compute the peak and mean absolute
   amplitude and the RMS energy.
2. Compare the peak against a threshold derived from the sensitivity
   slider (higher sensitivity → lower threshold).
3. A threshold crossing counts as a beat only if the refractory period
   since the previous beat has elapsed.  The beat clock is re-armed on
   every such crossing, whether or not its interval is accepted.
4. The interval to the previous beat is kept only when it falls inside
   the configured window; the history is a bounded deque.
5. The BPM estimate is a trimmed mean of the most recent intervals,
   clamped to the valid range, exponentially smoothed and step-limited.
6. The read-out locks once enough intervals agree with their median and
   is cleared again when no interval has been accepted within the lock
   timeout.  Rejected crossings move the refractory clock only.

The estimator is a plain synchronous state machine: one instance per
listening session, fed from a single thread in arrival order.
"""

from __future__ import annotations

import logging
import math
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Iterable, Optional, Tuple

import numpy as np

from babybeat.config import (
    MS_PER_MINUTE,
    SENSITIVITY_MAX,
    SENSITIVITY_MIN,
    EstimatorConfig,
)
from babybeat.quality import EnvelopeTracker, beat_quality, interval_consistency, rms

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FrameResult:
    """
    Read-out produced for one frame.

    ``bpm`` is ``None`` whenever ``locked`` is false.  ``interval_ms`` is
    the interval that this frame's beat added to the history, if any.
    """

    beat_detected: bool = False
    bpm: Optional[float] = None
    locked: bool = False
    confidence: float = 0.0
    timestamp_ms: Optional[float] = None
    peak: float = 0.0
    mean_amplitude: float = 0.0
    threshold: float = 0.0
    interval_ms: Optional[float] = None


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def peak_threshold(config: EstimatorConfig, sensitivity: Optional[float] = None) -> float:
    """
    Peak amplitude a frame must exceed to count as a beat.

    ``base + (pivot - sensitivity) * step``, with the sensitivity clamped to
    the slider range and the result floored at ``min_threshold``.
    """
    sens = config.sensitivity if sensitivity is None else sensitivity
    if not math.isfinite(sens):
        sens = config.sensitivity_pivot
    sens = min(SENSITIVITY_MAX, max(SENSITIVITY_MIN, sens))
    threshold = config.base_threshold + (config.sensitivity_pivot - sens) * config.sensitivity_step
    return max(config.min_threshold, threshold)


def trimmed_mean(values: Iterable[float], trim_fraction: float) -> float:
    """
    Mean of *values* after cutting the extremes.

    ``max(1, floor(n * trim_fraction))`` values are removed from each end of
    the sorted sample (none when *trim_fraction* is 0).  If nothing is left
    the untrimmed mean is returned.  An empty input gives 0.0.
    """
    ordered = np.sort(np.asarray(list(values), dtype=np.float64))
    n = ordered.size
    if n == 0:
        return 0.0
    cut = max(1, int(n * trim_fraction)) if trim_fraction > 0 else 0
    trimmed = ordered[cut:n - cut]
    base = trimmed if trimmed.size else ordered
    return float(base.mean())


def count_consistent(intervals_ms: Iterable[float], tolerance: float) -> Tuple[int, int]:
    """Return ``(consistent, total)``: intervals within ±tolerance of their median."""
    arr = np.asarray(list(intervals_ms), dtype=np.float64)
    if arr.size == 0:
        return 0, 0
    median = float(np.median(arr))
    consistent = int(np.count_nonzero(np.abs(arr - median) <= tolerance * median))
    return consistent, int(arr.size)


# ---------------------------------------------------------------------------
# Estimator
# ---------------------------------------------------------------------------

class BeatEstimator:
    """
    Stateful per-frame beat detector.

    Parameters
    ----------
    config:
        Tunables.  The object is held by reference, so changes made to it
        between frames (e.g. from a sensitivity slider) apply to the next
        frame.  Defaults to :class:`~babybeat.config.EstimatorConfig`.

    Raises
    ------
    ConfigurationError
        If *config* holds an invalid value.
    """

    def __init__(self, config: Optional[EstimatorConfig] = None) -> None:
        self._config = config if config is not None else EstimatorConfig()
        self._config.validate()

        self._intervals: Deque[float] = deque(maxlen=int(self._config.history_size))
        self._quality: Deque[float] = deque(maxlen=int(self._config.quality_history_size))
        self._envelopes = EnvelopeTracker()

        self._last_beat_ms: Optional[float] = None
        self._last_accepted_ms: Optional[float] = None
        self._last_now_ms: Optional[float] = None
        self._smoothed_bpm: float = 0.0
        self._locked: bool = False
        self._last_result = FrameResult()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def process_frame(
        self,
        samples: Any,
        now_ms: float,
        config: Optional[EstimatorConfig] = None,
    ) -> FrameResult:
        """
        Analyse one frame of mono samples captured at *now_ms*.

        Parameters
        ----------
        samples:
            1-D array-like of floats, roughly in [-1, 1].
        now_ms:
            Monotonic timestamp of the frame in milliseconds.
        config:
            Optional replacement configuration.  A new object is validated
            (raising ``ConfigurationError``) and kept for later frames.

        An empty or malformed frame, a missing or non-finite timestamp or a
        timestamp earlier than the previous frame's leaves the state
        untouched and returns the previous result.
        """
        if config is not None and config is not self._config:
            config.validate()
            self._config = config
        cfg = self._config

        try:
            frame = np.asarray(samples, dtype=np.float64).ravel()
            now_ms = float(now_ms)
        except (TypeError, ValueError) as e:
            logger.debug("Ignoring malformed frame: %s", e)
            return self._last_result
        if frame.size == 0:
            return self._last_result

        if not math.isfinite(now_ms) or (self._last_now_ms is not None and now_ms < self._last_now_ms):
            logger.debug("Ignoring frame with out-of-order timestamp %s", now_ms)
            return self._last_result
        self._last_now_ms = now_ms

        self._sync_buffers(cfg)

        frame = np.nan_to_num(frame, nan=0.0, posinf=0.0, neginf=0.0)
        amplitude = np.abs(frame)
        peak = float(amplitude.max())
        mean_amplitude = float(amplitude.mean())
        snr = self._envelopes.update(rms(frame))
        threshold = peak_threshold(cfg)

        self._check_timeout(now_ms, cfg)

        beat_detected = False
        accepted_interval: Optional[float] = None
        if peak > threshold and self._refractory_elapsed(now_ms, cfg):
            beat_detected = True
            accepted_interval = self._register_beat(now_ms, peak, snr, cfg)

        result = FrameResult(
            beat_detected=beat_detected,
            bpm=self.bpm,
            locked=self._locked,
            confidence=self._confidence(),
            timestamp_ms=now_ms,
            peak=peak,
            mean_amplitude=mean_amplitude,
            threshold=threshold,
            interval_ms=accepted_interval,
        )
        self._last_result = result
        return result

    def reset(self) -> None:
        """Forget all rolling state (listening stopped or restarted)."""
        self._intervals = deque(maxlen=int(self._config.history_size))
        self._quality = deque(maxlen=int(self._config.quality_history_size))
        self._envelopes.reset()
        self._last_beat_ms = None
        self._last_accepted_ms = None
        self._last_now_ms = None
        self._smoothed_bpm = 0.0
        self._locked = False
        self._last_result = FrameResult()

    @property
    def config(self) -> EstimatorConfig:
        return self._config

    @property
    def recent_intervals_ms(self) -> Tuple[float, ...]:
        """Accepted intervals, oldest first."""
        return tuple(self._intervals)

    @property
    def smoothed_bpm(self) -> float:
        """Internal smoothed estimate (0.0 = unknown), shown only when locked."""
        return self._smoothed_bpm

    @property
    def bpm(self) -> Optional[float]:
        if self._locked and self._smoothed_bpm > 0:
            return self._smoothed_bpm
        return None

    @property
    def locked(self) -> bool:
        return self._locked

    @property
    def last_beat_ms(self) -> Optional[float]:
        return self._last_beat_ms

    @property
    def last_accepted_ms(self) -> Optional[float]:
        """Time of the beat that last added an interval to the history."""
        return self._last_accepted_ms

    @property
    def last_result(self) -> FrameResult:
        return self._last_result

    @property
    def snr_db(self) -> float:
        return self._envelopes.snr

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _sync_buffers(self, cfg: EstimatorConfig) -> None:
        """Follow live changes of the history capacity or interval window."""
        if self._intervals.maxlen != cfg.history_size:
            self._intervals = deque(self._intervals, maxlen=int(cfg.history_size))
        if self._quality.maxlen != cfg.quality_history_size:
            self._quality = deque(self._quality, maxlen=int(cfg.quality_history_size))
        if any(not cfg.min_interval_ms <= iv <= cfg.max_interval_ms for iv in self._intervals):
            kept = [iv for iv in self._intervals if cfg.min_interval_ms <= iv <= cfg.max_interval_ms]
            logger.debug("Interval window changed; dropping %d stale intervals",
                         len(self._intervals) - len(kept))
            self._intervals = deque(kept, maxlen=int(cfg.history_size))

    def _refractory_elapsed(self, now_ms: float, cfg: EstimatorConfig) -> bool:
        if self._last_beat_ms is None:
            return True
        return now_ms - self._last_beat_ms > cfg.refractory_ms

    def _check_timeout(self, now_ms: float, cfg: EstimatorConfig) -> None:
        # Silence counts from the last accepted interval, not the last crossing.
        if self._last_accepted_ms is None:
            return
        silence = now_ms - self._last_accepted_ms
        if silence <= cfg.lock_timeout_ms:
            return
        if self._locked:
            logger.info("Lock lost: no accepted beat for %.0f ms", silence)
        if self._locked or self._intervals or self._smoothed_bpm:
            self._clear_rhythm()

    def _clear_rhythm(self) -> None:
        self._intervals.clear()
        self._quality.clear()
        self._smoothed_bpm = 0.0
        self._locked = False

    def _register_beat(
        self, now_ms: float, peak: float, snr: float, cfg: EstimatorConfig
    ) -> Optional[float]:
        """Record a beat at *now_ms*; return the interval if it was accepted."""
        if self._last_beat_ms is None:
            self._last_beat_ms = now_ms
            logger.debug("First beat at %.0f ms", now_ms)
            return None

        interval = now_ms - self._last_beat_ms
        # Re-armed on every crossing, accepted or not.
        self._last_beat_ms = now_ms

        if not cfg.min_interval_ms <= interval <= cfg.max_interval_ms:
            logger.debug(
                "Discarding interval %.0f ms outside [%.0f, %.0f]",
                interval, cfg.min_interval_ms, cfg.max_interval_ms,
            )
            return None

        self._intervals.append(interval)
        self._last_accepted_ms = now_ms
        self._quality.append(beat_quality(peak, snr))
        self._update_bpm(cfg)
        self._update_lock(cfg)
        return interval

    def _update_bpm(self, cfg: EstimatorConfig) -> None:
        if len(self._intervals) < cfg.min_intervals_for_estimate:
            return

        window = list(self._intervals)[-int(cfg.estimate_window):]
        representative = trimmed_mean(window, cfg.trim_fraction)
        raw_bpm = MS_PER_MINUTE / representative if representative > 0 else math.inf
        if not math.isfinite(raw_bpm):
            logger.debug("Discarding non-finite BPM estimate")
            return
        raw_bpm = min(cfg.bpm_max, max(cfg.bpm_min, raw_bpm))

        prev = self._smoothed_bpm
        if prev <= 0:
            candidate = raw_bpm
        else:
            candidate = cfg.smoothing_alpha * raw_bpm + (1.0 - cfg.smoothing_alpha) * prev
            step = candidate - prev
            if abs(step) > cfg.max_step_bpm:
                candidate = prev + math.copysign(cfg.max_step_bpm, step)

        if not math.isfinite(candidate) or not cfg.bpm_min <= candidate <= cfg.bpm_max:
            logger.debug("Discarding BPM %.1f outside [%.0f, %.0f]", candidate, cfg.bpm_min, cfg.bpm_max)
            return
        self._smoothed_bpm = candidate

    def _update_lock(self, cfg: EstimatorConfig) -> None:
        """
        Acquire the lock once enough recent intervals agree with their median.

        The lock is sticky: later irregular intervals still move the smoothed
        BPM (within the step limit) but never drop the lock.  Only the
        timeout or :meth:`reset` releases it.
        """
        if self._locked or self._smoothed_bpm <= 0:
            return
        consistent, total = count_consistent(self._intervals, cfg.tolerance)
        if consistent >= cfg.min_beats_to_confirm and consistent / total >= cfg.min_consistent_fraction:
            self._locked = True
            logger.info(
                "Locked at %.1f BPM (%d/%d consistent intervals)",
                self._smoothed_bpm, consistent, total,
            )

    def _confidence(self) -> float:
        if not self._quality:
            return 0.0
        quality = float(np.mean(self._quality))
        score = 0.5 * quality + 0.5 * interval_consistency(self._intervals)
        return min(1.0, max(0.0, score))


def create_estimator(config: Optional[EstimatorConfig] = None, **overrides: Any) -> BeatEstimator:
    """
    Build a fresh :class:`BeatEstimator`.

    Keyword *overrides* are applied on top of *config* (or of the defaults)
    and validated before the estimator is created.
    """
    if config is None:
        config = EstimatorConfig(**overrides)
    elif overrides:
        config = config.replace(**overrides)
    return BeatEstimator(config)
