"""
Estimator configuration.

All tunables of the beat detector live in one :class:`EstimatorConfig`
dataclass.  Values are checked once when the object is created (or
replaced); a bad value raises :class:`ConfigurationError` instead of
silently producing wrong BPM read-outs later.

The dataclass is intentionally mutable: UI sliders may change
``sensitivity`` or ``filter_center_hz`` between frames and the estimator
picks the new values up on the next frame.
"""

from __future__ import annotations

import dataclasses
import math
from dataclasses import dataclass
from typing import Any

MS_PER_MINUTE = 60000.0

# Sensitivity slider range (UI units).
SENSITIVITY_MIN = 1.0
SENSITIVITY_MAX = 10.0

# Fetal heart-rate window
FETAL_BPM_MIN = 100.0
FETAL_BPM_MAX = 190.0
FETAL_IDEAL_MIN = 120.0
FETAL_IDEAL_MAX = 160.0

# Maternal heart-rate window (slower)
MATERNAL_BPM_MIN = 50.0
MATERNAL_BPM_MAX = 110.0


class ConfigurationError(ValueError):
    """Raised when an :class:`EstimatorConfig` holds an invalid value."""


def bpm_to_interval_ms(bpm: float) -> float:
    """Convert a heart rate into the matching inter-beat interval (ms)."""
    return MS_PER_MINUTE / bpm


@dataclass
class EstimatorConfig:
    """
    Tunables for :class:`~babybeat.beat_estimator.BeatEstimator`.

    Parameters
    ----------
    sensitivity:
        Slider value 1 – 10.  Higher values lower the peak threshold.
    filter_center_hz:
        Centre of the listening band.  Only the front end uses it; the
        estimator itself works on already band-limited frames.
    refractory_ms:
        Minimum spacing between two detected peaks.  Suppresses double
        triggering on a single acoustic event.
    min_interval_ms, max_interval_ms:
        Inter-beat intervals outside this window never enter the history.
    smoothing_alpha:
        Weight of a new raw BPM in the exponential moving average (0 – 1].
    max_step_bpm:
        Largest change of the smoothed BPM allowed per accepted beat.
    min_beats_to_confirm:
        Number of mutually consistent intervals required before locking.
    lock_timeout_ms:
        Without a beat for this long the read-out is cleared.
    bpm_min, bpm_max:
        Valid output range.  Raw estimates are clamped into it.
    tolerance:
        Relative band around the median interval counted as "consistent".
    history_size:
        Capacity of the interval history (oldest evicted first).
    estimate_window:
        Number of most recent intervals averaged for one estimate.
    min_intervals_for_estimate:
        No BPM is computed with fewer intervals than this.
    trim_fraction:
        Fraction cut from each end of the sorted window before averaging.
    min_consistent_fraction:
        Share of the history that must be consistent to lock.
    base_threshold, sensitivity_pivot, sensitivity_step, min_threshold:
        Peak threshold is ``base + (pivot - sensitivity) * step``,
        floored at ``min_threshold``.
    quality_history_size:
        Number of per-beat quality scores kept for the confidence value.
    """

    sensitivity: float = 7.0
    filter_center_hz: float = 70.0
    refractory_ms: float = 350.0
    min_interval_ms: float = MS_PER_MINUTE / FETAL_BPM_MAX   # ~316 ms
    max_interval_ms: float = MS_PER_MINUTE / FETAL_BPM_MIN   # 600 ms
    smoothing_alpha: float = 0.25
    max_step_bpm: float = 10.0
    min_beats_to_confirm: int = 4
    lock_timeout_ms: float = 2500.0
    bpm_min: float = FETAL_BPM_MIN
    bpm_max: float = FETAL_BPM_MAX
    tolerance: float = 0.12
    history_size: int = 16
    estimate_window: int = 12
    min_intervals_for_estimate: int = 3
    trim_fraction: float = 0.2
    min_consistent_fraction: float = 0.75
    base_threshold: float = 0.18
    sensitivity_pivot: float = 7.0
    sensitivity_step: float = 0.01
    min_threshold: float = 0.01
    quality_history_size: int = 30

    def __post_init__(self) -> None:
        self.validate()

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------

    @classmethod
    def from_bpm_range(cls, bpm_min: float, bpm_max: float, **overrides: Any) -> "EstimatorConfig":
        """Build a config whose interval window matches ``[bpm_min, bpm_max]``."""
        if not (bpm_min > 0 and bpm_max > 0):
            raise ConfigurationError(
                f"BPM range must be positive, got [{bpm_min}, {bpm_max}]"
            )
        fields = {
            "bpm_min": float(bpm_min),
            "bpm_max": float(bpm_max),
            "min_interval_ms": bpm_to_interval_ms(bpm_max),
            "max_interval_ms": bpm_to_interval_ms(bpm_min),
        }
        fields.update(overrides)
        return cls(**fields)

    def replace(self, **changes: Any) -> "EstimatorConfig":
        """Return a validated copy with *changes* applied."""
        return dataclasses.replace(self, **changes)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self) -> None:
        """Raise :class:`ConfigurationError` if any field is out of range."""
        for f in dataclasses.fields(self):
            value = getattr(self, f.name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigurationError(f"{f.name} must be a number, got {value!r}")
            if not math.isfinite(value):
                raise ConfigurationError(f"{f.name} must be finite, got {value!r}")

        for name in (
            "min_beats_to_confirm",
            "history_size",
            "estimate_window",
            "min_intervals_for_estimate",
            "quality_history_size",
        ):
            value = getattr(self, name)
            if int(value) != value or value < 1:
                raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")

        if not SENSITIVITY_MIN <= self.sensitivity <= SENSITIVITY_MAX:
            raise ConfigurationError(
                f"sensitivity must be within [{SENSITIVITY_MIN:g}, {SENSITIVITY_MAX:g}], "
                f"got {self.sensitivity}"
            )
        if self.filter_center_hz <= 0:
            raise ConfigurationError(f"filter_center_hz must be > 0, got {self.filter_center_hz}")
        if self.refractory_ms < 0:
            raise ConfigurationError(f"refractory_ms must be >= 0, got {self.refractory_ms}")
        if not 0 < self.min_interval_ms < self.max_interval_ms:
            raise ConfigurationError(
                "interval window must satisfy 0 < min_interval_ms < max_interval_ms, "
                f"got [{self.min_interval_ms}, {self.max_interval_ms}]"
            )
        if self.refractory_ms >= self.max_interval_ms:
            raise ConfigurationError(
                f"refractory_ms ({self.refractory_ms}) must be shorter than "
                f"max_interval_ms ({self.max_interval_ms})"
            )
        if self.lock_timeout_ms <= self.max_interval_ms:
            raise ConfigurationError(
                f"lock_timeout_ms ({self.lock_timeout_ms}) must exceed "
                f"max_interval_ms ({self.max_interval_ms})"
            )
        if not 0 < self.bpm_min < self.bpm_max:
            raise ConfigurationError(
                f"BPM range must satisfy 0 < bpm_min < bpm_max, got [{self.bpm_min}, {self.bpm_max}]"
            )
        if not 0 < self.smoothing_alpha <= 1:
            raise ConfigurationError(f"smoothing_alpha must be in (0, 1], got {self.smoothing_alpha}")
        if self.max_step_bpm <= 0:
            raise ConfigurationError(f"max_step_bpm must be > 0, got {self.max_step_bpm}")
        if not 0 < self.tolerance < 1:
            raise ConfigurationError(f"tolerance must be in (0, 1), got {self.tolerance}")
        if not 0 <= self.trim_fraction < 0.5:
            raise ConfigurationError(f"trim_fraction must be in [0, 0.5), got {self.trim_fraction}")
        if not 0 < self.min_consistent_fraction <= 1:
            raise ConfigurationError(
                f"min_consistent_fraction must be in (0, 1], got {self.min_consistent_fraction}"
            )
        if self.history_size < self.min_beats_to_confirm:
            raise ConfigurationError(
                f"history_size ({self.history_size}) cannot hold "
                f"min_beats_to_confirm ({self.min_beats_to_confirm}) intervals"
            )
        if self.history_size < self.min_intervals_for_estimate:
            raise ConfigurationError(
                f"history_size ({self.history_size}) cannot hold "
                f"min_intervals_for_estimate ({self.min_intervals_for_estimate}) intervals"
            )
        if self.base_threshold <= 0 or self.min_threshold <= 0:
            raise ConfigurationError("base_threshold and min_threshold must be > 0")
        if self.sensitivity_step < 0:
            raise ConfigurationError(f"sensitivity_step must be >= 0, got {self.sensitivity_step}")


# ---------------------------------------------------------------------------
# Presets
# ---------------------------------------------------------------------------

def fetal_config(**overrides: Any) -> EstimatorConfig:
    """Default fetal window: 100 – 190 BPM (~316 – 600 ms intervals)."""
    return EstimatorConfig.from_bpm_range(FETAL_BPM_MIN, FETAL_BPM_MAX, **overrides)


def maternal_config(**overrides: Any) -> EstimatorConfig:
    """Maternal window: 50 – 110 BPM (~545 – 1200 ms intervals)."""
    return EstimatorConfig.from_bpm_range(MATERNAL_BPM_MIN, MATERNAL_BPM_MAX, **overrides)
