"""
Fetal / maternal dual-band monitor.

A microphone on the belly picks up both the fetal heartbeat (fast,
100 – 190 BPM) and the mother's pulse (slow, 50 – 110 BPM).  Both rhythms
are tracked by two independent :class:`~babybeat.beat_estimator.BeatEstimator`
instances that see the same frames but accept different interval windows.
Because both re-arm their beat clock on every threshold crossing, their
beat timing stays identical; only interval classification differs.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from babybeat.beat_estimator import BeatEstimator, FrameResult
from babybeat.config import (
    FETAL_IDEAL_MAX,
    FETAL_IDEAL_MIN,
    SENSITIVITY_MAX,
    SENSITIVITY_MIN,
    EstimatorConfig,
    fetal_config,
    maternal_config,
)


@dataclass(frozen=True)
class DualBandResult:
    """Per-frame read-out of both bands."""

    fetal: FrameResult
    maternal: FrameResult

    @property
    def beat_detected(self) -> bool:
        return self.fetal.beat_detected or self.maternal.beat_detected

    @property
    def locked(self) -> bool:
        return self.fetal.locked or self.maternal.locked

    @property
    def primary_label(self) -> Optional[str]:
        """``"fetal"`` when a fetal BPM is available, else ``"maternal"`` or ``None``."""
        if self.fetal.bpm is not None:
            return "fetal"
        if self.maternal.bpm is not None:
            return "maternal"
        return None

    @property
    def primary_bpm(self) -> Optional[float]:
        """Fetal BPM if available, otherwise the maternal one."""
        if self.fetal.bpm is not None:
            return self.fetal.bpm
        return self.maternal.bpm

    # Same field names as FrameResult so callers can treat both alike.
    @property
    def bpm(self) -> Optional[float]:
        return self.primary_bpm

    @property
    def confidence(self) -> float:
        if self.primary_label == "maternal":
            return self.maternal.confidence
        return self.fetal.confidence

    @property
    def timestamp_ms(self) -> Optional[float]:
        return self.fetal.timestamp_ms

    @property
    def fetal_in_ideal_range(self) -> bool:
        bpm = self.fetal.bpm
        return bpm is not None and FETAL_IDEAL_MIN <= round(bpm) <= FETAL_IDEAL_MAX

    def describe(self) -> str:
        """Human-readable status line for both bands."""
        if self.fetal.bpm is not None:
            hint = ", in fetal range" if self.fetal_in_ideal_range else ""
            fetal_str = f"{round(self.fetal.bpm)} BPM (candidate{hint})"
        else:
            fetal_str = "—"
        if self.maternal.bpm is not None:
            maternal_str = f"{round(self.maternal.bpm)} BPM (likely maternal)"
        else:
            maternal_str = "—"
        return f"Fetal: {fetal_str} • Maternal: {maternal_str}"


class DualBandMonitor:
    """
    Two estimators over the same audio, one per heart-rate band.

    Parameters
    ----------
    fetal:
        Config for the fast band (default :func:`~babybeat.config.fetal_config`).
    maternal:
        Config for the slow band (default :func:`~babybeat.config.maternal_config`).
    """

    def __init__(
        self,
        fetal: Optional[EstimatorConfig] = None,
        maternal: Optional[EstimatorConfig] = None,
    ) -> None:
        self.fetal = BeatEstimator(fetal if fetal is not None else fetal_config())
        self.maternal = BeatEstimator(maternal if maternal is not None else maternal_config())

    def process_frame(self, samples: Any, now_ms: float) -> DualBandResult:
        return DualBandResult(
            fetal=self.fetal.process_frame(samples, now_ms),
            maternal=self.maternal.process_frame(samples, now_ms),
        )

    def set_sensitivity(self, value: float) -> float:
        """Apply a slider value (clamped to 1 – 10) to both bands."""
        value = min(SENSITIVITY_MAX, max(SENSITIVITY_MIN, float(value)))
        self.fetal.config.sensitivity = value
        self.maternal.config.sensitivity = value
        return value

    def set_filter_hz(self, hz: float) -> None:
        self.fetal.config.filter_center_hz = hz
        self.maternal.config.filter_center_hz = hz

    @property
    def config(self) -> EstimatorConfig:
        """The fetal config, which drives the shared front end."""
        return self.fetal.config

    @property
    def last_result(self) -> DualBandResult:
        return DualBandResult(fetal=self.fetal.last_result, maternal=self.maternal.last_result)

    def reset(self) -> None:
        self.fetal.reset()
        self.maternal.reset()
