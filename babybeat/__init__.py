"""
Baby Beat: acoustic heartbeat listening toy.

Amplitude-peak beat detection over microphone (or recorded) audio frames,
with refractory gating, outlier-resistant interval averaging and an
exponentially smoothed BPM read-out.
"""

from babybeat.beat_estimator import BeatEstimator, FrameResult, create_estimator
from babybeat.config import ConfigurationError, EstimatorConfig, fetal_config, maternal_config

__version__ = "0.1.0"
__author__ = "babybeat"

__all__ = [
    "BeatEstimator",
    "ConfigurationError",
    "EstimatorConfig",
    "FrameResult",
    "create_estimator",
    "fetal_config",
    "maternal_config",
]
