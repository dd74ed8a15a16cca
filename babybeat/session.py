"""
Listening session.

Ties the audio front end to a beat estimator (or the fetal/maternal pair)
and provides the controls a UI needs: start / stop, a sensitivity slider
and a filter-frequency slider.  Stopping a session discards all rolling
state, so the next start begins from a clean estimator.
"""

from __future__ import annotations

import logging
from typing import Optional, Union

import numpy as np

from babybeat.beat_estimator import BeatEstimator, FrameResult
from babybeat.config import SENSITIVITY_MAX, SENSITIVITY_MIN, EstimatorConfig, fetal_config
from babybeat.dual_band import DualBandMonitor, DualBandResult
from babybeat.frontend import FILTER_HZ_MAX, FILTER_HZ_MIN, FrontEnd

logger = logging.getLogger(__name__)

SessionResult = Union[FrameResult, DualBandResult]


class ListeningSession:
    """
    One listening session over a stream of capture blocks.

    Parameters
    ----------
    sample_rate:
        Sampling rate of the blocks passed to :meth:`feed` (Hz).
    config:
        Fetal-band (or single-band) configuration.  Defaults to
        :func:`~babybeat.config.fetal_config`.
    mic_type:
        Microphone preset; selects the analysed channel.
    dual_band:
        Track a maternal band alongside the fetal one (default ``True``).
    maternal_config:
        Maternal-band configuration when *dual_band* is set.
    """

    def __init__(
        self,
        sample_rate: float,
        config: Optional[EstimatorConfig] = None,
        mic_type: str = "default",
        dual_band: bool = True,
        maternal_config: Optional[EstimatorConfig] = None,
    ) -> None:
        config = config if config is not None else fetal_config()
        self.dual_band = dual_band
        if dual_band:
            self._detector: Union[BeatEstimator, DualBandMonitor] = DualBandMonitor(
                fetal=config, maternal=maternal_config
            )
            self._detector.set_sensitivity(config.sensitivity)
            self._detector.set_filter_hz(config.filter_center_hz)
        else:
            self._detector = BeatEstimator(config)
        self.frontend = FrontEnd(sample_rate, mic_type=mic_type, filter_center_hz=config.filter_center_hz)
        self._running = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        logger.info(
            "Listening started – mic=%s channel=%s sensitivity=%g filter=%.0f Hz",
            self.frontend.mic_type, self.frontend.channel_mode,
            self.config.sensitivity, self.config.filter_center_hz,
        )

    def stop(self) -> None:
        """Stop listening and discard all detector and filter state."""
        was_running = self._running
        self._running = False
        self._detector.reset()
        self.frontend.reset()
        if was_running:
            logger.info("Listening stopped.")

    def __enter__(self) -> "ListeningSession":
        self.start()
        return self

    def __exit__(self, *_) -> None:
        self.stop()

    @property
    def running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    def feed(self, block: np.ndarray, now_ms: float) -> SessionResult:
        """
        Push one capture block recorded at *now_ms*.

        While the session is stopped blocks are ignored and the last result
        is returned.
        """
        if not self._running:
            return self.last_result
        frame = self.frontend.process(block, self.config)
        return self._detector.process_frame(frame, now_ms)

    @property
    def last_result(self) -> SessionResult:
        return self._detector.last_result

    @property
    def detector(self) -> Union[BeatEstimator, DualBandMonitor]:
        return self._detector

    @property
    def config(self) -> EstimatorConfig:
        return self._detector.config

    # ------------------------------------------------------------------
    # Live controls
    # ------------------------------------------------------------------

    def set_sensitivity(self, value: float) -> float:
        """Set the sensitivity slider (clamped to 1 – 10); return the applied value."""
        if isinstance(self._detector, DualBandMonitor):
            return self._detector.set_sensitivity(value)
        value = min(SENSITIVITY_MAX, max(SENSITIVITY_MIN, float(value)))
        self._detector.config.sensitivity = value
        return value

    def set_filter_hz(self, hz: float) -> float:
        """Set the listening-band centre (clamped to 30 – 200 Hz); return the applied value."""
        hz = min(FILTER_HZ_MAX, max(FILTER_HZ_MIN, float(hz)))
        if isinstance(self._detector, DualBandMonitor):
            self._detector.set_filter_hz(hz)
        else:
            self._detector.config.filter_center_hz = hz
        return hz
