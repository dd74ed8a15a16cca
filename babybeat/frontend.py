"""
Audio front end.

Turns raw capture blocks (mono, or interleaved ``frames × channels`` as
returned by :func:`scipy.io.wavfile.read`) into the normalised mono frames
the beat estimator expects:

1. Channel selection: left, right or the mean of all channels, chosen from
   the microphone type.
2. Band limiting: a Butterworth band-pass (second-order sections) from
   ``highpass_hz`` up to ``max(100, 2 × filter_center_hz)``.  Filter state
   is carried across blocks so consecutive frames join without clicks.
3. Sensitivity gain: ``max(0.1, 3 × sensitivity)``.
"""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np
from scipy.signal import butter, sosfilt

from babybeat.config import EstimatorConfig

logger = logging.getLogger(__name__)

CHANNEL_MODES = ("left", "right", "mix")

# Microphone presets → channel used for detection
_MIC_CHANNELS = {
    "dji-mic-mini": "right",
    "professional": "left",
    "stethoscope": "left",
}

FILTER_HZ_MIN = 30.0
FILTER_HZ_MAX = 200.0
MIN_LOWPASS_HZ = 100.0


def channel_mode_for_mic(mic_type: Optional[str]) -> str:
    """Return the channel mode (``left`` / ``right`` / ``mix``) for *mic_type*."""
    return _MIC_CHANNELS.get((mic_type or "").lower(), "mix")


def select_channel(block: np.ndarray, mode: str = "mix") -> np.ndarray:
    """
    Reduce *block* to one channel.

    Parameters
    ----------
    block:
        ``(n,)`` mono or ``(n, channels)`` multichannel samples.
    mode:
        ``left``, ``right`` or ``mix``.  ``right`` on mono input falls back
        to the only channel.
    """
    if mode not in CHANNEL_MODES:
        raise ValueError(f"Unknown channel mode {mode!r}; expected one of {CHANNEL_MODES}")
    data = np.asarray(block, dtype=np.float64)
    if data.ndim == 1:
        return data
    if data.ndim != 2:
        raise ValueError(f"Expected a 1-D or 2-D block, got shape {data.shape}")
    n_channels = data.shape[1]
    if mode == "left" or n_channels == 1:
        return data[:, 0]
    if mode == "right":
        return data[:, 1]
    return data.mean(axis=1)


def sensitivity_gain(sensitivity: float) -> float:
    """Input gain applied before detection."""
    return max(0.1, sensitivity * 3.0)


def lowpass_for_center(filter_center_hz: float) -> float:
    """Upper band edge used for a given filter centre."""
    return max(MIN_LOWPASS_HZ, filter_center_hz * 2.0)


class BandLimiter:
    """
    Streaming Butterworth band-pass.

    Parameters
    ----------
    sample_rate:
        Sampling rate of the incoming blocks (Hz).
    filter_center_hz:
        Listening-band centre; the upper edge is ``max(100, 2 × centre)``.
    highpass_hz:
        Lower band edge (default 20 Hz, removes handling rumble / DC).
    order:
        Butterworth order (default 2).
    """

    def __init__(
        self,
        sample_rate: float,
        filter_center_hz: float = 70.0,
        highpass_hz: float = 20.0,
        order: int = 2,
    ) -> None:
        if sample_rate <= 0:
            raise ValueError(f"sample_rate must be > 0, got {sample_rate}")
        self.sample_rate = float(sample_rate)
        self.highpass_hz = highpass_hz
        self.order = order
        self.filter_center_hz = filter_center_hz
        self._sos = self._build_filter()
        self._zi = np.zeros((self._sos.shape[0], 2))

    def process(self, block: np.ndarray) -> np.ndarray:
        """Filter one mono block, continuing from the previous block's state."""
        data = np.asarray(block, dtype=np.float64)
        if data.size == 0:
            return data
        filtered, self._zi = sosfilt(self._sos, data, zi=self._zi)
        return filtered

    def set_center(self, filter_center_hz: float) -> None:
        """Move the listening band; the filter is rebuilt only on change."""
        if filter_center_hz == self.filter_center_hz:
            return
        self.filter_center_hz = filter_center_hz
        sos = self._build_filter()
        if sos.shape != self._sos.shape:
            self._zi = np.zeros((sos.shape[0], 2))
        self._sos = sos
        logger.debug("Band limiter retuned: %.0f – %.0f Hz", self.highpass_hz, self.lowpass_hz)

    @property
    def lowpass_hz(self) -> float:
        return lowpass_for_center(self.filter_center_hz)

    def reset(self) -> None:
        """Clear the filter memory."""
        self._zi = np.zeros((self._sos.shape[0], 2))

    def _build_filter(self) -> np.ndarray:
        """Construct the band-pass in SOS form, edges clamped below Nyquist."""
        nyq = self.sample_rate / 2.0
        low = self.highpass_hz / nyq
        high = self.lowpass_hz / nyq
        low = max(1e-4, min(low, 0.998))
        high = max(low + 1e-4, min(high, 0.999))
        return butter(self.order, [low, high], btype="bandpass", output="sos")


class FrontEnd:
    """
    Channel selection, band limiting and gain in one streaming stage.

    Parameters
    ----------
    sample_rate:
        Sampling rate of the capture blocks (Hz).
    mic_type:
        Microphone preset; decides which channel is analysed.
    filter_center_hz:
        Initial listening-band centre (later taken from the config).
    """

    def __init__(
        self,
        sample_rate: float,
        mic_type: str = "default",
        filter_center_hz: float = 70.0,
    ) -> None:
        self.sample_rate = float(sample_rate)
        self.mic_type = mic_type
        self.channel_mode = channel_mode_for_mic(mic_type)
        self._band = BandLimiter(sample_rate, filter_center_hz=filter_center_hz)

    def process(self, block: np.ndarray, config: EstimatorConfig) -> np.ndarray:
        """Return the gain-scaled, band-limited mono frame for *block*."""
        mono = select_channel(block, self.channel_mode)
        if mono.size == 0:
            return mono
        mono = np.nan_to_num(mono, nan=0.0, posinf=0.0, neginf=0.0)
        self._band.set_center(config.filter_center_hz)
        filtered = self._band.process(mono)
        return filtered * sensitivity_gain(config.sensitivity)

    @property
    def band_limiter(self) -> BandLimiter:
        return self._band

    def reset(self) -> None:
        self._band.reset()
