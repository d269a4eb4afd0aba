"""
dsp/conditioning.py — Per-channel conditioning chain
=====================================================
Fixed stage order applied to each resampled channel:

    detrend  →  band-pass  →  (wavelet denoise)  →  z-score

`ConditionedChannel.residual` is ``detrended − filtered`` taken *before*
normalisation: everything the band-pass (and denoiser) removed from the
baseline-free signal.  It is the noise reference for SNR scoring, so it
must stay in the same units as ``filtered``.
"""

from dataclasses import dataclass
from enum import Enum

import numpy as np

from config import (
    BP_HIGH_HZ,
    BP_LOW_HZ,
    DETREND_CUTOFF_HZ,
    DETREND_WINDOW_SAMPLES,
    FILTER_ORDER,
    NORMALIZE_EPSILON,
    ZERO_PHASE,
)
from dsp.filters import bandpass_filter, detrend_iir, detrend_moving_average, zscore_normalize
from dsp.wavelet import WaveletConfig, wavelet_denoise


class DetrendMethod(str, Enum):
    MOVING_AVERAGE = "moving_average"
    IIR = "iir"


@dataclass(frozen=True)
class ConditionedChannel:
    values: np.ndarray      # z-scored output
    filtered: np.ndarray    # band-passed (and denoised), pre-normalisation
    residual: np.ndarray    # detrended − filtered
    is_degenerate: bool = False

    def __len__(self) -> int:
        return len(self.values)


class ConditioningChain:
    """
    Stateless, reusable conditioning configuration.

    Parameters
    ----------
    fs             : float                 Sampling rate of the input (Hz).
    detrend        : DetrendMethod         Baseline removal strategy.
    low_hz/high_hz : float                 Band-pass corners.
    order          : int                   Even Butterworth order per stage.
    wavelet        : WaveletConfig | None  None disables denoising.
    zero_phase     : bool                  Forward-backward filtering.
    """

    def __init__(
        self,
        fs: float,
        detrend: DetrendMethod = DetrendMethod.IIR,
        low_hz: float = BP_LOW_HZ,
        high_hz: float = BP_HIGH_HZ,
        order: int = FILTER_ORDER,
        wavelet: WaveletConfig | None = None,
        zero_phase: bool = ZERO_PHASE,
        detrend_cutoff_hz: float = DETREND_CUTOFF_HZ,
        detrend_window: int = DETREND_WINDOW_SAMPLES,
        epsilon: float = NORMALIZE_EPSILON,
    ):
        if fs <= 0:
            raise ValueError(f"Sampling rate must be positive, got {fs}.")
        self.fs = fs
        self.detrend = DetrendMethod(detrend)
        self.low_hz = low_hz
        self.high_hz = high_hz
        self.order = order
        self.wavelet = wavelet
        self.zero_phase = zero_phase
        self.detrend_cutoff_hz = detrend_cutoff_hz
        self.detrend_window = detrend_window
        self.epsilon = epsilon

    def _detrend(self, x: np.ndarray) -> np.ndarray:
        if self.detrend is DetrendMethod.MOVING_AVERAGE:
            return detrend_moving_average(x, self.detrend_window)
        return detrend_iir(x, self.fs, self.detrend_cutoff_hz)

    def process(self, signal: np.ndarray) -> ConditionedChannel:
        """Run every stage on one channel."""
        x = np.asarray(signal, dtype=np.float64)
        if len(x) == 0:
            empty = np.empty(0, dtype=np.float64)
            return ConditionedChannel(values=empty, filtered=empty, residual=empty, is_degenerate=True)

        detrended = self._detrend(x)
        filtered = bandpass_filter(
            detrended, self.fs, self.low_hz, self.high_hz, self.order, zero_phase=self.zero_phase,
        )
        if self.wavelet is not None:
            filtered = wavelet_denoise(filtered, self.wavelet)

        return ConditionedChannel(
            values=zscore_normalize(filtered, self.epsilon),
            filtered=filtered,
            residual=detrended - filtered,
            is_degenerate=bool(filtered.std() < self.epsilon),
        )

    def process_pair(self, a: np.ndarray, b: np.ndarray) -> tuple[ConditionedChannel, ConditionedChannel]:
        return self.process(a), self.process(b)
