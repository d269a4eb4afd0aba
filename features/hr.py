"""
features/hr.py — Heart Rate estimation per channel
====================================================
Two complementary methods are computed and fused:

1. **FFT (frequency-domain)**
   Dominant frequency of the Hann-windowed magnitude spectrum inside
   the heart-rate band.  Robust when individual beats are noisy.
   Confidence = fraction of in-band power held by the peak bin.

2. **Peak detection (time-domain)**
   60 000 / median RR interval from `features.peaks.detect_peaks`.
   Confidence = regularity score / 100.

The fused value is the confidence-weighted average.  Unlike a single
camera scan there is no sensible default heart rate here: if neither
method yields anything, ``hr_bpm`` is None.  Cross-channel agreement
(face vs finger) is a quality cue in its own right, see
`stream/quality_monitor.py`.
"""

import numpy as np

from config import HR_BAND_HZ, HR_MAX_BPM, HR_MIN_BPM
from features.peaks import PeakDetection, detect_peaks, peak_regularity_score
from spectral.fft import magnitude_spectrum
from utils.logger import get_logger

logger = get_logger("features.hr")


def is_hr_plausible(hr_bpm: float | None) -> bool:
    return hr_bpm is not None and HR_MIN_BPM <= hr_bpm <= HR_MAX_BPM


def estimate_hr_fft(
    pulse: np.ndarray,
    fs: float,
    band: tuple[float, float] = HR_BAND_HZ,
) -> tuple[float | None, float]:
    """
    Estimate heart rate from the dominant frequency in the pulse spectrum.

    Returns
    -------
    hr_bpm     : float | None   None if the band holds no power.
    confidence : float          Peak-bin share of in-band power, in [0, 1].
    """
    freqs, mags = magnitude_spectrum(pulse, fs)
    if len(freqs) == 0:
        return None, 0.0
    mask = (freqs >= band[0]) & (freqs <= band[1])
    power = mags ** 2
    total = power[mask].sum()
    if not mask.any() or total <= 0:
        return None, 0.0

    idx = np.flatnonzero(mask)
    peak = idx[np.argmax(power[idx])]
    return float(freqs[peak] * 60.0), float(power[peak] / total)


def estimate_hr_peaks(peaks: PeakDetection) -> tuple[float | None, float]:
    """
    Estimate heart rate from inter-peak intervals.

    Returns
    -------
    hr_bpm     : float | None   None if fewer than two valid RR intervals.
    confidence : float          Regularity score scaled to [0, 1].
    """
    if len(peaks.rr_intervals_ms) < 2:
        return None, 0.0
    hr_bpm = 60_000.0 / float(np.median(peaks.rr_intervals_ms))
    return float(hr_bpm), peak_regularity_score(peaks.rr_intervals_ms) / 100.0


def estimate_hr(pulse: np.ndarray, fs: float, peaks: PeakDetection | None = None) -> dict:
    """
    Fuse FFT and peak-detection HR estimates into a single best estimate.

    Parameters
    ----------
    pulse : ndarray   Filtered pulse waveform.
    fs    : float     Sampling frequency (Hz).
    peaks : PeakDetection | None
        Reuse an existing detection instead of running it again.

    Returns
    -------
    dict with keys:
        hr_bpm          : float | None   Fused estimate (None if unresolved).
        hr_fft          : float | None
        hr_peaks        : float | None
        confidence_fft  : float
        confidence_peaks: float
        is_plausible    : bool           hr_bpm within the configured range.
    """
    if peaks is None:
        peaks = detect_peaks(pulse, fs)
    hr_fft, conf_fft = estimate_hr_fft(pulse, fs)
    hr_peaks, conf_peaks = estimate_hr_peaks(peaks)

    weighted = [(hr, conf) for hr, conf in ((hr_fft, conf_fft), (hr_peaks, conf_peaks))
                if hr is not None and conf > 0]
    if weighted:
        total_conf = sum(conf for _, conf in weighted)
        hr_bpm = sum(hr * conf for hr, conf in weighted) / total_conf
    else:
        hr_bpm = hr_fft if hr_fft is not None else hr_peaks

    logger.debug(
        "HR estimate: %s BPM  (FFT=%s [conf=%.2f], Peaks=%s [conf=%.2f])",
        _fmt(hr_bpm), _fmt(hr_fft), conf_fft, _fmt(hr_peaks), conf_peaks,
    )

    return {
        "hr_bpm": None if hr_bpm is None else round(hr_bpm, 1),
        "hr_fft": None if hr_fft is None else round(hr_fft, 1),
        "hr_peaks": None if hr_peaks is None else round(hr_peaks, 1),
        "confidence_fft": round(conf_fft, 3),
        "confidence_peaks": round(conf_peaks, 3),
        "is_plausible": is_hr_plausible(hr_bpm),
    }


def _fmt(value: float | None) -> str:
    return "n/a" if value is None else f"{value:.1f}"
