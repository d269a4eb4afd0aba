"""
spectral/harmonics.py — Fundamental, harmonics, entropy, in-band SNR
=====================================================================
Per-channel spectral summary of one processed window.

* **Fundamental** — strongest bin inside the physiological band
  (default 0.7–3.0 Hz, i.e. 42–180 BPM).
* **Harmonics** — the 2nd and 3rd harmonic amplitudes are the maxima
  within ±2 bins of 2·k₀ and 3·k₀; pulse shape (dicrotic notch,
  sharp upstroke) shows up in their ratios to the fundamental.
* **Spectral entropy** — Shannon entropy of the normalised magnitude
  spectrum over 0.5–5.0 Hz divided by log2(#bins): ~0 for a pure tone,
  ~1 for white noise.
* **In-band SNR** — power within ±2 bins of each harmonic versus the
  rest of the spectrum above the entropy band's lower edge, in dB,
  capped at 100 dB.
"""

import math
from dataclasses import dataclass

import numpy as np

from config import ENTROPY_BAND_HZ, HARMONIC_SEARCH_BINS, HR_BAND_HZ, SNR_CAP_DB, SNR_SIGNAL_BINS
from spectral.fft import magnitude_spectrum
from utils.logger import get_logger

logger = get_logger("spectral.harmonics")


@dataclass(frozen=True)
class HarmonicFeatures:
    fundamental_hz: float
    fundamental_amplitude: float
    h2_amplitude: float
    h3_amplitude: float
    h2_ratio: float
    h3_ratio: float
    spectral_entropy: float     # 0–1
    snr_db: float
    is_valid: bool = True

    @property
    def fundamental_bpm(self) -> float:
        return self.fundamental_hz * 60.0

    @classmethod
    def empty(cls) -> "HarmonicFeatures":
        return cls(
            fundamental_hz=0.0,
            fundamental_amplitude=0.0,
            h2_amplitude=0.0,
            h3_amplitude=0.0,
            h2_ratio=0.0,
            h3_ratio=0.0,
            spectral_entropy=1.0,
            snr_db=0.0,
            is_valid=False,
        )


def _harmonic_peak(mags: np.ndarray, center_bin: int, search_bins: int) -> tuple[int, float]:
    """Largest bin within ±search_bins of ``center_bin`` (-1, 0.0 if out of range)."""
    if center_bin >= len(mags):
        return -1, 0.0
    lo = max(0, center_bin - search_bins)
    hi = min(len(mags), center_bin + search_bins + 1)
    k = lo + int(np.argmax(mags[lo:hi]))
    return k, float(mags[k])


def spectral_entropy(
    freqs: np.ndarray,
    mags: np.ndarray,
    band: tuple[float, float] = ENTROPY_BAND_HZ,
) -> float:
    """Normalised Shannon entropy of the magnitude distribution in ``band``."""
    in_band = mags[(freqs >= band[0]) & (freqs <= band[1])]
    total = in_band.sum()
    if len(in_band) < 2 or total <= 0:
        return 1.0
    p = in_band / total
    p = p[p > 0]
    return float(-(p * np.log2(p)).sum() / math.log2(len(in_band)))


def band_snr_db(
    freqs: np.ndarray,
    mags: np.ndarray,
    harmonic_bins: list[int],
    signal_bins: int = SNR_SIGNAL_BINS,
    noise_floor_hz: float = ENTROPY_BAND_HZ[0],
    cap_db: float = SNR_CAP_DB,
) -> float:
    """
    Harmonic power versus remaining power above ``noise_floor_hz``.

    ``harmonic_bins`` lists the bin index of every harmonic that was
    found (negative entries are ignored).
    """
    power = mags ** 2
    considered = freqs >= noise_floor_hz
    is_signal = np.zeros(len(mags), dtype=bool)
    for k in harmonic_bins:
        if k >= 0:
            is_signal[max(0, k - signal_bins):k + signal_bins + 1] = True

    signal_power = power[is_signal].sum()
    noise_power = power[considered & ~is_signal].sum()
    if signal_power <= 0:
        return 0.0
    if noise_power <= signal_power * 10 ** (-cap_db / 10.0):
        return cap_db
    return float(min(cap_db, 10.0 * math.log10(signal_power / noise_power)))


# ── Public API ───────────────────────────────────────────────────────────────

def extract_harmonic_features(
    signal: np.ndarray,
    fs: float,
    band: tuple[float, float] = HR_BAND_HZ,
    entropy_band: tuple[float, float] = ENTROPY_BAND_HZ,
    search_bins: int = HARMONIC_SEARCH_BINS,
) -> HarmonicFeatures:
    """
    Compute the spectral summary of ``signal``.

    Degenerate input (too short, constant, no bins in ``band``) yields
    :meth:`HarmonicFeatures.empty` rather than raising.
    """
    x = np.asarray(signal, dtype=np.float64)
    if len(x) < 4 or fs <= 0 or x.std() < 1e-12:
        return HarmonicFeatures.empty()

    freqs, mags = magnitude_spectrum(x - x.mean(), fs)
    band_idx = np.flatnonzero((freqs >= band[0]) & (freqs <= band[1]))
    if band_idx.size == 0:
        logger.warning("No FFT bins inside %.2f–%.2f Hz (fs=%.1f, n=%d).", band[0], band[1], fs, len(x))
        return HarmonicFeatures.empty()

    k0 = int(band_idx[np.argmax(mags[band_idx])])
    a0 = float(mags[k0])
    if a0 <= 0:
        return HarmonicFeatures.empty()

    k2, a2 = _harmonic_peak(mags, 2 * k0, search_bins)
    k3, a3 = _harmonic_peak(mags, 3 * k0, search_bins)

    return HarmonicFeatures(
        fundamental_hz=float(freqs[k0]),
        fundamental_amplitude=a0,
        h2_amplitude=a2,
        h3_amplitude=a3,
        h2_ratio=a2 / a0,
        h3_ratio=a3 / a0,
        spectral_entropy=spectral_entropy(freqs, mags, entropy_band),
        snr_db=band_snr_db(freqs, mags, [k0, k2, k3]),
    )
