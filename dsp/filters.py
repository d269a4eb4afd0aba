"""
dsp/filters.py — Detrending, band-pass filtering, normalisation
================================================================
Building blocks of the conditioning chain (see `dsp/conditioning.py`).

Band-pass design
----------------
The band-pass is a cascade of second-order sections: ``order / 2``
Butterworth high-pass biquads followed by ``order / 2`` Butterworth
low-pass biquads.  Each biquad uses the standard bilinear-transform
(RBJ cookbook) coefficients

    ω₀ = 2π·fc / fs,   α = sin(ω₀) / (2Q)

with the per-section Q chosen from the Butterworth pole angles
(Q = 0.707 for order 2; 0.541 and 1.307 for order 4), so the cascade is
a true maximally-flat Butterworth response rather than repeated
second-order sections.

Zero-phase (forward-backward) filtering is the default: any group delay
on channel A that is not exactly matched on channel B would bias the
measured transit time, and the residual used for SNR would contain
phase-shifted signal instead of just noise.  Causal filtering is kept
for streaming callers that cannot look ahead.
"""

import math
import warnings

import numpy as np
from scipy.signal import lfilter, sosfilt, sosfiltfilt

from config import (
    BP_HIGH_HZ,
    BP_LOW_HZ,
    DETREND_CUTOFF_HZ,
    DETREND_WINDOW_SAMPLES,
    FILTER_ORDER,
    NORMALIZE_EPSILON,
    ZERO_PHASE,
)


# ── Detrending ───────────────────────────────────────────────────────────────

def detrend_moving_average(signal: np.ndarray, window: int = DETREND_WINDOW_SAMPLES) -> np.ndarray:
    """
    Subtract a centred moving average.

    Near the edges the window shrinks to the samples that exist, so the
    baseline estimate is never pulled towards zero by implicit padding.
    """
    x = np.asarray(signal, dtype=np.float64)
    n = len(x)
    if n == 0:
        return x.copy()
    half = max(1, window) // 2
    csum = np.concatenate(([0.0], np.cumsum(x)))
    idx = np.arange(n)
    lo = np.maximum(0, idx - half)
    hi = np.minimum(n, idx + half + 1)
    baseline = (csum[hi] - csum[lo]) / (hi - lo)
    return x - baseline


def detrend_iir(signal: np.ndarray, fs: float, cutoff_hz: float = DETREND_CUTOFF_HZ) -> np.ndarray:
    """
    First-order IIR high-pass:

        y[i] = α·(y[i−1] + x[i] − x[i−1]),   α = RC / (RC + dt),  RC = 1 / (2π·fc)

    The output starts at 0 so the DC level of ``x[0]`` never leaks into
    the filtered signal as a decaying step.
    """
    if fs <= 0 or cutoff_hz <= 0:
        raise ValueError("fs and cutoff_hz must be positive.")
    x = np.asarray(signal, dtype=np.float64)
    if len(x) == 0:
        return x.copy()
    rc = 1.0 / (2.0 * math.pi * cutoff_hz)
    dt = 1.0 / fs
    alpha = rc / (rc + dt)
    y = np.zeros_like(x)
    y[1:] = lfilter([alpha], [1.0, -alpha], np.diff(x))
    return y


# ── Biquad design ────────────────────────────────────────────────────────────

def butterworth_q_factors(order: int) -> list[float]:
    """Per-section Q values for an even-order Butterworth cascade."""
    if order < 2 or order % 2:
        raise ValueError(f"Filter order must be a positive even number, got {order}.")
    return [1.0 / (2.0 * math.cos(math.pi * (2 * k + 1) / (2 * order))) for k in range(order // 2)]


def biquad_highpass(cutoff_hz: float, fs: float, q: float = 1.0 / math.sqrt(2.0)) -> np.ndarray:
    """Normalised ``[b0, b1, b2, 1, a1, a2]`` second-order high-pass section."""
    omega = 2.0 * math.pi * cutoff_hz / fs
    cos_w, alpha = math.cos(omega), math.sin(omega) / (2.0 * q)
    a0 = 1.0 + alpha
    b = np.array([(1.0 + cos_w) / 2.0, -(1.0 + cos_w), (1.0 + cos_w) / 2.0])
    a = np.array([a0, -2.0 * cos_w, 1.0 - alpha])
    return np.concatenate((b / a0, a / a0))


def biquad_lowpass(cutoff_hz: float, fs: float, q: float = 1.0 / math.sqrt(2.0)) -> np.ndarray:
    """Normalised ``[b0, b1, b2, 1, a1, a2]`` second-order low-pass section."""
    omega = 2.0 * math.pi * cutoff_hz / fs
    cos_w, alpha = math.cos(omega), math.sin(omega) / (2.0 * q)
    a0 = 1.0 + alpha
    b = np.array([(1.0 - cos_w) / 2.0, 1.0 - cos_w, (1.0 - cos_w) / 2.0])
    a = np.array([a0, -2.0 * cos_w, 1.0 - alpha])
    return np.concatenate((b / a0, a / a0))


def design_bandpass_sos(
    fs: float,
    low_hz: float = BP_LOW_HZ,
    high_hz: float = BP_HIGH_HZ,
    order: int = FILTER_ORDER,
) -> np.ndarray:
    """
    Return the second-order-section matrix (shape ``(order, 6)``) of the
    high-pass → low-pass cascade.

    Parameters
    ----------
    fs      : float   Sampling frequency in Hz.
    low_hz  : float   High-pass corner.
    high_hz : float   Low-pass corner.
    order   : int     Even Butterworth order of *each* stage.
    """
    if fs <= 0:
        raise ValueError(f"Sampling rate must be positive, got {fs}.")
    nyq = fs / 2.0

    # If the rate is too low the upper cutoff would exceed Nyquist.
    if high_hz >= nyq:
        clamped = 0.95 * nyq
        warnings.warn(
            f"Sampling rate ({fs} Hz) is too low for the requested upper cutoff "
            f"({high_hz} Hz).  Clamping to {clamped:.2f} Hz.",
            stacklevel=2,
        )
        high_hz = clamped
    if not 0.0 < low_hz < high_hz:
        raise ValueError(f"Invalid band: low={low_hz} Hz, high={high_hz} Hz.")

    q_factors = butterworth_q_factors(order)
    sections = [biquad_highpass(low_hz, fs, q) for q in q_factors]
    sections += [biquad_lowpass(high_hz, fs, q) for q in q_factors]
    return np.vstack(sections)


def _padlen(sos: np.ndarray) -> int:
    # Same default scipy uses for sosfiltfilt.
    return 3 * (2 * len(sos) + 1)


def bandpass_filter(
    signal: np.ndarray,
    fs: float,
    low_hz: float = BP_LOW_HZ,
    high_hz: float = BP_HIGH_HZ,
    order: int = FILTER_ORDER,
    zero_phase: bool = ZERO_PHASE,
) -> np.ndarray:
    """
    Band-pass a 1-D signal with the biquad cascade.

    Signals too short for forward-backward padding fall back to a
    single causal pass instead of raising.

    Returns
    -------
    filtered : ndarray, shape (N,)
    """
    x = np.asarray(signal, dtype=np.float64)
    if len(x) == 0:
        return x.copy()
    sos = design_bandpass_sos(fs, low_hz, high_hz, order)
    if zero_phase and len(x) > _padlen(sos):
        return sosfiltfilt(sos, x)
    return sosfilt(sos, x)


# ── Normalisation ────────────────────────────────────────────────────────────

def zscore_normalize(signal: np.ndarray, epsilon: float = NORMALIZE_EPSILON) -> np.ndarray:
    """Zero mean, unit variance; near-constant input maps to all zeros."""
    x = np.asarray(signal, dtype=np.float64)
    if len(x) == 0:
        return x.copy()
    std = x.std()
    if std < epsilon:
        return np.zeros_like(x)
    return (x - x.mean()) / std
