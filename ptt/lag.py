"""
ptt/lag.py — Cross-correlation lag estimation
===============================================
Normalised cross-correlation with *global* means and energies:

    R[τ] = Σᵢ (a[i] − ā)(b[i+τ] − b̄) / sqrt(Σ(a − ā)² · Σ(b − b̄)²)

for τ ∈ [−max_lag, +max_lag].  A positive τ means channel B lags
channel A.  Because the normaliser uses the full-length energies, the
overlap (and therefore |R|) shrinks as |τ| grows.  That only attenuates
the periodic aliases of a pulse train one beat away by a few percent, so
noise can still lift one above the true peak.  PTT estimation therefore
searches ±0.25 s (``PTT_MAX_LAG_SECONDS``); the 2 s default is for
generic alignment.

Sub-sample refinement
---------------------
Three-point parabola through the peak and its neighbours:

    offset = (y₋₁ − y₊₁) / (2·(y₋₁ − 2y₀ + y₊₁))

Skipped at the edges of the lag range or when the curvature is ~0.

Sharpness
---------
Peak correlation minus the mean correlation 100 ms either side.  A
broad, flat peak (low-frequency or heavily smoothed signals) scores
low even when the peak value is high, and that feeds into confidence.

Stability
---------
The same estimate is repeated on overlapping windows; windows with
correlation ≤ 0.3 are discarded and the spread of the remaining lags
decides whether the measurement is stable.
"""

from dataclasses import dataclass, field

import numpy as np
from scipy.signal import correlate

from config import (
    CORR_WINDOW_OVERLAP,
    CORR_WINDOW_SECONDS,
    LAG_MAX_MS,
    LAG_MIN_MS,
    MAX_LAG_SECONDS,
    MIN_RELIABLE_CORRELATION,
    SHARPNESS_OFFSET_MS,
    STABILITY_MAX_STD_MS,
    STABILITY_MIN_CORRELATION,
)
from utils.logger import get_logger

logger = get_logger("ptt.lag")

_VARIANCE_EPS = 1e-12
_CURVATURE_EPS = 1e-12


@dataclass(frozen=True)
class LagEstimate:
    lag_ms: float
    correlation: float          # −1..1
    lag_samples: float          # sub-sample refined
    sharpness: float = 0.0
    is_valid: bool = True
    is_reliable: bool = False   # correlation above the reliability floor
    is_plausible: bool = False  # lag inside the physiological range
    message: str = ""

    @classmethod
    def invalid(cls, message: str) -> "LagEstimate":
        return cls(lag_ms=0.0, correlation=0.0, lag_samples=0.0, is_valid=False, message=message)


@dataclass(frozen=True)
class LagStability:
    window_lags_ms: list[float] = field(default_factory=list)
    window_correlations: list[float] = field(default_factory=list)
    mean_lag_ms: float = 0.0
    std_lag_ms: float = 0.0
    is_stable: bool = False
    message: str = ""

    @property
    def window_count(self) -> int:
        return len(self.window_lags_ms)


# ── Correlation primitives ───────────────────────────────────────────────────

def normalized_cross_correlation(
    a: np.ndarray,
    b: np.ndarray,
    max_lag: int,
) -> tuple[np.ndarray, np.ndarray]:
    """
    Return ``(lags, r)`` for ``lags = −max_lag … +max_lag``.

    Degenerate (near-constant) input yields an all-zero ``r``.
    """
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    if len(a) != len(b):
        raise ValueError(f"Signals must have equal length ({len(a)} != {len(b)}).")
    n = len(a)
    max_lag = int(min(max(max_lag, 0), max(n - 1, 0)))
    lags = np.arange(-max_lag, max_lag + 1)

    ac = a - a.mean()
    bc = b - b.mean()
    denom = np.sqrt(np.dot(ac, ac) * np.dot(bc, bc))
    if n == 0 or denom < _VARIANCE_EPS:
        return lags, np.zeros(len(lags))

    # full[j] = Σ bc[i + k]·ac[i] with k = j − (n − 1)
    full = correlate(bc, ac, mode="full")
    centre = n - 1
    return lags, full[centre - max_lag:centre + max_lag + 1] / denom


def parabolic_offset(y_left: float, y_peak: float, y_right: float) -> float:
    """Vertex offset of the parabola through three equally spaced points."""
    denom = y_left - 2.0 * y_peak + y_right
    if abs(denom) < _CURVATURE_EPS:
        return 0.0
    offset = (y_left - y_right) / (2.0 * denom)
    return float(np.clip(offset, -0.5, 0.5))


def peak_sharpness(r: np.ndarray, peak_idx: int, offset_samples: int) -> float:
    """Peak value minus the mean of ``r`` at ±``offset_samples``."""
    neighbours = [r[i] for i in (peak_idx - offset_samples, peak_idx + offset_samples) if 0 <= i < len(r)]
    if not neighbours or offset_samples <= 0:
        return 0.0
    return float(r[peak_idx] - np.mean(neighbours))


# ── Public API ───────────────────────────────────────────────────────────────

def compute_lag(
    a: np.ndarray,
    b: np.ndarray,
    fs: float,
    max_lag_seconds: float = MAX_LAG_SECONDS,
    min_correlation: float = MIN_RELIABLE_CORRELATION,
    lag_bounds_ms: tuple[float, float] = (LAG_MIN_MS, LAG_MAX_MS),
    sharpness_offset_ms: float = SHARPNESS_OFFSET_MS,
) -> LagEstimate:
    """
    Estimate how far channel B lags channel A.

    Never raises on bad data: empty, mismatched, NaN-containing, or
    constant input returns :meth:`LagEstimate.invalid`.

    Parameters
    ----------
    a, b            : ndarray   Equal-length conditioned channels.
    fs              : float     Common sampling rate (Hz).
    max_lag_seconds : float     Search range on either side of zero.
    min_correlation : float     Reliability floor for the peak value.
    lag_bounds_ms   : tuple     Plausible transit-time range.
    """
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    if len(a) == 0 or len(b) == 0:
        return LagEstimate.invalid("Empty input.")
    if len(a) != len(b):
        return LagEstimate.invalid(f"Length mismatch: {len(a)} vs {len(b)}.")
    if fs <= 0:
        return LagEstimate.invalid("Sampling rate must be positive.")
    if np.isnan(a).any() or np.isnan(b).any():
        return LagEstimate.invalid("Input contains masked (NaN) samples.")
    if a.std() < 1e-9 or b.std() < 1e-9:
        return LagEstimate.invalid("Degenerate (constant) signal.")
    if len(a) < 3:
        return LagEstimate.invalid("Signal too short.")

    lags, r = normalized_cross_correlation(a, b, int(round(max_lag_seconds * fs)))
    k = int(np.argmax(r))
    offset = 0.0
    if 0 < k < len(r) - 1:
        offset = parabolic_offset(r[k - 1], r[k], r[k + 1])

    lag_samples = float(lags[k]) + offset
    lag_ms = lag_samples * 1000.0 / fs
    correlation = float(r[k])
    sharpness = peak_sharpness(r, k, int(round(sharpness_offset_ms * fs / 1000.0)))

    reliable = correlation > min_correlation
    plausible = lag_bounds_ms[0] <= lag_ms <= lag_bounds_ms[1]
    if not reliable:
        message = f"Low correlation {correlation:.2f} (< {min_correlation:.2f})"
    elif not plausible:
        message = f"Lag {lag_ms:.1f} ms outside {lag_bounds_ms[0]:.0f}–{lag_bounds_ms[1]:.0f} ms"
    else:
        message = f"Lag {lag_ms:.1f} ms, r={correlation:.3f}"

    logger.debug("xcorr lag=%.2f ms r=%.3f sharpness=%.3f", lag_ms, correlation, sharpness)
    return LagEstimate(
        lag_ms=lag_ms,
        correlation=correlation,
        lag_samples=lag_samples,
        sharpness=sharpness,
        is_valid=True,
        is_reliable=reliable,
        is_plausible=plausible,
        message=message,
    )


def compute_lag_stability(
    a: np.ndarray,
    b: np.ndarray,
    fs: float,
    window_seconds: float = CORR_WINDOW_SECONDS,
    overlap: float = CORR_WINDOW_OVERLAP,
    min_correlation: float = STABILITY_MIN_CORRELATION,
    max_std_ms: float = STABILITY_MAX_STD_MS,
    max_lag_seconds: float = MAX_LAG_SECONDS,
) -> LagStability:
    """
    Repeat :func:`compute_lag` over sliding windows.

    ``step = window − overlap·window``.  Stable iff at least two windows
    survive the correlation filter and their lag stdev is below
    ``max_std_ms``.
    """
    if not 0.0 <= overlap < 1.0:
        raise ValueError(f"overlap must be in [0, 1), got {overlap}.")
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    if len(a) != len(b) or len(a) == 0 or fs <= 0:
        return LagStability(message="Invalid input.")

    window = int(round(window_seconds * fs))
    step = max(1, int(round(window * (1.0 - overlap))))
    if len(a) < window:
        return LagStability(message=f"Signal shorter than one {window_seconds:.0f} s window.")

    lags_ms: list[float] = []
    correlations: list[float] = []
    for start in range(0, len(a) - window + 1, step):
        est = compute_lag(
            a[start:start + window],
            b[start:start + window],
            fs,
            max_lag_seconds=min(max_lag_seconds, window_seconds / 2.0),
        )
        if est.is_valid and est.correlation > min_correlation:
            lags_ms.append(est.lag_ms)
            correlations.append(est.correlation)

    if len(lags_ms) < 2:
        return LagStability(
            window_lags_ms=lags_ms,
            window_correlations=correlations,
            mean_lag_ms=float(np.mean(lags_ms)) if lags_ms else 0.0,
            message=f"Only {len(lags_ms)} usable window(s).",
        )

    mean = float(np.mean(lags_ms))
    std = float(np.std(lags_ms))
    stable = std < max_std_ms
    return LagStability(
        window_lags_ms=lags_ms,
        window_correlations=correlations,
        mean_lag_ms=mean,
        std_lag_ms=std,
        is_stable=stable,
        message=f"{len(lags_ms)} windows, lag {mean:.1f} ± {std:.1f} ms",
    )
