"""
features/peaks.py — Systolic peaks, beat regularity, pulse feet
================================================================
Peaks
-----
Adaptive threshold ``mean + 0.3·std`` plus a 350 ms refractory distance
(``scipy.signal.find_peaks``).  RR intervals outside 350–2000 ms
(≈ 30–170 BPM) are discarded before any statistics.

Regularity
----------
Coefficient of variation of the RR series mapped linearly to a score:

    score = max(0, 100·(1 − CV / 0.4))

CV 0.05 → 87.5, CV 0.2 → 50, CV ≥ 0.4 → 0.

Feet
----
The foot of each beat is found with the intersecting-tangent method:
the tangent at the steepest point of the upstroke is intersected with
the horizontal line through the preceding trough.  The result is a
fractional sample index, so foot-to-foot timing is not limited to the
sample grid.
"""

from dataclasses import dataclass

import numpy as np
from scipy.signal import find_peaks

from config import (
    FOOT_SEARCH_MS,
    PEAK_MIN_DISTANCE_MS,
    PEAK_THRESHOLD_STD,
    REGULARITY_CV_LIMIT,
    RR_MAX_MS,
    RR_MIN_MS,
)


@dataclass(frozen=True)
class PeakDetection:
    indices: np.ndarray
    times_ms: np.ndarray
    rr_intervals_ms: np.ndarray     # physiologically valid intervals only
    message: str = ""

    @property
    def count(self) -> int:
        return len(self.indices)

    @property
    def is_valid(self) -> bool:
        return self.count >= 3

    @property
    def mean_rr_ms(self) -> float:
        return float(self.rr_intervals_ms.mean()) if len(self.rr_intervals_ms) else 0.0


def detect_peaks(
    signal: np.ndarray,
    fs: float,
    threshold_std: float = PEAK_THRESHOLD_STD,
    min_distance_ms: float = PEAK_MIN_DISTANCE_MS,
    rr_range_ms: tuple[float, float] = (RR_MIN_MS, RR_MAX_MS),
) -> PeakDetection:
    """
    Locate systolic peaks in a filtered pulse waveform.

    Parameters
    ----------
    signal          : ndarray, shape (N,)   Band-passed (ideally z-scored) pulse.
    fs              : float                 Sampling frequency (Hz).
    threshold_std   : float                 k in ``mean + k·std``.
    min_distance_ms : float                 Refractory period between peaks.
    """
    x = np.asarray(signal, dtype=np.float64)
    empty = np.empty(0)
    if len(x) < 3 or fs <= 0:
        return PeakDetection(empty.astype(int), empty, empty, "Signal too short")
    if np.isnan(x).any():
        x = np.nan_to_num(x, nan=float(np.nanmean(x)) if not np.isnan(x).all() else 0.0)

    threshold = x.mean() + threshold_std * x.std()
    distance = max(1, int(min_distance_ms / 1000.0 * fs))
    peaks, _ = find_peaks(x, height=threshold, distance=distance)
    if len(peaks) == 0:
        return PeakDetection(peaks, empty, empty, "No peaks detected")

    times_ms = peaks * 1000.0 / fs
    rr = np.diff(times_ms)
    rr = rr[(rr >= rr_range_ms[0]) & (rr <= rr_range_ms[1])]
    return PeakDetection(peaks, times_ms, rr, f"Detected {len(peaks)} peaks")


def peak_regularity_score(rr_intervals_ms: np.ndarray, cv_limit: float = REGULARITY_CV_LIMIT) -> float:
    """0–100 score from the coefficient of variation of RR intervals."""
    rr = np.asarray(rr_intervals_ms, dtype=np.float64)
    if len(rr) < 2:
        return 0.0
    mean = rr.mean()
    cv = rr.std() / mean if mean > 0 else 1.0
    return float(max(0.0, 100.0 * (1.0 - cv / cv_limit)))


def detect_feet(
    signal: np.ndarray,
    peak_indices: np.ndarray,
    fs: float,
    search_ms: float = FOOT_SEARCH_MS,
) -> np.ndarray:
    """
    Fractional sample index of the foot preceding each peak.

    Beats whose upstroke cannot be resolved (no rising slope between the
    trough and the peak) are skipped, so the output can be shorter than
    ``peak_indices``.
    """
    x = np.asarray(signal, dtype=np.float64)
    search = max(2, int(search_ms / 1000.0 * fs))
    feet = []
    prev = 0
    for p in np.asarray(peak_indices, dtype=int):
        # Never look back past the previous beat.
        start = max(prev, p - search)
        prev = p
        if p - start < 2:
            continue
        trough = start + int(np.argmin(x[start:p + 1]))
        if p - trough < 2:
            continue

        slope = np.diff(x[trough:p + 1])
        k = int(np.argmax(slope))
        max_slope = slope[k]
        if max_slope <= 0:
            continue

        # Tangent through the midpoint of the steepest segment.
        mid_idx = trough + k + 0.5
        mid_val = 0.5 * (x[trough + k] + x[trough + k + 1])
        foot = mid_idx - (mid_val - x[trough]) / max_slope
        feet.append(min(max(foot, float(trough)), float(p)))
    return np.asarray(feet, dtype=np.float64)
