"""
sync/motion_mask.py — Bad-window masking on the unified timeline
=================================================================
Auxiliary metrics (face motion in px/frame, finger saturation fraction,
device inertial RMS in g) arrive at their own, usually lower, cadence.
They are first broadcast onto the unified grid, then scanned in fixed
windows; a window whose mean motion, inertial level, or frame-drop
density is too high is marked bad.  Bad windows are blanked with NaN
and the longest remaining contiguous segment is what downstream lag
estimation actually sees.
"""

from dataclasses import dataclass
from typing import Sequence

import numpy as np

from config import (
    FRAME_DROP_FACTOR,
    MASK_DROP_DENSITY_MAX,
    MASK_INERTIAL_MAX_G,
    MASK_MOTION_MAX_PX,
    MASK_WINDOW_SECONDS,
    MIN_SEGMENT_SECONDS,
)
from utils.logger import get_logger

logger = get_logger("sync.motion_mask")


@dataclass(frozen=True)
class TimeWindow:
    start_ms: float
    end_ms: float
    reason: str
    mean_motion: float | None = None


@dataclass(frozen=True)
class SignalSegment:
    start_idx: int
    end_idx: int        # inclusive
    duration_s: float

    @property
    def length(self) -> int:
        return self.end_idx - self.start_idx + 1


# ── Auxiliary metric broadcast ───────────────────────────────────────────────

def broadcast_to_timeline(
    values: Sequence[float] | np.ndarray,
    target_timestamps_ns: np.ndarray,
    source_timestamps_ns: np.ndarray | None = None,
    method: str = "nearest",
) -> np.ndarray:
    """
    Map an auxiliary metric onto the unified grid.

    Parameters
    ----------
    values               : metric samples (any length ≥ 1).
    target_timestamps_ns : the unified grid.
    source_timestamps_ns : timestamps of ``values``.  When omitted the
                           metric is assumed to span the grid evenly and
                           is mapped by proportional index.
    method               : ``"nearest"`` or ``"linear"``.
    """
    values = np.asarray(values, dtype=np.float64)
    n_target = len(target_timestamps_ns)
    if method not in ("nearest", "linear"):
        raise ValueError(f"Unknown broadcast method '{method}'.")
    if n_target == 0:
        return np.empty(0, dtype=np.float64)
    if len(values) == 0:
        return np.full(n_target, np.nan)
    if len(values) == 1:
        return np.full(n_target, values[0])

    if source_timestamps_ns is None:
        # Proportional position of each target point within the source.
        pos = np.linspace(0.0, len(values) - 1, n_target)
        if method == "nearest":
            return values[np.rint(pos).astype(int)]
        return np.interp(pos, np.arange(len(values)), values)

    source = np.asarray(source_timestamps_ns, dtype=np.int64)
    if len(source) != len(values):
        raise ValueError("source_timestamps_ns and values must have the same length.")
    origin = int(target_timestamps_ns[0])
    src = (source - origin).astype(np.float64)
    dst = (np.asarray(target_timestamps_ns) - origin).astype(np.float64)
    if method == "linear":
        return np.interp(dst, src, values)

    right = np.clip(np.searchsorted(src, dst), 1, len(src) - 1)
    left = right - 1
    use_left = np.abs(dst - src[left]) <= np.abs(src[right] - dst)
    return values[np.where(use_left, left, right)]


# ── Bad-window detection ─────────────────────────────────────────────────────

def _drop_times_ns(timestamps_ns: np.ndarray, factor: float) -> np.ndarray:
    """Timestamps that close an interval longer than ``factor`` × median."""
    if len(timestamps_ns) < 3:
        return np.empty(0, dtype=np.int64)
    intervals = np.diff(timestamps_ns)
    median = np.median(intervals)
    if median <= 0:
        return np.empty(0, dtype=np.int64)
    return timestamps_ns[1:][intervals > factor * median]


def find_bad_windows(
    timestamps_ns: np.ndarray,
    motion_px: np.ndarray | None = None,
    inertial_g: np.ndarray | None = None,
    raw_timestamps_ns: Sequence[np.ndarray] = (),
    window_seconds: float = MASK_WINDOW_SECONDS,
    max_motion_px: float = MASK_MOTION_MAX_PX,
    max_inertial_g: float = MASK_INERTIAL_MAX_G,
    max_drop_density: float = MASK_DROP_DENSITY_MAX,
    drop_factor: float = FRAME_DROP_FACTOR,
) -> list[TimeWindow]:
    """
    Split the grid into consecutive ``window_seconds`` windows and return
    the ones that should be excluded.

    ``motion_px`` / ``inertial_g`` must already be on the grid (see
    :func:`broadcast_to_timeline`).  ``raw_timestamps_ns`` are the
    original per-channel frame timestamps, used for drop density.
    """
    n = len(timestamps_ns)
    for name, arr in (("motion_px", motion_px), ("inertial_g", inertial_g)):
        if arr is not None and len(arr) != n:
            raise ValueError(f"{name} must be broadcast to the grid first ({len(arr)} != {n}).")
    if n < 2:
        return []

    origin = int(timestamps_ns[0])
    time_ms = (np.asarray(timestamps_ns) - origin) / 1e6
    window_ms = window_seconds * 1000.0

    drop_times_ms = [(_drop_times_ns(np.sort(ts), drop_factor) - origin) / 1e6
                     for ts in raw_timestamps_ns if len(ts)]
    frame_times_ms = [(np.sort(ts) - origin) / 1e6 for ts in raw_timestamps_ns if len(ts)]

    bad: list[TimeWindow] = []
    start = 0.0
    while start < time_ms[-1]:
        end = start + window_ms
        in_window = (time_ms >= start) & (time_ms < end)
        reason = None
        mean_motion = None

        if motion_px is not None and in_window.any():
            mean_motion = float(np.nanmean(motion_px[in_window]))
            if mean_motion > max_motion_px:
                reason = f"motion {mean_motion:.2f} px > {max_motion_px:.2f} px"
        if reason is None and inertial_g is not None and in_window.any():
            mean_g = float(np.nanmean(inertial_g[in_window]))
            if mean_g > max_inertial_g:
                reason = f"inertial {mean_g:.3f} g > {max_inertial_g:.3f} g"
        if reason is None:
            for drops, frames in zip(drop_times_ms, frame_times_ms):
                n_frames = np.count_nonzero((frames >= start) & (frames < end))
                n_drops = np.count_nonzero((drops >= start) & (drops < end))
                if n_frames and n_drops / n_frames > max_drop_density:
                    reason = f"frame drops {n_drops}/{n_frames}"
                    break

        if reason is not None:
            bad.append(TimeWindow(start_ms=start, end_ms=end, reason=reason, mean_motion=mean_motion))
        start = end

    if bad:
        logger.info("Masked %d bad window(s) of %.1f s.", len(bad), window_seconds)
    return bad


# ── Masking & segmentation ───────────────────────────────────────────────────

def apply_mask(signal: np.ndarray, time_ms: np.ndarray, windows: Sequence[TimeWindow]) -> np.ndarray:
    """Return a copy of ``signal`` with samples inside ``windows`` set to NaN."""
    if len(signal) != len(time_ms):
        raise ValueError("Signal and time arrays must have the same length.")
    masked = np.array(signal, dtype=np.float64, copy=True)
    for window in windows:
        masked[(time_ms >= window.start_ms) & (time_ms < window.end_ms)] = np.nan
    return masked


def masked_percentage(masked_signal: np.ndarray) -> float:
    if len(masked_signal) == 0:
        return 0.0
    return 100.0 * np.count_nonzero(np.isnan(masked_signal)) / len(masked_signal)


def extract_valid_segments(
    signal: np.ndarray,
    time_ms: np.ndarray,
    min_segment_seconds: float = MIN_SEGMENT_SECONDS,
) -> list[SignalSegment]:
    """Contiguous non-NaN runs lasting at least ``min_segment_seconds``."""
    if len(signal) != len(time_ms) or len(signal) == 0:
        return []

    valid = ~np.isnan(signal)
    # Pad with False so every run has a rising and a falling edge.
    edges = np.diff(np.concatenate(([False], valid, [False])).astype(np.int8))
    starts = np.flatnonzero(edges == 1)
    ends = np.flatnonzero(edges == -1) - 1

    segments = []
    for s, e in zip(starts, ends):
        duration = (time_ms[e] - time_ms[s]) / 1000.0
        if duration >= min_segment_seconds:
            segments.append(SignalSegment(start_idx=int(s), end_idx=int(e), duration_s=float(duration)))
    return segments


def longest_valid_segment(
    signal: np.ndarray,
    time_ms: np.ndarray,
    min_segment_seconds: float = MIN_SEGMENT_SECONDS,
) -> SignalSegment | None:
    segments = extract_valid_segments(signal, time_ms, min_segment_seconds)
    if not segments:
        return None
    return max(segments, key=lambda seg: seg.length)
