"""
sync/timestamp_sync.py — Dual-stream timestamp alignment
=========================================================
The two cameras run on independent clocks at different, jittery frame
rates.  Before any cross-channel analysis both streams are linearly
interpolated onto one fixed-rate grid covering only the time range in
which *both* channels have data.

Grid
----
    start = max(first_A, first_B)
    end   = min(last_A,  last_B)
    t_k   = start + k / target_rate,   k = 0 … floor((end − start)·rate)

Points outside a channel's own range clamp to its first / last value
(``np.interp`` semantics); nothing is extrapolated.

Drift
-----
Inter-channel drift is the change in the B−A timestamp offset between
the head and the tail of the recording, divided by the elapsed time:

    drift_ms_per_s = ((tail_B − tail_A) − (head_B − head_A)) / duration_A

A perfectly shared clock yields 0; a B clock running 0.8 % fast yields
≈ 8 ms/s.  Anything at or above ``MAX_DRIFT_MS_PER_S`` is flagged.
"""

from dataclasses import dataclass, field
from typing import NamedTuple, Sequence

import numpy as np

from config import FRAME_DROP_FACTOR, MAX_DRIFT_MS_PER_S, TARGET_RATE_HZ
from utils.logger import get_logger

logger = get_logger("sync.timestamp")


class TimestampedSample(NamedTuple):
    timestamp_ns: int
    value: float


@dataclass
class RawSeriesBuffer:
    """The two unaligned input streams of one recording."""

    channel_a: list[TimestampedSample] = field(default_factory=list)
    channel_b: list[TimestampedSample] = field(default_factory=list)

    @classmethod
    def from_arrays(
        cls,
        timestamps_a: Sequence[int],
        values_a: Sequence[float],
        timestamps_b: Sequence[int],
        values_b: Sequence[float],
    ) -> "RawSeriesBuffer":
        if len(timestamps_a) != len(values_a) or len(timestamps_b) != len(values_b):
            raise ValueError("Each channel needs one value per timestamp.")
        return cls(
            channel_a=[TimestampedSample(int(t), float(v)) for t, v in zip(timestamps_a, values_a)],
            channel_b=[TimestampedSample(int(t), float(v)) for t, v in zip(timestamps_b, values_b)],
        )

    def arrays(self, channel: str) -> tuple[np.ndarray, np.ndarray]:
        """Return ``(timestamps_ns, values)`` for channel ``"A"`` or ``"B"``."""
        if channel == "A":
            samples = self.channel_a
        elif channel == "B":
            samples = self.channel_b
        else:
            raise ValueError(f"Unknown channel '{channel}'. Use 'A' or 'B'.")
        if not samples:
            return np.empty(0, dtype=np.int64), np.empty(0, dtype=np.float64)
        timestamps = np.fromiter((s.timestamp_ns for s in samples), dtype=np.int64, count=len(samples))
        values = np.fromiter((s.value for s in samples), dtype=np.float64, count=len(samples))
        return timestamps, values

    @property
    def is_empty(self) -> bool:
        return not self.channel_a or not self.channel_b


@dataclass(frozen=True)
class UnifiedSeries:
    """Both channels on one shared, evenly spaced timeline."""

    timestamps_ns: np.ndarray
    values_a: np.ndarray
    values_b: np.ndarray
    target_rate_hz: float
    is_valid: bool = True
    message: str = ""

    @classmethod
    def invalid(cls, message: str, target_rate_hz: float = TARGET_RATE_HZ) -> "UnifiedSeries":
        empty = np.empty(0, dtype=np.float64)
        return cls(
            timestamps_ns=np.empty(0, dtype=np.int64),
            values_a=empty,
            values_b=empty.copy(),
            target_rate_hz=target_rate_hz,
            is_valid=False,
            message=message,
        )

    def __len__(self) -> int:
        return len(self.timestamps_ns)

    @property
    def duration_seconds(self) -> float:
        if len(self.timestamps_ns) < 2:
            return 0.0
        return (int(self.timestamps_ns[-1]) - int(self.timestamps_ns[0])) / 1e9

    @property
    def time_ms(self) -> np.ndarray:
        """Milliseconds since the first grid point."""
        if len(self.timestamps_ns) == 0:
            return np.empty(0, dtype=np.float64)
        return (self.timestamps_ns - self.timestamps_ns[0]) / 1e6


@dataclass(frozen=True)
class MonotonicityReport:
    is_monotonic: bool
    reversals: int      # t[i] < t[i-1]
    duplicates: int     # t[i] == t[i-1]


@dataclass(frozen=True)
class ChannelTiming:
    sample_count: int
    rate_hz: float
    jitter_ms: float            # stdev of consecutive intervals
    median_interval_ms: float
    frame_drops: int


@dataclass(frozen=True)
class DriftReport:
    channel_a: ChannelTiming
    channel_b: ChannelTiming
    drift_ms_per_second: float
    max_drift_ms_per_second: float = MAX_DRIFT_MS_PER_S

    @property
    def is_acceptable(self) -> bool:
        return abs(self.drift_ms_per_second) < self.max_drift_ms_per_second

    @property
    def total_frame_drops(self) -> int:
        return self.channel_a.frame_drops + self.channel_b.frame_drops


# ── Timestamp diagnostics ────────────────────────────────────────────────────

def validate_monotonicity(timestamps_ns: Sequence[int] | np.ndarray) -> MonotonicityReport:
    """Check that timestamps strictly increase."""
    diffs = np.diff(np.asarray(timestamps_ns, dtype=np.int64))
    reversals = int(np.count_nonzero(diffs < 0))
    duplicates = int(np.count_nonzero(diffs == 0))
    return MonotonicityReport(
        is_monotonic=reversals == 0 and duplicates == 0,
        reversals=reversals,
        duplicates=duplicates,
    )


def estimate_frame_interval(timestamps_ns: np.ndarray) -> float:
    """Median inter-sample interval in nanoseconds (0.0 if < 2 samples)."""
    if len(timestamps_ns) < 2:
        return 0.0
    return float(np.median(np.diff(timestamps_ns)))


def count_frame_drops(
    timestamps_ns: np.ndarray,
    expected_interval_ns: float | None = None,
    factor: float = FRAME_DROP_FACTOR,
) -> int:
    """
    Count intervals longer than ``factor`` × the expected interval.

    The expected interval defaults to the median observed interval, so a
    stream is judged against its own nominal rate.
    """
    if len(timestamps_ns) < 2:
        return 0
    if expected_interval_ns is None:
        expected_interval_ns = estimate_frame_interval(timestamps_ns)
    if expected_interval_ns <= 0:
        return 0
    return int(np.count_nonzero(np.diff(timestamps_ns) > factor * expected_interval_ns))


def channel_timing(timestamps_ns: np.ndarray, drop_factor: float = FRAME_DROP_FACTOR) -> ChannelTiming:
    n = len(timestamps_ns)
    if n < 2:
        return ChannelTiming(sample_count=n, rate_hz=0.0, jitter_ms=0.0,
                             median_interval_ms=0.0, frame_drops=0)
    intervals_ms = np.diff(timestamps_ns) / 1e6
    duration_s = (int(timestamps_ns[-1]) - int(timestamps_ns[0])) / 1e9
    return ChannelTiming(
        sample_count=n,
        rate_hz=(n - 1) / duration_s if duration_s > 0 else 0.0,
        jitter_ms=float(intervals_ms.std()),
        median_interval_ms=float(np.median(intervals_ms)),
        frame_drops=count_frame_drops(timestamps_ns, factor=drop_factor),
    )


def _sorted_unique(timestamps: np.ndarray, values: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Sort by timestamp and keep the first sample of every duplicate."""
    order = np.argsort(timestamps, kind="stable")
    timestamps, values = timestamps[order], values[order]
    timestamps, first = np.unique(timestamps, return_index=True)
    return timestamps, values[first]


# ── Public API ───────────────────────────────────────────────────────────────

def resample_to_unified_timeline(
    series: RawSeriesBuffer,
    target_rate_hz: float = TARGET_RATE_HZ,
) -> UnifiedSeries:
    """
    Interpolate both channels onto a shared grid at ``target_rate_hz``.

    Never raises on bad data: empty or non-overlapping channels produce
    an invalid :class:`UnifiedSeries` with a diagnostic message.
    """
    if target_rate_hz <= 0:
        raise ValueError(f"target_rate_hz must be positive, got {target_rate_hz}.")
    if series.is_empty:
        return UnifiedSeries.invalid("One or both channels are empty.", target_rate_hz)

    ts_a, vals_a = series.arrays("A")
    ts_b, vals_b = series.arrays("B")
    for name, ts in (("A", ts_a), ("B", ts_b)):
        report = validate_monotonicity(ts)
        if not report.is_monotonic:
            logger.warning(
                "Channel %s timestamps not monotonic (%d reversals, %d duplicates) — sorting.",
                name, report.reversals, report.duplicates,
            )
    ts_a, vals_a = _sorted_unique(ts_a, vals_a)
    ts_b, vals_b = _sorted_unique(ts_b, vals_b)

    start = max(int(ts_a[0]), int(ts_b[0]))
    end = min(int(ts_a[-1]), int(ts_b[-1]))
    if end <= start:
        return UnifiedSeries.invalid("Channels do not overlap in time.", target_rate_hz)

    step_ns = 1e9 / target_rate_hz
    n_points = int(np.floor((end - start) / step_ns)) + 1
    if n_points < 2:
        return UnifiedSeries.invalid("Overlap is shorter than one grid step.", target_rate_hz)

    offsets = np.round(np.arange(n_points) * step_ns).astype(np.int64)
    grid = start + offsets

    # Interpolate in float64 relative to ``start`` to keep sub-ns precision.
    rel = offsets.astype(np.float64)
    resampled_a = np.interp(rel, (ts_a - start).astype(np.float64), vals_a)
    resampled_b = np.interp(rel, (ts_b - start).astype(np.float64), vals_b)

    logger.debug("Resampled %d + %d samples onto %d grid points @ %.1f Hz",
                 len(ts_a), len(ts_b), n_points, target_rate_hz)
    return UnifiedSeries(
        timestamps_ns=grid,
        values_a=resampled_a,
        values_b=resampled_b,
        target_rate_hz=target_rate_hz,
    )


def compute_drift_rate(timestamps_a: np.ndarray, timestamps_b: np.ndarray) -> float:
    """Head-to-tail offset change between channels, in ms per second."""
    if len(timestamps_a) < 2 or len(timestamps_b) < 2:
        return 0.0
    head_offset_ns = int(timestamps_b[0]) - int(timestamps_a[0])
    tail_offset_ns = int(timestamps_b[-1]) - int(timestamps_a[-1])
    duration_s = (int(timestamps_a[-1]) - int(timestamps_a[0])) / 1e9
    if duration_s <= 0:
        return 0.0
    return (tail_offset_ns - head_offset_ns) / 1e6 / duration_s


def compute_drift_report(
    series: RawSeriesBuffer,
    max_drift_ms_per_second: float = MAX_DRIFT_MS_PER_S,
    drop_factor: float = FRAME_DROP_FACTOR,
) -> DriftReport:
    """Per-channel rate / jitter / drops plus inter-channel drift."""
    ts_a, _ = series.arrays("A")
    ts_b, _ = series.arrays("B")
    ts_a = np.sort(ts_a)
    ts_b = np.sort(ts_b)

    report = DriftReport(
        channel_a=channel_timing(ts_a, drop_factor),
        channel_b=channel_timing(ts_b, drop_factor),
        drift_ms_per_second=compute_drift_rate(ts_a, ts_b),
        max_drift_ms_per_second=max_drift_ms_per_second,
    )
    if not report.is_acceptable:
        logger.warning("Inter-channel drift %.2f ms/s exceeds %.1f ms/s.",
                       report.drift_ms_per_second, max_drift_ms_per_second)
    else:
        logger.debug("Drift %.3f ms/s (A %.1f Hz, B %.1f Hz)",
                     report.drift_ms_per_second, report.channel_a.rate_hz, report.channel_b.rate_hz)
    return report
