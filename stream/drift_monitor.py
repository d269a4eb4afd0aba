"""
stream/drift_monitor.py — Live inter-camera drift accumulator
==============================================================
Collects frame timestamps from both cameras as they arrive and, on
demand, reports per-camera rate / jitter / drops and the inter-camera
drift over the recent history.

Only the time range covered by *both* histories is compared, so cameras
running at different frame rates (and therefore retaining different
spans of history) do not show up as spurious drift.
"""

import threading
from collections import deque

import numpy as np

from config import DRIFT_MONITOR_CAPACITY, FRAME_DROP_FACTOR, MAX_DRIFT_MS_PER_S, STREAM_MIN_SAMPLES
from sync.timestamp_sync import DriftReport, channel_timing, compute_drift_rate
from utils.logger import get_logger

logger = get_logger("stream.drift")


class DriftMonitor:
    """
    Bounded, lock-guarded timestamp history for channels ``"A"`` and ``"B"``.

    Parameters
    ----------
    capacity    : int     Timestamps retained per channel (oldest dropped).
    min_samples : int     Minimum per-channel samples before reporting.
    """

    def __init__(
        self,
        capacity: int = DRIFT_MONITOR_CAPACITY,
        min_samples: int = STREAM_MIN_SAMPLES,
        max_drift_ms_per_second: float = MAX_DRIFT_MS_PER_S,
        drop_factor: float = FRAME_DROP_FACTOR,
    ):
        self._history = {"A": deque(maxlen=capacity), "B": deque(maxlen=capacity)}
        self._min_samples = min_samples
        self._max_drift = max_drift_ms_per_second
        self._drop_factor = drop_factor
        self._lock = threading.Lock()

    def record(self, channel: str, timestamp_ns: int) -> None:
        if channel not in self._history:
            raise ValueError(f"Unknown channel '{channel}'. Use 'A' or 'B'.")
        with self._lock:
            self._history[channel].append(int(timestamp_ns))

    def sample_counts(self) -> tuple[int, int]:
        with self._lock:
            return len(self._history["A"]), len(self._history["B"])

    def report(self) -> DriftReport | None:
        """Current drift report, or None until both channels have enough samples."""
        with self._lock:
            ts_a = np.array(self._history["A"], dtype=np.int64)
            ts_b = np.array(self._history["B"], dtype=np.int64)
        if len(ts_a) < self._min_samples or len(ts_b) < self._min_samples:
            return None

        ts_a.sort()
        ts_b.sort()
        common_start = max(ts_a[0], ts_b[0])
        ts_a = ts_a[ts_a >= common_start]
        ts_b = ts_b[ts_b >= common_start]

        report = DriftReport(
            channel_a=channel_timing(ts_a, self._drop_factor),
            channel_b=channel_timing(ts_b, self._drop_factor),
            drift_ms_per_second=compute_drift_rate(ts_a, ts_b),
            max_drift_ms_per_second=self._max_drift,
        )
        if not report.is_acceptable:
            logger.warning("High inter-camera drift: %.2f ms/s", report.drift_ms_per_second)
        return report

    def reset(self) -> None:
        with self._lock:
            for history in self._history.values():
                history.clear()
