"""
stream/ring_buffer.py — Fixed-capacity timestamped ring buffer
===============================================================
Producer threads (one per camera) push ``(value, timestamp_ns)`` pairs at
their own jittery cadence; a consumer thread periodically pulls the most
recent few seconds as a chronological :class:`SignalWindow`.

Storage is two pre-allocated numpy arrays.  Once the buffer is full the
oldest sample is overwritten, so memory never grows under backpressure.
Every public method takes ``_lock``.
"""

import threading
from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class SignalWindow:
    """Chronological copy of the newest samples in a :class:`RingBuffer`."""

    values: np.ndarray
    timestamps_ns: np.ndarray

    def __len__(self) -> int:
        return len(self.values)

    @property
    def duration_seconds(self) -> float:
        if len(self.values) < 2:
            return 0.0
        return max(0, int(self.timestamps_ns[-1] - self.timestamps_ns[0])) / 1e9

    @property
    def sample_rate_hz(self) -> float:
        """Observed rate over the window (0.0 when undefined)."""
        duration = self.duration_seconds
        if duration <= 0.0:
            return 0.0
        return (len(self.values) - 1) / duration

    def normalized(self, points: int = 80) -> list[float]:
        """
        Min-max scale the window to [0, 1] and decimate it to roughly
        ``points`` values for a sparkline.
        """
        if len(self.values) == 0:
            return []
        lo = float(self.values.min())
        span = max(1e-9, float(self.values.max()) - lo)
        step = max(1, len(self.values) // points)
        scaled = ((self.values[::step] - lo) / span).tolist()
        if len(scaled) < 2:
            scaled.append((float(self.values[-1]) - lo) / span)
        return scaled


class RingBuffer:
    """
    Lock-guarded circular store of ``(value, timestamp_ns)`` samples.

    Parameters
    ----------
    capacity : int   Maximum number of samples kept; fixed for the
                     lifetime of the buffer.
    """

    def __init__(self, capacity: int):
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}.")
        self._capacity = capacity
        self._values = np.zeros(capacity, dtype=np.float64)
        self._timestamps = np.zeros(capacity, dtype=np.int64)
        self._start = 0
        self._size = 0
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    # ── Public API ───────────────────────────────────────────────────────────

    def add(self, value: float, timestamp_ns: int) -> None:
        """Append one sample, dropping the oldest when full."""
        with self._lock:
            end = (self._start + self._size) % self._capacity
            self._values[end] = value
            self._timestamps[end] = timestamp_ns
            if self._size < self._capacity:
                self._size += 1
            else:
                self._start = (self._start + 1) % self._capacity

    def snapshot(self, window_ns: int) -> SignalWindow | None:
        """
        Return the newest contiguous run of samples whose timestamps lie
        within ``window_ns`` of the newest sample, oldest first.

        Returns None when the buffer is empty.
        """
        with self._lock:
            if self._size == 0:
                return None
            order = (self._start + np.arange(self._size)) % self._capacity
            timestamps = self._timestamps[order]
            values = self._values[order]

        cutoff = timestamps[-1] - window_ns
        outside = np.flatnonzero(timestamps < cutoff)
        first = int(outside[-1]) + 1 if outside.size else 0
        if first >= len(timestamps):
            return None
        return SignalWindow(values=values[first:], timestamps_ns=timestamps[first:])

    def size(self) -> int:
        with self._lock:
            return self._size

    def __len__(self) -> int:
        return self.size()

    def reset(self) -> None:
        """Forget every stored sample (capacity is unchanged)."""
        with self._lock:
            self._start = 0
            self._size = 0
