import threading

import numpy as np
import pytest

from stream.ring_buffer import RingBuffer, SignalWindow


def test_rejects_non_positive_capacity():
    with pytest.raises(ValueError):
        RingBuffer(0)


def test_empty_snapshot_is_none():
    assert RingBuffer(4).snapshot(1_000_000_000) is None


def test_overwrites_oldest_when_full():
    buf = RingBuffer(3)
    for i in range(5):
        buf.add(float(i), i * 10_000_000)
    assert len(buf) == 3
    window = buf.snapshot(10**12)
    assert window.values.tolist() == [2.0, 3.0, 4.0]
    assert window.timestamps_ns.tolist() == [20_000_000, 30_000_000, 40_000_000]


def test_snapshot_limits_to_window():
    buf = RingBuffer(100)
    for i in range(10):
        buf.add(float(i), i * 1_000_000_000)
    window = buf.snapshot(3_000_000_000)
    assert window.values.tolist() == [6.0, 7.0, 8.0, 9.0]
    assert window.duration_seconds == pytest.approx(3.0)


def test_sample_rate_and_sparkline():
    buf = RingBuffer(50)
    for i in range(11):
        buf.add(np.sin(i), i * 10_000_000)
    window = buf.snapshot(10**12)
    assert window.sample_rate_hz == pytest.approx(100.0)
    spark = window.normalized(points=5)
    assert min(spark) >= 0.0 and max(spark) <= 1.0


def test_short_window_has_no_rate():
    window = SignalWindow(values=np.array([1.0]), timestamps_ns=np.array([5]))
    assert window.sample_rate_hz == 0.0
    assert window.duration_seconds == 0.0


def test_reset_keeps_capacity():
    buf = RingBuffer(8)
    buf.add(1.0, 1)
    buf.reset()
    assert buf.size() == 0
    assert buf.capacity == 8
    assert buf.snapshot(10) is None


def test_concurrent_writer_and_reader():
    buf = RingBuffer(256)
    n = 20_000
    done = threading.Event()
    problems: list[str] = []

    def writer():
        for i in range(n):
            buf.add(float(i), i * 1_000_000)
        done.set()

    def reader():
        while not done.is_set():
            if buf.size() > buf.capacity:
                problems.append("size above capacity")
            window = buf.snapshot(10**12)
            if window is None:
                continue
            if len(window) > buf.capacity:
                problems.append("window above capacity")
            if np.any(np.diff(window.timestamps_ns) <= 0):
                problems.append("snapshot out of order")
            if not np.array_equal(window.values * 1_000_000, window.timestamps_ns):
                problems.append("value and timestamp out of step")

    threads = [threading.Thread(target=writer), threading.Thread(target=reader)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert not problems
    assert buf.size() == buf.capacity
    assert buf.snapshot(10**12).values[-1] == n - 1
