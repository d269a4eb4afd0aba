import numpy as np
import pytest

from sync.timestamp_sync import RawSeriesBuffer

FS = 100.0
HR_HZ = 1.2
DELAY_S = 0.1
START_NS = 1_000_000_000


def sine(t: np.ndarray, freq: float = HR_HZ) -> np.ndarray:
    return np.sin(2 * np.pi * freq * t)


def sine_streams(duration_s: float = 30.0, fs: float = FS, delay_s: float = DELAY_S):
    """Timestamps + face/finger values with the finger delayed by ``delay_s``."""
    t = np.arange(int(duration_s * fs)) / fs
    ts = START_NS + np.round(t * 1e9).astype(np.int64)
    face = 100.0 + sine(t)
    finger = 200.0 + sine(t - delay_s)
    return ts, face, finger


@pytest.fixture
def rng():
    return np.random.default_rng(0)


@pytest.fixture
def sine_pair():
    """(fs, a, b): 30 s of 1.2 Hz sine at 100 Hz, b lagging a by 100 ms."""
    t = np.arange(int(30 * FS)) / FS
    return FS, sine(t), sine(t - DELAY_S)


@pytest.fixture
def sine_series():
    ts, face, finger = sine_streams()
    return RawSeriesBuffer.from_arrays(ts, face, ts, finger)
