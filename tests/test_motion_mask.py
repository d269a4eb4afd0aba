import numpy as np
import pytest

from sync.motion_mask import (
    apply_mask,
    broadcast_to_timeline,
    extract_valid_segments,
    find_bad_windows,
    longest_valid_segment,
    masked_percentage,
)

GRID = 1_000_000_000 + np.arange(1001) * 10_000_000     # 10 s @ 100 Hz
TIME_MS = (GRID - GRID[0]) / 1e6


def test_broadcast_single_value():
    out = broadcast_to_timeline([0.7], GRID)
    assert out.shape == GRID.shape
    assert np.all(out == 0.7)


def test_broadcast_empty_metric_is_nan():
    assert np.isnan(broadcast_to_timeline([], GRID)).all()


def test_broadcast_proportional_without_timestamps():
    out = broadcast_to_timeline([0.0, 1.0], GRID)
    assert out[0] == 0.0 and out[-1] == 1.0
    linear = broadcast_to_timeline([0.0, 1.0], GRID, method="linear")
    assert linear[500] == pytest.approx(0.5)


def test_broadcast_nearest_with_timestamps():
    source = GRID[0] + np.array([0, 5_000_000_000])
    out = broadcast_to_timeline([1.0, 9.0], GRID, source)
    assert out[100] == 1.0
    assert out[900] == 9.0


def test_broadcast_rejects_unknown_method():
    with pytest.raises(ValueError):
        broadcast_to_timeline([1.0, 2.0], GRID, method="cubic")


def test_motion_window_is_masked():
    motion = np.full(len(GRID), 0.2)
    motion[(TIME_MS >= 3000) & (TIME_MS < 4000)] = 2.5
    windows = find_bad_windows(GRID, motion_px=motion)
    assert len(windows) == 1
    assert windows[0].start_ms == 3000.0
    assert "motion" in windows[0].reason


def test_inertial_window_is_masked():
    inertial = np.full(len(GRID), 0.01)
    inertial[TIME_MS >= 9000] = 0.5
    windows = find_bad_windows(GRID, inertial_g=inertial)
    assert [w.start_ms for w in windows] == [9000.0]
    assert "inertial" in windows[0].reason


def test_drop_density_window_is_masked():
    frames = GRID[0] + np.round(np.arange(301) / 30.0 * 1e9).astype(np.int64)
    t = (frames - GRID[0]) / 1e9
    thinned = frames[~((t >= 5.0) & (t < 6.0) & (np.arange(301) % 2 == 1))]
    windows = find_bad_windows(GRID, raw_timestamps_ns=[thinned])
    assert [w.start_ms for w in windows] == [5000.0]


def test_metric_must_be_on_grid():
    with pytest.raises(ValueError):
        find_bad_windows(GRID, motion_px=np.zeros(10))


def test_mask_and_longest_segment():
    motion = np.full(len(GRID), 0.2)
    motion[(TIME_MS >= 3000) & (TIME_MS < 4000)] = 2.5
    windows = find_bad_windows(GRID, motion_px=motion)
    signal = np.sin(TIME_MS / 100.0)
    masked = apply_mask(signal, TIME_MS, windows)
    assert masked_percentage(masked) == pytest.approx(100.0 * 100 / 1001)

    segment = longest_valid_segment(masked, TIME_MS)
    assert segment.start_idx == 400
    assert segment.end_idx == 1000
    assert segment.duration_s == pytest.approx(6.0)
    assert segment.length == 601


def test_short_segments_are_dropped():
    signal = np.ones(len(GRID))
    signal[300:700] = np.nan
    assert extract_valid_segments(signal, TIME_MS) == []
    assert longest_valid_segment(signal, TIME_MS) is None


def test_apply_mask_length_mismatch():
    with pytest.raises(ValueError):
        apply_mask(np.zeros(3), np.zeros(4), [])
