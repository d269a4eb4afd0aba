import numpy as np
import pytest

from ptt.quality import ChannelRole, QualityStatus
from stream.drift_monitor import DriftMonitor
from stream.quality_monitor import (
    ChannelIndicator,
    StreamingQualityMonitor,
    StreamSample,
    ac_dc_ratio,
    evaluate_face_status,
    evaluate_finger_status,
    select_tip,
)

START_NS = 1_000_000_000


def _feed(monitor: StreamingQualityMonitor, seconds: float = 10.0, fps: float = 30.0, **extra) -> int:
    n = int(seconds * fps)
    for i in range(n):
        t = i / fps
        monitor.ingest(StreamSample(
            timestamp_ns=START_NS + int(round(t * 1e9)),
            face_luma=120.0 + np.sin(2 * np.pi * 1.2 * t),
            finger_luma=200.0 + 10.0 * np.sin(2 * np.pi * 1.2 * (t - 0.1)),
            **extra,
        ))
    return START_NS + int(round((n - 1) / fps * 1e9))


def test_emit_before_data_is_none():
    assert StreamingQualityMonitor().emit() is None


def test_emit_is_rate_limited():
    monitor = StreamingQualityMonitor()
    last_ns = _feed(monitor)
    first = monitor.emit(last_ns)
    assert first is not None
    assert monitor.emit(last_ns + 100_000_000) is None
    assert monitor.emit(last_ns + 100_000_000, force=True) is not None
    assert monitor.emit(last_ns + 600_000_000) is not None
    assert monitor.last_state.updated_at_ms == (last_ns + 600_000_000) // 1_000_000


def test_clean_signals_resolve_heart_rate():
    monitor = StreamingQualityMonitor()
    _feed(monitor, face_motion_px=0.1, finger_saturation=0.0, inertial_g=0.01)
    state = monitor.emit(force=True)
    assert state.finger.active and state.face.active
    assert state.finger.hr_bpm == pytest.approx(72.0, abs=8.0)
    assert state.finger.status is not QualityStatus.RED
    assert state.finger.sparkline and max(state.finger.sparkline) <= 1.0
    assert state.finger.ac_dc_ratio == pytest.approx(10.0 / np.sqrt(2) / 200.0, rel=0.1)


def test_missing_channel_is_inactive():
    monitor = StreamingQualityMonitor()
    for i in range(300):
        monitor.ingest(StreamSample(timestamp_ns=START_NS + i * 33_333_333,
                                    finger_luma=200.0 + np.sin(i / 5.0)))
    state = monitor.emit(force=True)
    assert not state.face.active
    assert state.face.status is QualityStatus.GREEN
    assert state.hr_delta_bpm is None


def test_reset_clears_state():
    monitor = StreamingQualityMonitor()
    _feed(monitor, seconds=3.0)
    monitor.emit(force=True)
    monitor.reset()
    assert monitor.last_state is None
    assert monitor.debug_stats()["face_samples"] == 0


def test_status_rules():
    assert evaluate_face_status(None, None, None, 70.0)[0] is QualityStatus.RED
    assert evaluate_face_status(12.0, 1.5, None, 70.0)[0] is QualityStatus.RED
    assert evaluate_face_status(12.0, 0.7, None, 70.0)[0] is QualityStatus.YELLOW
    assert evaluate_face_status(12.0, 0.1, 0.01, 70.0) == (QualityStatus.GREEN, [])
    assert evaluate_finger_status(20.0, 0.2, None, 70.0)[0] is QualityStatus.RED
    assert evaluate_finger_status(20.0, 0.08, None, 70.0)[0] is QualityStatus.YELLOW
    status, diagnostics = evaluate_finger_status(20.0, 0.0, None, None)
    assert status is QualityStatus.YELLOW
    assert "Finger HR unresolved" in diagnostics


def test_tips_most_actionable_first():
    face = ChannelIndicator(role=ChannelRole.FACE, status=QualityStatus.YELLOW, motion_px=0.8)
    finger = ChannelIndicator(role=ChannelRole.FINGER, status=QualityStatus.YELLOW, snr_db=20.0, saturation=0.1)
    assert select_tip(face, finger, None, True) == "Reduce finger pressure slightly"
    dim = ChannelIndicator(role=ChannelRole.FINGER, status=QualityStatus.RED, snr_db=3.0)
    assert select_tip(face, dim, None, False) == "Enable torch for finger camera"
    assert select_tip(face, dim, None, True) == "Increase ambient light"
    good = ChannelIndicator(role=ChannelRole.FINGER, status=QualityStatus.GREEN, snr_db=20.0)
    assert select_tip(face, good, None, True) == "Hold head steady"
    still = ChannelIndicator(role=ChannelRole.FACE, status=QualityStatus.GREEN, motion_px=0.1)
    assert select_tip(still, good, 9.0, True) == "Stay still until both signals align"
    assert select_tip(still, good, 1.0, True) is None


def test_ac_dc_ratio():
    assert ac_dc_ratio(np.array([])) is None
    assert ac_dc_ratio(np.zeros(5)) is None
    assert ac_dc_ratio(np.array([9.0, 11.0])) == pytest.approx(0.1)


def test_drift_monitor_waits_for_samples():
    monitor = DriftMonitor(min_samples=10)
    for i in range(5):
        monitor.record("A", i)
        monitor.record("B", i)
    assert monitor.report() is None
    assert monitor.sample_counts() == (5, 5)


def test_drift_monitor_rejects_unknown_channel():
    with pytest.raises(ValueError):
        DriftMonitor().record("C", 0)


def test_drift_monitor_different_rates_same_clock():
    monitor = DriftMonitor()
    for k in range(301):
        monitor.record("A", START_NS + int(round(k / 30.0 * 1e9)))
    for k in range(601):
        monitor.record("B", START_NS + int(round(k / 60.0 * 1e9)))
    report = monitor.report()
    assert abs(report.drift_ms_per_second) < 0.5
    assert report.channel_a.rate_hz == pytest.approx(30.0, rel=0.01)
    assert report.channel_b.rate_hz == pytest.approx(60.0, rel=0.01)


def test_drift_monitor_detects_fast_clock():
    monitor = DriftMonitor()
    for k in range(301):
        t = k / 30.0
        monitor.record("A", START_NS + int(round(t * 1e9)))
        monitor.record("B", START_NS + int(round(t * 1.008 * 1e9)))
    report = monitor.report()
    assert report.drift_ms_per_second == pytest.approx(8.0, rel=0.05)
    assert not report.is_acceptable
    monitor.reset()
    assert monitor.sample_counts() == (0, 0)
