import numpy as np
import pytest

from features.peaks import detect_peaks
from ptt.consensus import FootLagEstimate, PttResult, build_consensus, foot_to_foot_lag, pair_feet
from ptt.lag import LagEstimate
from ptt.quality import ChannelQuality, ChannelRole

FS = 100.0


def _quality(score: float = 95.0, role: ChannelRole = ChannelRole.FACE) -> ChannelQuality:
    return ChannelQuality(score=score, snr_db=20.0, snr_score=100.0, regularity_score=95.0,
                          motion_score=None, inertial_score=None, peak_count=30, role=role)


def _xcorr(lag_ms: float = 100.0, correlation: float = 0.95, sharpness: float = 0.3) -> LagEstimate:
    return LagEstimate(lag_ms=lag_ms, correlation=correlation, lag_samples=lag_ms / 10.0,
                       sharpness=sharpness, is_valid=True, is_reliable=True, is_plausible=True)


def _foot(lag_ms: float = 104.0, valid: bool = True) -> FootLagEstimate:
    return FootLagEstimate(lag_ms=lag_ms, iqr_ms=3.0, pair_count=25, is_valid=valid)


def test_pair_feet():
    diffs = pair_feet(np.array([10.0, 110.0, 210.0]), np.array([20.0, 120.0, 220.0]), FS)
    assert diffs.tolist() == pytest.approx([100.0, 100.0, 100.0])


def test_pair_feet_rejects_far_matches():
    diffs = pair_feet(np.array([10.0, 110.0]), np.array([500.0]), FS)
    assert len(diffs) == 0
    assert len(pair_feet(np.array([]), np.array([1.0]), FS)) == 0


def test_foot_to_foot_lag_on_delayed_sine(sine_pair):
    fs, a, b = sine_pair
    foot = foot_to_foot_lag(a, b, detect_peaks(a, fs), detect_peaks(b, fs), fs)
    assert foot.is_valid
    assert foot.lag_ms == pytest.approx(100.0, abs=5.0)
    assert foot.pair_count >= 30
    assert foot.iqr_ms < 5.0


def test_foot_to_foot_needs_enough_beats():
    x = np.sin(2 * np.pi * 1.2 * np.arange(150) / FS)
    foot = foot_to_foot_lag(x, x, detect_peaks(x, FS), detect_peaks(x, FS), FS)
    assert not foot.is_valid
    assert "paired beats" in foot.message


def test_agreeing_methods_are_reportable():
    result = build_consensus(_xcorr(), _foot(), _quality(), _quality(role=ChannelRole.FINGER))
    assert result.is_valid
    assert result.lag_ms == pytest.approx(102.0)
    assert result.agreement_ms == pytest.approx(4.0)
    assert result.methods_agree is True
    assert result.confidence == pytest.approx(0.95 * 0.95)
    assert result.reportable
    assert result.guidance == []
    assert result.beat_count == 25
    assert result.confidence_label == "high"


def test_disagreement_halves_confidence():
    result = build_consensus(_xcorr(), _foot(150.0), _quality(), _quality())
    assert result.methods_agree is False
    assert result.confidence == pytest.approx(0.5 * 0.95 * 0.95)
    assert not result.reportable
    assert "disagree" in result.message
    assert any("disagree" in g for g in result.guidance)


def test_implausible_lag_is_penalised():
    result = build_consensus(_xcorr(lag_ms=300.0), _foot(valid=False), _quality(), _quality())
    assert result.lag_ms == pytest.approx(300.0)
    assert result.methods_agree is None
    assert result.foot_lag_ms is None
    assert result.confidence == pytest.approx(0.5 * 0.95 * 0.95)
    assert not result.reportable


def test_weak_channel_bounds_confidence():
    result = build_consensus(_xcorr(), _foot(), _quality(40.0), _quality(100.0))
    assert result.confidence == pytest.approx(0.4 * 0.95)
    assert not result.reportable
    assert result.guidance
    assert any("signal quality on face" in g for g in result.guidance)
    assert "reporting threshold" in result.guidance[-1]


def test_blunt_peak_alone_still_explains_itself():
    result = build_consensus(_xcorr(sharpness=0.05), _foot(), _quality(), _quality(role=ChannelRole.FINGER))
    assert not result.reportable
    assert any("peak is broad" in g for g in result.guidance)
    assert "reporting threshold" in result.guidance[-1]


def test_no_method_gives_invalid_result():
    result = build_consensus(LagEstimate.invalid("Empty input."), _foot(valid=False), _quality(), _quality())
    assert not result.is_valid
    assert not result.reportable
    assert result.confidence == 0.0
    assert result.message == "Empty input."


def test_invalid_result_defaults():
    result = PttResult.invalid("no data")
    assert result.guidance == ["no data"]
    assert result.confidence_label == "insufficient"
