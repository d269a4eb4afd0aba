import numpy as np
import pytest

from dsp.conditioning import ConditioningChain
from ptt.lag import LagEstimate
from ptt.quality import (
    ChannelQuality,
    ChannelRole,
    QualityStatus,
    channel_quality,
    combined_confidence,
    confidence_label,
    guidance,
    inertial_score,
    is_reportable,
    motion_score,
    snr_db,
    snr_score,
)

FS = 100.0
T = np.arange(3000) / FS
CLEAN = 120.0 + np.sin(2 * np.pi * 1.2 * T)


def _quality(score: float, role: ChannelRole = ChannelRole.FACE, **kwargs) -> ChannelQuality:
    fields = dict(score=score, snr_db=12.0, snr_score=score, regularity_score=90.0,
                  motion_score=None, inertial_score=None, peak_count=30, role=role)
    fields.update(kwargs)
    return ChannelQuality(**fields)


def _lag(lag_ms=100.0, correlation=0.9, sharpness=0.3, **kwargs) -> LagEstimate:
    return LagEstimate(lag_ms=lag_ms, correlation=correlation, lag_samples=lag_ms / 10.0,
                       sharpness=sharpness, is_valid=True, is_reliable=True, is_plausible=True, **kwargs)


def test_snr_db():
    assert snr_db(np.ones(10), np.ones(10)) == pytest.approx(0.0)
    assert snr_db(np.ones(10), 0.1 * np.ones(10)) == pytest.approx(20.0)
    assert snr_db(np.ones(10), np.zeros(10)) == 100.0
    assert snr_db(np.array([]), np.array([])) == -100.0


def test_snr_score_mapping():
    assert snr_score(20.0) == 100.0
    assert snr_score(-3.0) == 10.0
    assert snr_score(7.5) == pytest.approx(55.0)


def test_motion_and_inertial_scores():
    assert motion_score(0.2) == 100.0
    assert motion_score(3.5) == 0.0
    assert motion_score(1.75) == pytest.approx(50.0)
    assert inertial_score(0.01) == 100.0
    assert inertial_score(1.0) == 0.0


def test_sqi_decreases_with_noise(rng):
    chain = ConditioningChain(FS)
    scores = []
    for sigma in (0.0, 0.5, 2.0):
        x = CLEAN + rng.normal(0.0, sigma, len(T)) if sigma else CLEAN
        scores.append(channel_quality(chain.process(x), FS).score)
    assert scores[0] > 90.0
    assert scores[0] > scores[1] > scores[2]
    assert all(0.0 <= s <= 100.0 for s in scores)


def test_motion_lowers_sqi():
    channel = ConditioningChain(FS).process(CLEAN)
    still = channel_quality(channel, FS, motion_px=0.1)
    moving = channel_quality(channel, FS, motion_px=3.0)
    assert still.score > moving.score
    assert moving.motion_score == 0.0


def test_degenerate_channel_scores_zero():
    channel = ConditioningChain(FS).process(np.full(500, 5.0))
    quality = channel_quality(channel, FS, role=ChannelRole.FINGER)
    assert quality.score == 0.0
    assert quality.role is ChannelRole.FINGER


def test_combined_confidence():
    conf = combined_confidence(_quality(80.0), _quality(90.0), _lag(correlation=0.9, sharpness=0.3))
    assert conf == pytest.approx(0.72)
    blunt = combined_confidence(_quality(80.0), _quality(90.0), _lag(correlation=0.9, sharpness=0.075))
    assert blunt == pytest.approx(0.36)
    assert combined_confidence(_quality(80.0), _quality(90.0), LagEstimate.invalid("x")) == 0.0


def test_reportable_threshold_and_labels():
    assert is_reportable(0.6)
    assert not is_reportable(0.59)
    assert confidence_label(0.9) == "high"
    assert confidence_label(0.65) == "medium"
    assert confidence_label(0.4) == "low"
    assert confidence_label(0.1) == "insufficient"


def test_guidance_names_problems():
    reasons = guidance(
        _quality(30.0, snr_db=2.0, motion_score=10.0),
        _quality(90.0, role=ChannelRole.FINGER),
        _lag(lag_ms=400.0, correlation=0.5),
        drift_ms_per_second=7.0,
        max_drift_ms_per_second=5.0,
        methods_agree=False,
    )
    text = " | ".join(reasons)
    assert "signal-to-noise on face" in text
    assert "motion on face" in text
    assert "correlate poorly" in text
    assert "plausible range" in text
    assert "drift" in text
    assert "disagree" in text


def test_guidance_states_confidence_shortfall():
    good_a, good_b = _quality(90.0), _quality(90.0, role=ChannelRole.FINGER)
    assert guidance(good_a, good_b, _lag()) == []
    assert guidance(good_a, good_b, _lag(), confidence=0.4) == [
        "Confidence 0.40 below the 0.60 reporting threshold"
    ]
    assert guidance(good_a, good_b, _lag(), confidence=0.7) == []


def test_guidance_flags_weak_score_and_blunt_peak():
    text = " | ".join(guidance(_quality(45.0), _quality(90.0, role=ChannelRole.FINGER), _lag(sharpness=0.02)))
    assert "signal quality on face" in text
    assert "peak is broad" in text


def test_status_degrade():
    assert QualityStatus.GREEN.degrade(QualityStatus.YELLOW) is QualityStatus.YELLOW
    assert QualityStatus.RED.degrade(QualityStatus.GREEN) is QualityStatus.RED
