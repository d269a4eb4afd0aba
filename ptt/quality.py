"""
ptt/quality.py — Signal quality index (SQI) and combined confidence
====================================================================
Per-channel score (0–100) is a weighted mean of component scores:

    component          weight   source
    ─────────────────  ──────   ─────────────────────────────────────
    SNR                 0.7     filtered vs residual power (dB)
    peak regularity     0.3     CV of RR intervals
    motion (optional)   0.2     face motion, px/frame
    inertial (optional) 0.1     device accelerometer RMS, g

Weights of the components that are present are renormalised to sum to 1,
so supplying a motion metric re-balances rather than inflates the score.

SNR mapping:  ≥ 15 dB → 100,  ≤ 0 dB → 10 (floor),  linear in between.
Motion / inertial: 100 at the low end of the calibrated range, 0 at the
high end, linear in between.

Combined confidence (0–1):

    confidence = (min(score_A, score_B) / 100) · max(r, 0) · sharpness_norm

where r is the peak cross-correlation and sharpness_norm is the peak
sharpness scaled so that 0.15 or more counts as fully sharp.  The
weakest channel bounds the result.  All of these constants are tuned
defaults and live in `config.py`.
"""

import math
from dataclasses import dataclass
from enum import Enum

import numpy as np

from config import (
    CONFIDENCE_THRESHOLD,
    INERTIAL_PENALTY_RANGE_G,
    LAG_MAX_MS,
    LAG_MIN_MS,
    LOW_SHARPNESS_GUIDANCE,
    LOW_SNR_GUIDANCE_DB,
    LOW_SQI_GUIDANCE,
    MIN_RELIABLE_CORRELATION,
    MOTION_PENALTY_RANGE_PX,
    SHARPNESS_FULL_SCALE,
    SNR_CAP_DB,
    SNR_FLOOR_SCORE,
    SNR_FULL_SCORE_DB,
    WEIGHT_INERTIAL,
    WEIGHT_MOTION,
    WEIGHT_REGULARITY,
    WEIGHT_SNR,
)
from dsp.conditioning import ConditionedChannel
from features.peaks import PeakDetection, detect_peaks, peak_regularity_score
from ptt.lag import LagEstimate


class ChannelRole(str, Enum):
    FACE = "face"
    FINGER = "finger"


class QualityStatus(str, Enum):
    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"

    def degrade(self, other: "QualityStatus") -> "QualityStatus":
        """The worse of two statuses."""
        order = [QualityStatus.GREEN, QualityStatus.YELLOW, QualityStatus.RED]
        return self if order.index(self) >= order.index(other) else other


@dataclass(frozen=True)
class ChannelQuality:
    score: float                    # 0–100
    snr_db: float
    snr_score: float
    regularity_score: float
    motion_score: float | None
    inertial_score: float | None
    peak_count: int
    role: ChannelRole | None = None


# ── Component scores ─────────────────────────────────────────────────────────

def snr_db(filtered: np.ndarray, residual: np.ndarray, cap_db: float = SNR_CAP_DB) -> float:
    """10·log10(P_filtered / P_residual), clamped to ±cap_db."""
    filtered = np.asarray(filtered, dtype=np.float64)
    residual = np.asarray(residual, dtype=np.float64)
    if len(filtered) == 0:
        return -cap_db
    p_signal = float(np.mean(filtered ** 2))
    p_noise = float(np.mean(residual ** 2)) if len(residual) else 0.0
    if p_signal <= 0.0:
        return -cap_db
    if p_noise <= p_signal * 10 ** (-cap_db / 10.0):
        return cap_db
    return float(np.clip(10.0 * math.log10(p_signal / p_noise), -cap_db, cap_db))


def snr_score(
    value_db: float,
    full_score_db: float = SNR_FULL_SCORE_DB,
    floor_score: float = SNR_FLOOR_SCORE,
) -> float:
    if value_db >= full_score_db:
        return 100.0
    if value_db <= 0.0:
        return floor_score
    return floor_score + (100.0 - floor_score) * value_db / full_score_db


def _range_score(value: float, low: float, high: float) -> float:
    if value <= low:
        return 100.0
    if value >= high:
        return 0.0
    return 100.0 * (high - value) / (high - low)


def motion_score(motion_px: float, penalty_range: tuple[float, float] = MOTION_PENALTY_RANGE_PX) -> float:
    return _range_score(motion_px, *penalty_range)


def inertial_score(inertial_g: float, penalty_range: tuple[float, float] = INERTIAL_PENALTY_RANGE_G) -> float:
    return _range_score(inertial_g, *penalty_range)


def sharpness_norm(sharpness: float, full_scale: float = SHARPNESS_FULL_SCALE) -> float:
    if full_scale <= 0:
        return 1.0
    return float(np.clip(sharpness / full_scale, 0.0, 1.0))


# ── Public API ───────────────────────────────────────────────────────────────

def channel_quality(
    channel: ConditionedChannel,
    fs: float,
    role: ChannelRole | None = None,
    motion_px: float | None = None,
    inertial_g: float | None = None,
    peaks: PeakDetection | None = None,
) -> ChannelQuality:
    """
    Score one conditioned channel.

    Parameters
    ----------
    channel    : ConditionedChannel   Output of the conditioning chain.
    fs         : float                Sampling rate (Hz).
    role       : ChannelRole | None   Carried through for reporting.
    motion_px  : float | None         Mean motion over the window.
    inertial_g : float | None         Mean inertial RMS over the window.
    peaks      : PeakDetection | None Reuse an existing detection.
    """
    if len(channel) == 0 or channel.is_degenerate:
        return ChannelQuality(score=0.0, snr_db=-SNR_CAP_DB, snr_score=0.0, regularity_score=0.0,
                              motion_score=None, inertial_score=None, peak_count=0, role=role)

    if peaks is None:
        peaks = detect_peaks(channel.values, fs)
    db = snr_db(channel.filtered, channel.residual)
    components = [
        (snr_score(db), WEIGHT_SNR),
        (peak_regularity_score(peaks.rr_intervals_ms) if peaks.is_valid else 0.0, WEIGHT_REGULARITY),
    ]
    m_score = None if motion_px is None or math.isnan(motion_px) else motion_score(motion_px)
    i_score = None if inertial_g is None or math.isnan(inertial_g) else inertial_score(inertial_g)
    if m_score is not None:
        components.append((m_score, WEIGHT_MOTION))
    if i_score is not None:
        components.append((i_score, WEIGHT_INERTIAL))

    total_weight = sum(w for _, w in components)
    score = sum(s * w for s, w in components) / total_weight
    return ChannelQuality(
        score=float(np.clip(score, 0.0, 100.0)),
        snr_db=db,
        snr_score=components[0][0],
        regularity_score=components[1][0],
        motion_score=m_score,
        inertial_score=i_score,
        peak_count=peaks.count,
        role=role,
    )


def combined_confidence(quality_a: ChannelQuality, quality_b: ChannelQuality, lag: LagEstimate) -> float:
    """Weakest-channel score × correlation × normalised sharpness, in [0, 1]."""
    if not lag.is_valid:
        return 0.0
    weakest = min(quality_a.score, quality_b.score) / 100.0
    conf = weakest * max(lag.correlation, 0.0) * sharpness_norm(lag.sharpness)
    return float(np.clip(conf, 0.0, 1.0))


def is_reportable(confidence: float, threshold: float = CONFIDENCE_THRESHOLD) -> bool:
    return confidence >= threshold


def confidence_label(confidence: float) -> str:
    if confidence >= 0.8:
        return "high"
    if confidence >= CONFIDENCE_THRESHOLD:
        return "medium"
    if confidence >= 0.3:
        return "low"
    return "insufficient"


def guidance(
    quality_a: ChannelQuality,
    quality_b: ChannelQuality,
    lag: LagEstimate,
    drift_ms_per_second: float | None = None,
    max_drift_ms_per_second: float | None = None,
    methods_agree: bool | None = None,
    lag_bounds_ms: tuple[float, float] = (LAG_MIN_MS, LAG_MAX_MS),
    confidence: float | None = None,
    confidence_threshold: float = CONFIDENCE_THRESHOLD,
) -> list[str]:
    """
    Human-readable reasons a measurement is weak, most actionable first.

    When ``confidence`` is given and below ``confidence_threshold`` the
    list is never empty: a closing line states the shortfall.
    """
    reasons = []
    for name, q in (("A", quality_a), ("B", quality_b)):
        label = q.role.value if q.role is not None else f"channel {name}"
        if q.score < LOW_SQI_GUIDANCE:
            reasons.append(f"Weak signal quality on {label} (score {q.score:.0f})")
        if q.snr_db < LOW_SNR_GUIDANCE_DB:
            reasons.append(f"Low signal-to-noise on {label} ({q.snr_db:.1f} dB)")
        if q.regularity_score < 50.0:
            reasons.append(f"Irregular or missing beats on {label}")
        if q.motion_score is not None and q.motion_score < 50.0:
            reasons.append(f"Too much motion on {label}")
        if q.inertial_score is not None and q.inertial_score < 50.0:
            reasons.append("Hold the device steady")
    if not lag.is_valid:
        reasons.append(lag.message or "Lag could not be estimated")
    else:
        if lag.correlation <= MIN_RELIABLE_CORRELATION:
            reasons.append(f"Channels correlate poorly (r={lag.correlation:.2f})")
        if not lag_bounds_ms[0] <= lag.lag_ms <= lag_bounds_ms[1]:
            reasons.append(f"Lag {lag.lag_ms:.0f} ms outside the plausible range")
        if sharpness_norm(lag.sharpness) < LOW_SHARPNESS_GUIDANCE:
            reasons.append("Correlation peak is broad; hold still for a cleaner pulse")
    if (drift_ms_per_second is not None and max_drift_ms_per_second is not None
            and abs(drift_ms_per_second) >= max_drift_ms_per_second):
        reasons.append(f"Camera clocks drift {drift_ms_per_second:.1f} ms/s")
    if methods_agree is False:
        reasons.append("Correlation and beat-foot methods disagree")
    if confidence is not None and confidence < confidence_threshold:
        reasons.append(f"Confidence {confidence:.2f} below the {confidence_threshold:.2f} reporting threshold")
    return reasons
