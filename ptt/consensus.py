"""
ptt/consensus.py — Multi-method PTT consensus
==============================================
Two independent transit-time estimates are compared:

1. **Cross-correlation** — whole-window lag from `ptt.lag.compute_lag`.
2. **Foot-to-foot** — per-beat difference between the pulse foot on
   channel B and the closest foot on channel A, summarised by the
   median (robust to the odd mis-paired beat) and its IQR.

The reported lag is the median of the methods that produced a value.
Their spread is the *agreement* metric.  A spread above
``CONSENSUS_MAX_SPREAD_MS`` is not averaged away silently: confidence is
multiplied by ``DISAGREEMENT_FACTOR`` and the result says so.  A lag
outside the plausible range is penalised the same way.

Whatever the quality, a :class:`PttResult` is always returned; callers
show "insufficient quality" from ``reportable = False`` instead of
getting silence.
"""

from dataclasses import dataclass, field

import numpy as np

from config import (
    CONFIDENCE_THRESHOLD,
    CONSENSUS_MAX_SPREAD_MS,
    DISAGREEMENT_FACTOR,
    FOOT_PAIR_MAX_MS,
    IMPLAUSIBLE_FACTOR,
    LAG_MAX_MS,
    LAG_MIN_MS,
    MIN_FOOT_PAIRS,
)
from features.peaks import PeakDetection, detect_feet
from ptt.lag import LagEstimate
from ptt.quality import ChannelQuality, combined_confidence, confidence_label, guidance
from utils.logger import get_logger

logger = get_logger("ptt.consensus")


@dataclass(frozen=True)
class FootLagEstimate:
    lag_ms: float
    iqr_ms: float
    pair_count: int
    is_valid: bool
    message: str = ""
    per_beat_ms: list[float] = field(default_factory=list)


@dataclass(frozen=True)
class PttResult:
    lag_ms: float
    agreement_ms: float             # spread between methods
    confidence: float               # 0–1
    reportable: bool
    beat_count: int
    xcorr_lag_ms: float | None = None
    foot_lag_ms: float | None = None
    correlation: float = 0.0
    methods_agree: bool | None = None
    is_valid: bool = True
    message: str = ""
    guidance: list[str] = field(default_factory=list)

    @property
    def confidence_label(self) -> str:
        return confidence_label(self.confidence)

    @classmethod
    def invalid(cls, message: str, guidance_: list[str] | None = None) -> "PttResult":
        return cls(
            lag_ms=0.0,
            agreement_ms=0.0,
            confidence=0.0,
            reportable=False,
            beat_count=0,
            is_valid=False,
            message=message,
            guidance=list(guidance_ or [message]),
        )


# ── Foot-to-foot method ──────────────────────────────────────────────────────

def pair_feet(
    feet_a: np.ndarray,
    feet_b: np.ndarray,
    fs: float,
    max_pair_ms: float = FOOT_PAIR_MAX_MS,
) -> np.ndarray:
    """
    Per-beat ``foot_B − foot_A`` in ms, pairing each A foot with the
    closest B foot no further than ``max_pair_ms`` away.
    """
    feet_a = np.asarray(feet_a, dtype=np.float64)
    feet_b = np.asarray(feet_b, dtype=np.float64)
    if len(feet_a) == 0 or len(feet_b) == 0:
        return np.empty(0)

    ms_per_sample = 1000.0 / fs
    right = np.clip(np.searchsorted(feet_b, feet_a), 1, max(1, len(feet_b) - 1))
    left = right - 1
    if len(feet_b) == 1:
        nearest = np.zeros(len(feet_a), dtype=int)
    else:
        use_left = np.abs(feet_a - feet_b[left]) <= np.abs(feet_b[right] - feet_a)
        nearest = np.where(use_left, left, right)

    diffs_ms = (feet_b[nearest] - feet_a) * ms_per_sample
    keep = np.abs(diffs_ms) <= max_pair_ms

    # A B foot may only be claimed once; keep the closest A for it.
    pairs: dict[int, float] = {}
    for j, d in zip(nearest[keep], diffs_ms[keep]):
        if j not in pairs or abs(d) < abs(pairs[j]):
            pairs[j] = float(d)
    return np.array([pairs[j] for j in sorted(pairs)])


def foot_to_foot_lag(
    values_a: np.ndarray,
    values_b: np.ndarray,
    peaks_a: PeakDetection,
    peaks_b: PeakDetection,
    fs: float,
    min_pairs: int = MIN_FOOT_PAIRS,
    max_pair_ms: float = FOOT_PAIR_MAX_MS,
) -> FootLagEstimate:
    """Median per-beat foot delay of channel B relative to channel A."""
    if fs <= 0 or len(values_a) == 0 or len(values_b) == 0:
        return FootLagEstimate(0.0, 0.0, 0, False, "Empty input.")

    feet_a = detect_feet(values_a, peaks_a.indices, fs)
    feet_b = detect_feet(values_b, peaks_b.indices, fs)
    diffs = pair_feet(feet_a, feet_b, fs, max_pair_ms)
    if len(diffs) < min_pairs:
        return FootLagEstimate(0.0, 0.0, len(diffs), False,
                               f"Only {len(diffs)} paired beats (need {min_pairs}).")

    q1, median, q3 = np.percentile(diffs, [25, 50, 75])
    return FootLagEstimate(
        lag_ms=float(median),
        iqr_ms=float(q3 - q1),
        pair_count=len(diffs),
        is_valid=True,
        message=f"{len(diffs)} beats, median {median:.1f} ms (IQR {q3 - q1:.1f} ms)",
        per_beat_ms=diffs.tolist(),
    )


# ── Consensus ────────────────────────────────────────────────────────────────

def build_consensus(
    xcorr: LagEstimate,
    foot: FootLagEstimate,
    quality_a: ChannelQuality,
    quality_b: ChannelQuality,
    drift_ms_per_second: float | None = None,
    max_drift_ms_per_second: float | None = None,
    confidence_threshold: float = CONFIDENCE_THRESHOLD,
    max_spread_ms: float = CONSENSUS_MAX_SPREAD_MS,
    disagreement_factor: float = DISAGREEMENT_FACTOR,
    implausible_factor: float = IMPLAUSIBLE_FACTOR,
    lag_bounds_ms: tuple[float, float] = (LAG_MIN_MS, LAG_MAX_MS),
) -> PttResult:
    """
    Merge the correlation and foot-to-foot estimates into one result.

    Parameters
    ----------
    xcorr, foot          : the two method estimates.
    quality_a, quality_b : per-channel SQI.
    drift_ms_per_second  : optional, only used for guidance.
    """
    method_lags = []
    if xcorr.is_valid:
        method_lags.append(xcorr.lag_ms)
    if foot.is_valid:
        method_lags.append(foot.lag_ms)
    if not method_lags:
        reasons = guidance(quality_a, quality_b, xcorr, drift_ms_per_second, max_drift_ms_per_second,
                           lag_bounds_ms=lag_bounds_ms)
        logger.warning("No PTT method produced a value: %s / %s", xcorr.message, foot.message)
        return PttResult.invalid(xcorr.message or foot.message or "No lag estimate.", reasons)

    lag_ms = float(np.median(method_lags))
    spread = float(max(method_lags) - min(method_lags))
    agree = None if len(method_lags) < 2 else spread <= max_spread_ms

    confidence = combined_confidence(quality_a, quality_b, xcorr)
    notes = []
    if agree is False:
        confidence *= disagreement_factor
        notes.append(f"methods disagree by {spread:.1f} ms")
    if not lag_bounds_ms[0] <= lag_ms <= lag_bounds_ms[1]:
        confidence *= implausible_factor
        notes.append("lag outside plausible range")

    reportable = confidence >= confidence_threshold
    reasons = [] if reportable else guidance(
        quality_a, quality_b, xcorr, drift_ms_per_second, max_drift_ms_per_second,
        methods_agree=agree, lag_bounds_ms=lag_bounds_ms,
        confidence=confidence, confidence_threshold=confidence_threshold,
    )
    beat_count = foot.pair_count if foot.is_valid else min(quality_a.peak_count, quality_b.peak_count)
    message = f"PTT {lag_ms:.1f} ms (confidence {confidence:.2f})"
    if notes:
        message += "; " + ", ".join(notes)

    if reportable:
        logger.info("%s, agreement %.1f ms over %d beats", message, spread, beat_count)
    else:
        logger.warning("%s, not reportable", message)

    return PttResult(
        lag_ms=lag_ms,
        agreement_ms=spread,
        confidence=confidence,
        reportable=reportable,
        beat_count=beat_count,
        xcorr_lag_ms=xcorr.lag_ms if xcorr.is_valid else None,
        foot_lag_ms=foot.lag_ms if foot.is_valid else None,
        correlation=xcorr.correlation,
        methods_agree=agree,
        is_valid=True,
        message=message,
        guidance=reasons,
    )
