"""
ptt/pipeline.py — End-to-end dual-PPG → PTT pipeline
=====================================================
Orchestrates the full batch chain for one recording:

    raw streams  →  unified timeline + drift report
                 →  motion / drop masking  →  longest clean segment
                 →  conditioning (per channel)
                 →  harmonics, peaks, heart rate, SQI (per channel)
                 →  cross-correlation lag + stability
                 →  foot-to-foot lag  →  consensus PttResult

`PttPipeline.process` is pure: it reads its inputs, keeps no state
between calls, and never raises on bad data.  Every failure path ends
in a `PipelineResult` whose ``ptt`` is an invalid / non-reportable
`PttResult` carrying a diagnostic message.  Wall-clock time per stage is
recorded in ``timings_ms``.
"""

import time
from contextlib import contextmanager
from dataclasses import dataclass, field

import numpy as np

from config import (
    BP_HIGH_HZ,
    BP_LOW_HZ,
    CONFIDENCE_THRESHOLD,
    CORR_WINDOW_OVERLAP,
    CORR_WINDOW_SECONDS,
    FILTER_ORDER,
    LAG_MAX_MS,
    LAG_MIN_MS,
    MAX_DRIFT_MS_PER_S,
    PTT_MAX_LAG_SECONDS,
    TARGET_RATE_HZ,
    ZERO_PHASE,
)
from dsp.conditioning import ConditionedChannel, ConditioningChain, DetrendMethod
from dsp.wavelet import WaveletConfig
from features.hr import estimate_hr
from features.peaks import detect_peaks
from ptt.consensus import FootLagEstimate, PttResult, build_consensus, foot_to_foot_lag
from ptt.lag import LagEstimate, LagStability, compute_lag, compute_lag_stability
from ptt.quality import ChannelQuality, ChannelRole, channel_quality
from spectral.harmonics import HarmonicFeatures, extract_harmonic_features
from sync.motion_mask import (
    SignalSegment,
    TimeWindow,
    apply_mask,
    broadcast_to_timeline,
    find_bad_windows,
    longest_valid_segment,
    masked_percentage,
)
from sync.timestamp_sync import (
    DriftReport,
    RawSeriesBuffer,
    UnifiedSeries,
    compute_drift_report,
    resample_to_unified_timeline,
)
from utils.logger import get_logger

logger = get_logger("ptt.pipeline")


@dataclass(frozen=True)
class AuxiliaryMetric:
    """One auxiliary sensor series at its own cadence."""

    values: np.ndarray
    timestamps_ns: np.ndarray | None = None     # None → spans the recording evenly


@dataclass(frozen=True)
class AuxiliaryMetrics:
    motion_px: AuxiliaryMetric | None = None      # face motion, px/frame
    saturation: AuxiliaryMetric | None = None     # finger saturated-pixel fraction
    inertial_g: AuxiliaryMetric | None = None     # device accelerometer RMS


@dataclass
class PipelineResult:
    unified: UnifiedSeries
    ptt: PttResult
    drift: DriftReport | None = None
    conditioned_a: ConditionedChannel | None = None
    conditioned_b: ConditionedChannel | None = None
    harmonics_a: HarmonicFeatures = field(default_factory=HarmonicFeatures.empty)
    harmonics_b: HarmonicFeatures = field(default_factory=HarmonicFeatures.empty)
    quality_a: ChannelQuality | None = None
    quality_b: ChannelQuality | None = None
    heart_rate_a: dict | None = None
    heart_rate_b: dict | None = None
    lag: LagEstimate | None = None
    stability: LagStability | None = None
    foot: FootLagEstimate | None = None
    segment: SignalSegment | None = None
    bad_windows: list[TimeWindow] = field(default_factory=list)
    masked_percent: float = 0.0
    mean_saturation: float | None = None
    timings_ms: dict[str, float] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return self.unified.is_valid and self.ptt.is_valid

    @property
    def combined_quality(self) -> float:
        """Weakest channel SQI (0–100), 0 when unavailable."""
        if self.quality_a is None or self.quality_b is None:
            return 0.0
        return min(self.quality_a.score, self.quality_b.score)


class PttPipeline:
    """
    Batch PTT estimator for one dual-stream recording.

    Parameters
    ----------
    target_rate_hz  : float                 Unified timeline rate.
    low_hz, high_hz : float                 Band-pass corners.
    order           : int                   Even Butterworth order per stage.
    detrend         : DetrendMethod         Baseline removal.
    wavelet         : WaveletConfig | None  Optional denoising stage.
    roles           : tuple                 Body site of channel A and B.
    mask_motion     : bool                  Drop bad windows before analysis.
    max_lag_seconds : float                 ± lag search range, under one beat.
    """

    def __init__(
        self,
        target_rate_hz: float = TARGET_RATE_HZ,
        low_hz: float = BP_LOW_HZ,
        high_hz: float = BP_HIGH_HZ,
        order: int = FILTER_ORDER,
        detrend: DetrendMethod = DetrendMethod.IIR,
        wavelet: WaveletConfig | None = None,
        zero_phase: bool = ZERO_PHASE,
        roles: tuple[ChannelRole, ChannelRole] = (ChannelRole.FACE, ChannelRole.FINGER),
        mask_motion: bool = True,
        window_seconds: float = CORR_WINDOW_SECONDS,
        window_overlap: float = CORR_WINDOW_OVERLAP,
        lag_bounds_ms: tuple[float, float] = (LAG_MIN_MS, LAG_MAX_MS),
        max_lag_seconds: float = PTT_MAX_LAG_SECONDS,
        confidence_threshold: float = CONFIDENCE_THRESHOLD,
        max_drift_ms_per_second: float = MAX_DRIFT_MS_PER_S,
    ):
        self.target_rate_hz = target_rate_hz
        self.chain = ConditioningChain(
            fs=target_rate_hz, detrend=detrend, low_hz=low_hz, high_hz=high_hz,
            order=order, wavelet=wavelet, zero_phase=zero_phase,
        )
        self.roles = roles
        self.mask_motion = mask_motion
        self.window_seconds = window_seconds
        self.window_overlap = window_overlap
        self.lag_bounds_ms = lag_bounds_ms
        self.max_lag_seconds = max_lag_seconds
        self.confidence_threshold = confidence_threshold
        self.max_drift_ms_per_second = max_drift_ms_per_second
        logger.info(
            "PttPipeline created — %.0f Hz, band %.2f–%.2f Hz, order %d, wavelet=%s",
            target_rate_hz, low_hz, high_hz, order, "on" if wavelet else "off",
        )

    # ── Public API ───────────────────────────────────────────────────────────

    def process(self, series: RawSeriesBuffer, aux: AuxiliaryMetrics | None = None) -> PipelineResult:
        """Run every stage on one recording.  Never raises on bad data."""
        timings: dict[str, float] = {}
        try:
            return self._process(series, aux or AuxiliaryMetrics(), timings)
        except ValueError as e:
            logger.warning("Pipeline aborted: %s", e)
            return PipelineResult(
                unified=UnifiedSeries.invalid(str(e), self.target_rate_hz),
                ptt=PttResult.invalid(f"Processing error: {e}"),
                timings_ms=timings,
            )

    # ── Private ──────────────────────────────────────────────────────────────

    @contextmanager
    def _timed(self, timings: dict[str, float], stage: str):
        start = time.perf_counter()
        try:
            yield
        finally:
            timings[stage] = round((time.perf_counter() - start) * 1000.0, 3)

    def _process(self, series: RawSeriesBuffer, aux: AuxiliaryMetrics, timings: dict[str, float]) -> PipelineResult:
        fs = self.target_rate_hz

        with self._timed(timings, "sync"):
            unified = resample_to_unified_timeline(series, fs)
            drift = compute_drift_report(series, self.max_drift_ms_per_second)
        if not unified.is_valid:
            logger.warning("Unified timeline invalid: %s", unified.message)
            return PipelineResult(unified=unified, ptt=PttResult.invalid(unified.message),
                                  drift=drift, timings_ms=timings)

        with self._timed(timings, "mask"):
            motion, inertial, saturation = (
                self._broadcast(metric, unified) for metric in (aux.motion_px, aux.inertial_g, aux.saturation)
            )
            bad_windows: list[TimeWindow] = []
            if self.mask_motion:
                raw_ts = [series.arrays("A")[0], series.arrays("B")[0]]
                bad_windows = find_bad_windows(unified.timestamps_ns, motion, inertial, raw_ts)
            time_ms = unified.time_ms
            masked = apply_mask(unified.values_a, time_ms, bad_windows)
            percent = masked_percentage(masked)
            if bad_windows:
                segment = longest_valid_segment(masked, time_ms)
            else:
                segment = SignalSegment(0, len(unified) - 1, unified.duration_seconds)

        if segment is None:
            message = f"No clean segment left after masking ({percent:.0f}% masked)."
            logger.warning(message)
            return PipelineResult(unified=unified, ptt=PttResult.invalid(message), drift=drift,
                                  bad_windows=bad_windows, masked_percent=percent, timings_ms=timings)

        sl = slice(segment.start_idx, segment.end_idx + 1)
        with self._timed(timings, "condition"):
            cond_a, cond_b = self.chain.process_pair(unified.values_a[sl], unified.values_b[sl])

        with self._timed(timings, "spectral"):
            harm_a = extract_harmonic_features(cond_a.values, fs)
            harm_b = extract_harmonic_features(cond_b.values, fs)

        with self._timed(timings, "quality"):
            peaks_a = detect_peaks(cond_a.values, fs)
            peaks_b = detect_peaks(cond_b.values, fs)
            hr_a = estimate_hr(cond_a.filtered, fs, peaks_a)
            hr_b = estimate_hr(cond_b.filtered, fs, peaks_b)
            mean_motion = _segment_mean(motion, sl)
            mean_inertial = _segment_mean(inertial, sl)
            qualities = []
            for cond, peaks, role in ((cond_a, peaks_a, self.roles[0]), (cond_b, peaks_b, self.roles[1])):
                qualities.append(channel_quality(
                    cond, fs, role=role,
                    motion_px=mean_motion if role is ChannelRole.FACE else None,
                    inertial_g=mean_inertial,
                    peaks=peaks,
                ))
            quality_a, quality_b = qualities

        with self._timed(timings, "lag"):
            lag = compute_lag(
                cond_a.values, cond_b.values, fs,
                max_lag_seconds=self.max_lag_seconds, lag_bounds_ms=self.lag_bounds_ms,
            )
            stability = compute_lag_stability(
                cond_a.values, cond_b.values, fs,
                window_seconds=self.window_seconds, overlap=self.window_overlap,
                max_lag_seconds=self.max_lag_seconds,
            )

        with self._timed(timings, "consensus"):
            foot = foot_to_foot_lag(cond_a.values, cond_b.values, peaks_a, peaks_b, fs)
            ptt = build_consensus(
                lag, foot, quality_a, quality_b,
                drift_ms_per_second=drift.drift_ms_per_second,
                max_drift_ms_per_second=self.max_drift_ms_per_second,
                confidence_threshold=self.confidence_threshold,
                lag_bounds_ms=self.lag_bounds_ms,
            )

        timings["total"] = round(sum(timings.values()), 3)
        logger.info(
            "Processed %.1f s segment: PTT=%.1f ms conf=%.2f SQI A=%.0f B=%.0f (%.1f ms)",
            segment.duration_s, ptt.lag_ms, ptt.confidence, quality_a.score, quality_b.score, timings["total"],
        )
        return PipelineResult(
            unified=unified,
            ptt=ptt,
            drift=drift,
            conditioned_a=cond_a,
            conditioned_b=cond_b,
            harmonics_a=harm_a,
            harmonics_b=harm_b,
            quality_a=quality_a,
            quality_b=quality_b,
            heart_rate_a=hr_a,
            heart_rate_b=hr_b,
            lag=lag,
            stability=stability,
            foot=foot,
            segment=segment,
            bad_windows=bad_windows,
            masked_percent=percent,
            mean_saturation=_segment_mean(saturation, sl),
            timings_ms=timings,
        )

    @staticmethod
    def _broadcast(metric: AuxiliaryMetric | None, unified: UnifiedSeries) -> np.ndarray | None:
        if metric is None or len(metric.values) == 0:
            return None
        return broadcast_to_timeline(metric.values, unified.timestamps_ns, metric.timestamps_ns)


def _segment_mean(values: np.ndarray | None, sl: slice) -> float | None:
    if values is None:
        return None
    part = values[sl]
    if len(part) == 0 or np.isnan(part).all():
        return None
    return float(np.nanmean(part))
