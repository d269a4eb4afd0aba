"""
api/schemas.py — Pydantic request & response models
=====================================================
Centralises all data-transfer objects so that FastAPI can auto-generate
OpenAPI docs and perform input validation for free.  The ``*_from_*``
helpers at the bottom turn the core's dataclasses into these models;
the core itself never serialises anything.
"""

from typing import Optional

from pydantic import BaseModel, Field, model_validator

from config import SESSION_BUFFER_SECONDS, SESSION_MEASURE_SECONDS, TARGET_RATE_HZ
from ptt.pipeline import PipelineResult
from stream.quality_monitor import ChannelIndicator, QualityState
from sync.timestamp_sync import ChannelTiming, DriftReport


# ── Request Models ───────────────────────────────────────────────────────────


class StreamIn(BaseModel):
    """One camera stream: monotonic nanosecond timestamps + brightness."""
    timestamps_ns: list[int] = Field(default_factory=list)
    values: list[float] = Field(default_factory=list)

    @model_validator(mode="after")
    def _same_length(self):
        if len(self.timestamps_ns) != len(self.values):
            raise ValueError("timestamps_ns and values must have the same length.")
        return self


class AuxiliaryIn(BaseModel):
    """Auxiliary metric at its own cadence; timestamps optional."""
    values: list[float]
    timestamps_ns: Optional[list[int]] = None

    @model_validator(mode="after")
    def _same_length(self):
        if self.timestamps_ns is not None and len(self.timestamps_ns) != len(self.values):
            raise ValueError("timestamps_ns and values must have the same length.")
        return self


class AnalyzeRequest(BaseModel):
    channel_a: StreamIn
    channel_b: StreamIn
    motion_px: Optional[AuxiliaryIn] = None
    saturation: Optional[AuxiliaryIn] = None
    inertial_g: Optional[AuxiliaryIn] = None
    target_rate_hz: float = Field(TARGET_RATE_HZ, ge=20.0, le=1000.0)
    wavelet: bool = Field(False, description="Enable Haar wavelet denoising.")


class SampleIn(BaseModel):
    timestamp_ns: int
    face_luma: Optional[float] = None
    finger_luma: Optional[float] = None
    face_motion_px: Optional[float] = Field(None, ge=0)
    finger_saturation: Optional[float] = Field(None, ge=0, le=1)
    inertial_g: Optional[float] = Field(None, ge=0)
    torch_enabled: bool = False


class SampleBatch(BaseModel):
    samples: list[SampleIn] = Field(..., min_length=1)


class MeasureRequest(BaseModel):
    window_seconds: float = Field(SESSION_MEASURE_SECONDS, ge=5.0, le=SESSION_BUFFER_SECONDS)


# ── Response Models ──────────────────────────────────────────────────────────


class TimingData(BaseModel):
    sample_count: int
    rate_hz: float
    jitter_ms: float
    median_interval_ms: float
    frame_drops: int


class DriftData(BaseModel):
    channel_a: TimingData
    channel_b: TimingData
    drift_ms_per_second: float
    is_acceptable: bool


class QualityData(BaseModel):
    score: float
    snr_db: float
    snr_score: float
    regularity_score: float
    motion_score: Optional[float] = None
    inertial_score: Optional[float] = None
    peak_count: int


class HarmonicData(BaseModel):
    fundamental_hz: float
    fundamental_bpm: float
    h2_ratio: float
    h3_ratio: float
    spectral_entropy: float
    snr_db: float
    is_valid: bool


class LagData(BaseModel):
    lag_ms: float
    correlation: float
    lag_samples: float
    sharpness: float
    is_valid: bool
    is_reliable: bool
    is_plausible: bool
    message: str
    stability_std_ms: Optional[float] = None
    is_stable: Optional[bool] = None


class PttData(BaseModel):
    lag_ms: float
    agreement_ms: float
    confidence: float
    confidence_label: str
    reportable: bool
    beat_count: int
    xcorr_lag_ms: Optional[float] = None
    foot_lag_ms: Optional[float] = None
    is_valid: bool
    message: str
    guidance: list[str]


class AnalyzeResponse(BaseModel):
    is_valid: bool
    ptt: PttData
    lag: Optional[LagData] = None
    quality_a: Optional[QualityData] = None
    quality_b: Optional[QualityData] = None
    combined_quality: float
    harmonics_a: HarmonicData
    harmonics_b: HarmonicData
    heart_rate_a_bpm: Optional[float] = None
    heart_rate_b_bpm: Optional[float] = None
    drift: Optional[DriftData] = None
    unified_samples: int
    segment_seconds: Optional[float] = None
    masked_percent: float
    timings_ms: dict[str, float]


class ChannelStatusData(BaseModel):
    status: str
    active: bool
    snr_db: Optional[float] = None
    hr_bpm: Optional[float] = None
    ac_dc_ratio: Optional[float] = None
    motion_px: Optional[float] = None
    saturation: Optional[float] = None
    inertial_g: Optional[float] = None
    sparkline: list[float]
    diagnostics: list[str]


class QualityStateResponse(BaseModel):
    face: ChannelStatusData
    finger: ChannelStatusData
    hr_delta_bpm: Optional[float] = None
    tip: Optional[str] = None
    updated_at_ms: int


# ── Conversions ──────────────────────────────────────────────────────────────


def _timing(t: ChannelTiming) -> TimingData:
    return TimingData(
        sample_count=t.sample_count,
        rate_hz=round(t.rate_hz, 3),
        jitter_ms=round(t.jitter_ms, 3),
        median_interval_ms=round(t.median_interval_ms, 3),
        frame_drops=t.frame_drops,
    )


def drift_from_report(report: DriftReport) -> DriftData:
    return DriftData(
        channel_a=_timing(report.channel_a),
        channel_b=_timing(report.channel_b),
        drift_ms_per_second=round(report.drift_ms_per_second, 4),
        is_acceptable=report.is_acceptable,
    )


def response_from_result(result: PipelineResult) -> AnalyzeResponse:
    ptt = result.ptt
    lag = None
    if result.lag is not None:
        lag = LagData(
            lag_ms=round(result.lag.lag_ms, 2),
            correlation=round(result.lag.correlation, 4),
            lag_samples=round(result.lag.lag_samples, 3),
            sharpness=round(result.lag.sharpness, 4),
            is_valid=result.lag.is_valid,
            is_reliable=result.lag.is_reliable,
            is_plausible=result.lag.is_plausible,
            message=result.lag.message,
            stability_std_ms=round(result.stability.std_lag_ms, 2) if result.stability else None,
            is_stable=result.stability.is_stable if result.stability else None,
        )

    def quality(q):
        if q is None:
            return None
        return QualityData(
            score=round(q.score, 1),
            snr_db=round(q.snr_db, 2),
            snr_score=round(q.snr_score, 1),
            regularity_score=round(q.regularity_score, 1),
            motion_score=q.motion_score,
            inertial_score=q.inertial_score,
            peak_count=q.peak_count,
        )

    def harmonics(h):
        return HarmonicData(
            fundamental_hz=round(h.fundamental_hz, 4),
            fundamental_bpm=round(h.fundamental_bpm, 1),
            h2_ratio=round(h.h2_ratio, 4),
            h3_ratio=round(h.h3_ratio, 4),
            spectral_entropy=round(h.spectral_entropy, 4),
            snr_db=round(h.snr_db, 2),
            is_valid=h.is_valid,
        )

    return AnalyzeResponse(
        is_valid=result.is_valid,
        ptt=PttData(
            lag_ms=round(ptt.lag_ms, 2),
            agreement_ms=round(ptt.agreement_ms, 2),
            confidence=round(ptt.confidence, 3),
            confidence_label=ptt.confidence_label,
            reportable=ptt.reportable,
            beat_count=ptt.beat_count,
            xcorr_lag_ms=ptt.xcorr_lag_ms,
            foot_lag_ms=ptt.foot_lag_ms,
            is_valid=ptt.is_valid,
            message=ptt.message,
            guidance=ptt.guidance,
        ),
        lag=lag,
        quality_a=quality(result.quality_a),
        quality_b=quality(result.quality_b),
        combined_quality=round(result.combined_quality, 1),
        harmonics_a=harmonics(result.harmonics_a),
        harmonics_b=harmonics(result.harmonics_b),
        heart_rate_a_bpm=result.heart_rate_a["hr_bpm"] if result.heart_rate_a else None,
        heart_rate_b_bpm=result.heart_rate_b["hr_bpm"] if result.heart_rate_b else None,
        drift=drift_from_report(result.drift) if result.drift else None,
        unified_samples=len(result.unified),
        segment_seconds=round(result.segment.duration_s, 2) if result.segment else None,
        masked_percent=round(result.masked_percent, 1),
        timings_ms=result.timings_ms,
    )


def _channel_status(c: ChannelIndicator) -> ChannelStatusData:
    return ChannelStatusData(
        status=c.status.value,
        active=c.active,
        snr_db=None if c.snr_db is None else round(c.snr_db, 2),
        hr_bpm=None if c.hr_bpm is None else round(c.hr_bpm, 1),
        ac_dc_ratio=c.ac_dc_ratio,
        motion_px=c.motion_px,
        saturation=c.saturation,
        inertial_g=c.inertial_g,
        sparkline=[round(v, 4) for v in c.sparkline],
        diagnostics=c.diagnostics,
    )


def quality_from_state(state: QualityState) -> QualityStateResponse:
    return QualityStateResponse(
        face=_channel_status(state.face),
        finger=_channel_status(state.finger),
        hr_delta_bpm=state.hr_delta_bpm,
        tip=state.tip,
        updated_at_ms=state.updated_at_ms,
    )
