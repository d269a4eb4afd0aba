"""
api/routes.py — FastAPI route definitions
==========================================
All HTTP endpoints are defined here and wired into the app via
`app.include_router(router)` in `api/app.py`.

Endpoint summary
----------------
    GET  /health              — Liveness probe
    POST /analyze             — One-shot: two full streams in, PTT result out
    POST /session/samples     — Push a batch of live samples
    GET  /session/quality     — Latest rate-limited quality state
    POST /session/measure     — Run the pipeline on the buffered window
    GET  /session/result      — Last measurement
    GET  /session/drift       — Live inter-camera drift report
    POST /session/reset       — Drop all buffered data
    GET  /docs                — Auto-generated Swagger UI (FastAPI built-in)

Poor data is not an HTTP error: an unusable recording returns 200 with
``is_valid = false`` and a diagnostic message.
"""

from fastapi import APIRouter, HTTPException, Request

from api.schemas import (
    AnalyzeRequest,
    AnalyzeResponse,
    DriftData,
    MeasureRequest,
    QualityStateResponse,
    SampleBatch,
    drift_from_report,
    quality_from_state,
    response_from_result,
)
from api.session import DISCLAIMER, MeasurementSession
from dsp.wavelet import WaveletConfig
from ptt.pipeline import AuxiliaryMetric, AuxiliaryMetrics, PttPipeline
from stream.quality_monitor import StreamSample
from sync.timestamp_sync import RawSeriesBuffer
from utils.logger import get_logger

logger = get_logger("api.routes")

router = APIRouter()


def _session(request: Request) -> MeasurementSession:
    return request.app.state.session


def _aux(metric) -> AuxiliaryMetric | None:
    if metric is None:
        return None
    return AuxiliaryMetric(values=metric.values, timestamps_ns=metric.timestamps_ns)


# ── Health ────────────────────────────────────────────────────────────────────

@router.get("/health")
async def health():
    """Simple liveness check."""
    return {"status": "ok", "service": "Dual-PPG PTT Estimator"}


# ── One-shot analysis ────────────────────────────────────────────────────────

@router.post("/analyze", response_model=AnalyzeResponse)
def analyze(body: AnalyzeRequest) -> AnalyzeResponse:
    """
    Run the full pipeline on two complete streams.

    Body (JSON):
        channel_a, channel_b : {timestamps_ns: [...], values: [...]}
        motion_px, saturation, inertial_g : optional auxiliary metrics
        target_rate_hz       : unified rate (default 100)
        wavelet              : enable wavelet denoising
    """
    logger.info("Analyze request: %d + %d samples, wavelet=%s",
                len(body.channel_a.values), len(body.channel_b.values), body.wavelet)
    series = RawSeriesBuffer.from_arrays(
        body.channel_a.timestamps_ns, body.channel_a.values,
        body.channel_b.timestamps_ns, body.channel_b.values,
    )
    aux = AuxiliaryMetrics(
        motion_px=_aux(body.motion_px),
        saturation=_aux(body.saturation),
        inertial_g=_aux(body.inertial_g),
    )
    pipeline = PttPipeline(
        target_rate_hz=body.target_rate_hz,
        wavelet=WaveletConfig() if body.wavelet else None,
    )
    result = pipeline.process(series, aux)
    return response_from_result(result)


# ── Live session ─────────────────────────────────────────────────────────────

@router.post("/session/samples")
def push_samples(batch: SampleBatch, request: Request):
    """Buffer a batch of live samples.  Cheap: nothing is computed here."""
    session = _session(request)
    accepted = session.ingest(StreamSample(**s.model_dump()) for s in batch.samples)
    return {"status": session.status, "accepted": accepted, "total": session.samples_ingested}


@router.get("/session/quality", response_model=QualityStateResponse)
def session_quality(request: Request, force: bool = False) -> QualityStateResponse:
    """
    Latest quality state.  Recomputed at most every 400 ms unless
    ``force=true``.  Returns 404 until enough samples are buffered.
    """
    state = _session(request).quality(force=force)
    if state is None:
        raise HTTPException(status_code=404, detail="Not enough samples for a quality estimate yet.")
    return quality_from_state(state)


@router.post("/session/measure")
def session_measure(request: Request, body: MeasureRequest = MeasureRequest()):
    """Run the pipeline on the newest ``window_seconds`` of buffered data."""
    result = _session(request).measure(body.window_seconds)
    return {"disclaimer": DISCLAIMER, **response_from_result(result).model_dump()}


@router.get("/session/result")
def session_result(request: Request):
    """Last measurement; 404 if none has been run since the last reset."""
    result = _session(request).get_result()
    if result is None:
        raise HTTPException(status_code=404, detail="No measurement has been run yet.")
    return {"disclaimer": DISCLAIMER, **response_from_result(result).model_dump()}


@router.get("/session/drift", response_model=DriftData)
def session_drift(request: Request) -> DriftData:
    """Live drift report; 404 until both cameras have enough frames."""
    report = _session(request).drift()
    if report is None:
        raise HTTPException(status_code=404, detail="Not enough frames on both channels yet.")
    return drift_from_report(report)


@router.post("/session/reset")
def session_reset(request: Request):
    """Reset the session so a new recording can start."""
    _session(request).reset()
    return {"status": "ok", "message": "Session reset. Ready for a new recording."}
