"""
api/session.py — Live measurement session
===========================================
Owns the per-channel ring buffers, the drift monitor, the streaming
quality monitor and a `PttPipeline`.  Clients push sample batches while
recording, poll live quality, and ask for a measurement over the most
recent window whenever they like.

Thread safety
-------------
Ring buffers and monitors guard themselves.  ``_lock`` protects the
session's own fields (status, last result) and serialises ``measure``
calls so two requests never run the pipeline on the same session at once.

Lifecycle
---------
    1. `ingest(samples)` — any number of times, from any thread.
    2. `quality()` / `drift()` — poll live diagnostics.
    3. `measure(window_seconds)` — run the batch pipeline on the buffer.
    4. `reset()` — drop everything and start over.
"""

import threading
from typing import Iterable

from config import SESSION_BUFFER_SECONDS, SESSION_MEASURE_SECONDS, STREAM_MAX_FPS
from ptt.pipeline import AuxiliaryMetric, AuxiliaryMetrics, PipelineResult, PttPipeline
from stream.drift_monitor import DriftMonitor
from stream.quality_monitor import QualityState, StreamingQualityMonitor, StreamSample
from stream.ring_buffer import RingBuffer
from sync.timestamp_sync import DriftReport, RawSeriesBuffer
from utils.logger import get_logger

logger = get_logger("api.session")

# ── Disclaimer string injected into every measurement response ───────────────
DISCLAIMER = (
    "This is a WELLNESS ESTIMATION tool, not a medical device. Pulse transit "
    "time is a best-effort estimate from two camera PPG signals and has not "
    "been clinically validated."
)


class MeasurementSession:
    """
    One live dual-camera recording.

    Instantiate once at application startup and reuse across requests.
    """

    def __init__(
        self,
        pipeline: PttPipeline | None = None,
        buffer_seconds: float = SESSION_BUFFER_SECONDS,
        max_fps: int = STREAM_MAX_FPS,
    ):
        capacity = int(buffer_seconds * max_fps)
        self._face = RingBuffer(capacity)
        self._finger = RingBuffer(capacity)
        self._motion = RingBuffer(capacity)
        self._saturation = RingBuffer(capacity)
        self._inertial = RingBuffer(capacity)
        self._drift = DriftMonitor()
        self._quality = StreamingQualityMonitor()
        self._pipeline = pipeline or PttPipeline()

        self._lock = threading.Lock()
        self._status = "idle"            # idle | collecting | measured
        self._samples_ingested = 0
        self._last_result: PipelineResult | None = None
        logger.info("MeasurementSession initialised (capacity=%d samples/channel).", capacity)

    # ── Public API ───────────────────────────────────────────────────────────

    @property
    def status(self) -> str:
        with self._lock:
            return self._status

    @property
    def samples_ingested(self) -> int:
        with self._lock:
            return self._samples_ingested

    def ingest(self, samples: Iterable[StreamSample]) -> int:
        """Buffer a batch of samples; returns how many were accepted."""
        count = 0
        for s in samples:
            ts = s.timestamp_ns
            if s.face_luma is not None:
                self._face.add(s.face_luma, ts)
                self._drift.record("A", ts)
            if s.finger_luma is not None:
                self._finger.add(s.finger_luma, ts)
                self._drift.record("B", ts)
            if s.face_motion_px is not None:
                self._motion.add(s.face_motion_px, ts)
            if s.finger_saturation is not None:
                self._saturation.add(s.finger_saturation, ts)
            if s.inertial_g is not None:
                self._inertial.add(s.inertial_g, ts)
            self._quality.ingest(s)
            count += 1
        with self._lock:
            self._samples_ingested += count
            if count and self._status == "idle":
                self._status = "collecting"
        return count

    def quality(self, force: bool = False) -> QualityState | None:
        """Fresh state if due, else the last emitted one (None before the first)."""
        return self._quality.emit(force=force) or self._quality.last_state

    def drift(self) -> DriftReport | None:
        return self._drift.report()

    def measure(self, window_seconds: float = SESSION_MEASURE_SECONDS) -> PipelineResult:
        """Run the batch pipeline on the newest ``window_seconds`` of data."""
        window_ns = int(window_seconds * 1e9)
        with self._lock:
            face = self._face.snapshot(window_ns)
            finger = self._finger.snapshot(window_ns)
            series = RawSeriesBuffer.from_arrays(
                face.timestamps_ns if face else [], face.values if face else [],
                finger.timestamps_ns if finger else [], finger.values if finger else [],
            )
            aux = AuxiliaryMetrics(
                motion_px=self._aux(self._motion, window_ns),
                saturation=self._aux(self._saturation, window_ns),
                inertial_g=self._aux(self._inertial, window_ns),
            )
            result = self._pipeline.process(series, aux)
            self._last_result = result
            self._status = "measured"

        logger.info("Measurement over %.0f s: valid=%s reportable=%s",
                    window_seconds, result.is_valid, result.ptt.reportable)
        return result

    def get_result(self) -> PipelineResult | None:
        with self._lock:
            return self._last_result

    def reset(self) -> None:
        """Drop all buffered data and results."""
        for buffer in (self._face, self._finger, self._motion, self._saturation, self._inertial):
            buffer.reset()
        self._drift.reset()
        self._quality.reset()
        with self._lock:
            self._status = "idle"
            self._samples_ingested = 0
            self._last_result = None
        logger.info("Session reset.")

    # ── Private ──────────────────────────────────────────────────────────────

    @staticmethod
    def _aux(buffer: RingBuffer, window_ns: int) -> AuxiliaryMetric | None:
        window = buffer.snapshot(window_ns)
        if window is None:
            return None
        return AuxiliaryMetric(values=window.values, timestamps_ns=window.timestamps_ns)
