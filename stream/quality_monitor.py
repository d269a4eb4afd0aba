"""
stream/quality_monitor.py — Rate-limited live signal quality
=============================================================
Consumes lightweight per-frame samples while a recording is running and
produces UI-friendly quality indicators a few times per second.

Ingest vs emit
--------------
``ingest`` only appends to ring buffers and can be called from camera
callbacks at any rate.  ``emit`` is time-gated: it returns None unless
at least ``update_interval_ms`` have passed since the last emitted state,
so the UI cadence (~2.5 Hz by default) is independent of the sensor
cadence.

Status rules
------------
Face   : RED if SNR < 3 dB or motion > 1 px/frame;
         YELLOW if SNR < 6 dB, motion > 0.5 px/frame, device moving,
         or heart rate unresolved.
Finger : RED if SNR < 4 dB or saturation > 15 %;
         YELLOW if SNR < 10 dB, saturation > 5 %, device moving,
         or heart rate unresolved.

At most one coaching tip is attached, most actionable first.
"""

import threading
from dataclasses import dataclass, field

import numpy as np

from config import (
    STREAM_BUFFER_SECONDS,
    STREAM_MAX_FPS,
    STREAM_MIN_SAMPLES,
    STREAM_UPDATE_INTERVAL_MS,
    STREAM_WINDOW_SECONDS,
)
from dsp.conditioning import ConditioningChain, DetrendMethod
from features.hr import estimate_hr
from ptt.quality import ChannelRole, QualityStatus, snr_db
from stream.ring_buffer import RingBuffer, SignalWindow
from utils.logger import get_logger

logger = get_logger("stream.quality")

_MIN_FS_HZ = 5.0


@dataclass(frozen=True)
class StreamSample:
    timestamp_ns: int
    face_luma: float | None = None
    finger_luma: float | None = None
    face_motion_px: float | None = None
    finger_saturation: float | None = None     # fraction 0–1
    inertial_g: float | None = None
    torch_enabled: bool = False


@dataclass(frozen=True)
class ChannelIndicator:
    role: ChannelRole
    status: QualityStatus
    snr_db: float | None = None
    saturation: float | None = None
    motion_px: float | None = None
    inertial_g: float | None = None
    hr_bpm: float | None = None
    ac_dc_ratio: float | None = None
    sparkline: list[float] = field(default_factory=list)
    diagnostics: list[str] = field(default_factory=list)
    active: bool = True

    @classmethod
    def inactive(cls, role: ChannelRole) -> "ChannelIndicator":
        # Green so an idle camera in sequential mode does not alarm the user.
        return cls(role=role, status=QualityStatus.GREEN, diagnostics=["Inactive"], active=False)


@dataclass(frozen=True)
class QualityState:
    face: ChannelIndicator
    finger: ChannelIndicator
    hr_delta_bpm: float | None
    tip: str | None
    updated_at_ms: int


class StreamingQualityMonitor:
    """
    Live quality monitor over fixed-capacity ring buffers.

    Parameters
    ----------
    buffer_seconds     : float   History kept per stream.
    window_seconds     : float   Analysis window used by ``emit``.
    update_interval_ms : int     Minimum spacing between emitted states.
    max_fps            : int     Upper bound on input rate, sizes the buffers.
    """

    def __init__(
        self,
        buffer_seconds: float = STREAM_BUFFER_SECONDS,
        window_seconds: float = STREAM_WINDOW_SECONDS,
        update_interval_ms: int = STREAM_UPDATE_INTERVAL_MS,
        max_fps: int = STREAM_MAX_FPS,
        min_samples: int = STREAM_MIN_SAMPLES,
    ):
        capacity = max(32, int(buffer_seconds * max_fps))
        self._face = RingBuffer(capacity)
        self._finger = RingBuffer(capacity)
        self._motion = RingBuffer(capacity)
        self._saturation = RingBuffer(capacity)
        self._inertial = RingBuffer(capacity)
        self._window_ns = int(window_seconds * 1e9)
        self._interval_ms = update_interval_ms
        self._min_samples = min_samples

        self._lock = threading.Lock()
        self._last_emit_ms: int | None = None
        self._last_state: QualityState | None = None
        self._latest_ns: int | None = None
        self._torch_enabled = False

    # ── Public API ───────────────────────────────────────────────────────────

    def ingest(self, sample: StreamSample) -> None:
        """Accumulate one sample; never computes anything."""
        ts = sample.timestamp_ns
        for buffer, value in (
            (self._face, sample.face_luma),
            (self._finger, sample.finger_luma),
            (self._motion, sample.face_motion_px),
            (self._saturation, sample.finger_saturation),
            (self._inertial, sample.inertial_g),
        ):
            if value is not None:
                buffer.add(value, ts)
        with self._lock:
            self._torch_enabled = sample.torch_enabled
            if self._latest_ns is None or ts > self._latest_ns:
                self._latest_ns = ts

    def emit(self, now_ns: int | None = None, force: bool = False) -> QualityState | None:
        """
        Compute a fresh :class:`QualityState` if the update interval has
        elapsed (or ``force``), else None.  ``now_ns`` defaults to the
        newest ingested timestamp.
        """
        with self._lock:
            if now_ns is None:
                now_ns = self._latest_ns
            if now_ns is None:
                return None
            now_ms = now_ns // 1_000_000
            if (not force and self._last_emit_ms is not None
                    and now_ms - self._last_emit_ms < self._interval_ms):
                return None
            torch_enabled = self._torch_enabled

        face_window = self._face.snapshot(self._window_ns)
        finger_window = self._finger.snapshot(self._window_ns)
        has_face = face_window is not None and len(face_window) >= self._min_samples
        has_finger = finger_window is not None and len(finger_window) >= self._min_samples
        if not has_face and not has_finger:
            return None

        motion = self._window_mean(self._motion)
        saturation = self._window_mean(self._saturation)
        inertial = self._window_mean(self._inertial)

        face = (self._indicator(ChannelRole.FACE, face_window, motion, None, inertial)
                if has_face else ChannelIndicator.inactive(ChannelRole.FACE))
        finger = (self._indicator(ChannelRole.FINGER, finger_window, None, saturation, inertial)
                  if has_finger else ChannelIndicator.inactive(ChannelRole.FINGER))

        hr_delta = None
        if face.hr_bpm is not None and finger.hr_bpm is not None:
            hr_delta = abs(face.hr_bpm - finger.hr_bpm)

        state = QualityState(
            face=face,
            finger=finger,
            hr_delta_bpm=hr_delta,
            tip=select_tip(face, finger, hr_delta, torch_enabled),
            updated_at_ms=int(now_ms),
        )
        with self._lock:
            self._last_emit_ms = now_ms
            self._last_state = state
        logger.debug("Quality: face=%s finger=%s tip=%s", face.status.value, finger.status.value, state.tip)
        return state

    @property
    def last_state(self) -> QualityState | None:
        with self._lock:
            return self._last_state

    def debug_stats(self) -> dict:
        last = self.last_state
        return {
            "face_samples": self._face.size(),
            "finger_samples": self._finger.size(),
            "last_face_snr_db": last.face.snr_db if last else None,
            "last_finger_snr_db": last.finger.snr_db if last else None,
        }

    def reset(self) -> None:
        for buffer in (self._face, self._finger, self._motion, self._saturation, self._inertial):
            buffer.reset()
        with self._lock:
            self._last_emit_ms = None
            self._last_state = None
            self._latest_ns = None
            self._torch_enabled = False

    # ── Private ──────────────────────────────────────────────────────────────

    def _window_mean(self, buffer: RingBuffer) -> float | None:
        window = buffer.snapshot(self._window_ns)
        if window is None or len(window) == 0:
            return None
        return float(window.values.mean())

    def _indicator(
        self,
        role: ChannelRole,
        window: SignalWindow,
        motion: float | None,
        saturation: float | None,
        inertial: float | None,
    ) -> ChannelIndicator:
        fs = window.sample_rate_hz
        db = hr = None
        if fs > _MIN_FS_HZ:
            chain = ConditioningChain(fs, detrend=DetrendMethod.MOVING_AVERAGE, detrend_window=max(3, int(fs)))
            conditioned = chain.process(window.values)
            db = snr_db(conditioned.filtered, conditioned.residual)
            hr_result = estimate_hr(conditioned.filtered, fs)
            hr = hr_result["hr_bpm"] if hr_result["is_plausible"] else None

        if role is ChannelRole.FACE:
            status, diagnostics = evaluate_face_status(db, motion, inertial, hr)
        else:
            status, diagnostics = evaluate_finger_status(db, saturation, inertial, hr)

        return ChannelIndicator(
            role=role,
            status=status,
            snr_db=db,
            saturation=saturation,
            motion_px=motion,
            inertial_g=inertial,
            hr_bpm=hr,
            ac_dc_ratio=ac_dc_ratio(window.values),
            sparkline=window.normalized(),
            diagnostics=diagnostics,
        )


# ── Status rules ─────────────────────────────────────────────────────────────

def ac_dc_ratio(values: np.ndarray) -> float | None:
    if len(values) == 0:
        return None
    dc = abs(float(values.mean()))
    if dc < 1e-3:
        return None
    return float(values.std()) / dc


def evaluate_face_status(
    snr: float | None,
    motion: float | None,
    inertial: float | None,
    hr: float | None,
) -> tuple[QualityStatus, list[str]]:
    diagnostics: list[str] = []
    status = QualityStatus.GREEN
    if snr is None or snr < 3.0:
        return QualityStatus.RED, ["Face SNR < 3 dB"]
    if snr < 6.0:
        diagnostics.append("Face SNR < 6 dB")
        status = QualityStatus.YELLOW

    if motion is not None:
        if motion > 1.0:
            return QualityStatus.RED, diagnostics + ["Face motion > 1 px/frame"]
        if motion > 0.5:
            diagnostics.append("Face motion > 0.5 px/frame")
            status = status.degrade(QualityStatus.YELLOW)
    if inertial is not None and inertial > 0.05:
        diagnostics.append("High device motion")
        status = status.degrade(QualityStatus.YELLOW)
    if hr is None:
        diagnostics.append("Face HR unresolved")
        status = status.degrade(QualityStatus.YELLOW)
    return status, diagnostics


def evaluate_finger_status(
    snr: float | None,
    saturation: float | None,
    inertial: float | None,
    hr: float | None,
) -> tuple[QualityStatus, list[str]]:
    diagnostics: list[str] = []
    status = QualityStatus.GREEN
    if snr is None or snr < 4.0:
        return QualityStatus.RED, ["Finger SNR < 4 dB"]
    if snr < 10.0:
        diagnostics.append("Finger SNR < 10 dB")
        status = QualityStatus.YELLOW

    if saturation is not None:
        if saturation > 0.15:
            return QualityStatus.RED, diagnostics + ["Saturation > 15%"]
        if saturation > 0.05:
            diagnostics.append("Saturation > 5%")
            status = status.degrade(QualityStatus.YELLOW)
    if inertial is not None and inertial > 0.05:
        diagnostics.append("High device motion")
        status = status.degrade(QualityStatus.YELLOW)
    if hr is None:
        diagnostics.append("Finger HR unresolved")
        status = status.degrade(QualityStatus.YELLOW)
    return status, diagnostics


def select_tip(
    face: ChannelIndicator,
    finger: ChannelIndicator,
    hr_delta_bpm: float | None,
    torch_enabled: bool,
) -> str | None:
    if finger.saturation is not None and finger.saturation > 0.05:
        return "Reduce finger pressure slightly"
    if finger.active and (finger.snr_db is None or finger.snr_db < 8.0):
        return "Increase ambient light" if torch_enabled else "Enable torch for finger camera"
    if face.motion_px is not None and face.motion_px > 0.5:
        return "Hold head steady"
    if hr_delta_bpm is not None and hr_delta_bpm > 5.0:
        return "Stay still until both signals align"
    return None
