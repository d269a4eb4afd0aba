"""
simulation/synthetic.py — Synthetic dual-site PPG sessions
===========================================================
Generates a plausible face + fingertip recording with a known transit
time, for demos, the API and tests.

Pulse model
-----------
Each beat is the sum of two Gaussians in beat-phase φ ∈ [0, 1):
a systolic wave at φ = 0.25 and a smaller dicrotic wave at φ = 0.55.
Heart rate is modulated by respiration (0.25 Hz), and the beat phase is
integrated analytically:

    f(t) = f₀ + Δf·sin(2π·f_r·t)
    φ(t) = f₀·t − Δf / (2π·f_r) · cos(2π·f_r·t)

The fingertip sees the same pulse ``ptt_ms`` later: b(t) = pulse(φ(t − PTT)).

Acquisition model
-----------------
* Each camera samples at its own nominal rate with Gaussian jitter.
* Frames can be dropped at random.
* Channel B's clock can run fast/slow by ``drift_ms_per_s``.
* An optional motion burst corrupts the face channel and is reflected
  in the face-motion auxiliary metric.

Everything is driven by ``np.random.default_rng(seed)`` so a given
config always yields the same session.
"""

from dataclasses import dataclass

import numpy as np

from ptt.pipeline import AuxiliaryMetric, AuxiliaryMetrics
from sync.timestamp_sync import RawSeriesBuffer
from utils.logger import get_logger

logger = get_logger("simulation")

RESPIRATION_HZ = 0.25
AUX_RATE_HZ = 10.0
START_NS = 1_000_000_000


@dataclass(frozen=True)
class SimulationConfig:
    duration_s: float = 30.0
    hr_bpm: float = 72.0
    hrv_bpm: float = 3.0                # respiratory HR modulation amplitude
    ptt_ms: float = 100.0
    rate_a_hz: float = 30.0             # face camera
    rate_b_hz: float = 30.0             # finger camera
    jitter_ms: float = 1.0
    drop_probability: float = 0.0
    drift_ms_per_s: float = 0.0         # channel B clock error
    noise_a: float = 0.05               # fraction of pulse amplitude
    noise_b: float = 0.02
    motion_burst: tuple[float, float] | None = None    # (start_s, length_s)
    seed: int = 42


@dataclass(frozen=True)
class SimulatedSession:
    series: RawSeriesBuffer
    aux: AuxiliaryMetrics
    config: SimulationConfig


def pulse_shape(phase: np.ndarray) -> np.ndarray:
    """Systolic + dicrotic Gaussian pair, peak ≈ 1, over fractional phase."""
    p = np.mod(phase, 1.0)
    systolic = np.exp(-0.5 * ((p - 0.25) / 0.08) ** 2)
    dicrotic = 0.35 * np.exp(-0.5 * ((p - 0.55) / 0.10) ** 2)
    return systolic + dicrotic


def beat_phase(t: np.ndarray, hr_bpm: float, hrv_bpm: float) -> np.ndarray:
    f0 = hr_bpm / 60.0
    df = hrv_bpm / 60.0
    return f0 * t - df / (2.0 * np.pi * RESPIRATION_HZ) * np.cos(2.0 * np.pi * RESPIRATION_HZ * t)


def frame_times(duration_s: float, rate_hz: float, jitter_ms: float,
                drop_probability: float, rng: np.random.Generator) -> np.ndarray:
    """True capture instants in seconds: jittered, strictly increasing, some dropped."""
    n = int(duration_s * rate_hz) + 1
    t = np.arange(n) / rate_hz
    if jitter_ms > 0:
        # Bounded so frames never swap order.
        limit = 0.4 / rate_hz
        t = t + np.clip(rng.normal(0.0, jitter_ms / 1000.0, n), -limit, limit)
    t = np.clip(t, 0.0, duration_s)
    if drop_probability > 0:
        keep = rng.random(n) >= drop_probability
        keep[[0, -1]] = True
        t = t[keep]
    return t


def simulate_session(config: SimulationConfig = SimulationConfig()) -> SimulatedSession:
    """Build a full synthetic session (both streams + auxiliary metrics)."""
    rng = np.random.default_rng(config.seed)

    t_a = frame_times(config.duration_s, config.rate_a_hz, config.jitter_ms, config.drop_probability, rng)
    t_b = frame_times(config.duration_s, config.rate_b_hz, config.jitter_ms, config.drop_probability, rng)

    ptt_s = config.ptt_ms / 1000.0
    face = pulse_shape(beat_phase(t_a, config.hr_bpm, config.hrv_bpm))
    finger = pulse_shape(beat_phase(t_b - ptt_s, config.hr_bpm, config.hrv_bpm))

    # Slow baseline wander (lighting / perfusion), then sensor noise.
    face = face + 0.3 * np.sin(2 * np.pi * 0.05 * t_a) + rng.normal(0, config.noise_a, len(t_a))
    finger = finger + 0.2 * np.sin(2 * np.pi * 0.03 * t_b + 1.0) + rng.normal(0, config.noise_b, len(t_b))

    # Motion: a burst corrupts the face channel and shows up in the metric.
    t_aux = np.arange(0.0, config.duration_s, 1.0 / AUX_RATE_HZ)
    motion = np.abs(rng.normal(0.2, 0.05, len(t_aux)))
    if config.motion_burst is not None:
        start, length = config.motion_burst
        burst_a = (t_a >= start) & (t_a < start + length)
        face[burst_a] += rng.normal(0.0, 3.0, burst_a.sum()) + 4.0 * np.sin(2 * np.pi * 0.8 * t_a[burst_a])
        motion[(t_aux >= start) & (t_aux < start + length)] += 3.0
    inertial = np.abs(rng.normal(0.02, 0.005, len(t_aux)))

    # Brightness scale: dim face signal, bright torch-lit finger.
    face_luma = 120.0 + 1.5 * face
    finger_luma = 200.0 + 12.0 * finger

    ts_a = START_NS + np.round(t_a * 1e9).astype(np.int64)
    clock_b = t_b * (1.0 + config.drift_ms_per_s / 1000.0)
    ts_b = START_NS + np.round(clock_b * 1e9).astype(np.int64)
    ts_aux = START_NS + np.round(t_aux * 1e9).astype(np.int64)

    logger.info(
        "Simulated %.0f s session: HR %.0f BPM, PTT %.0f ms, A %d frames @ %.0f Hz, B %d frames @ %.0f Hz",
        config.duration_s, config.hr_bpm, config.ptt_ms, len(ts_a), config.rate_a_hz, len(ts_b), config.rate_b_hz,
    )
    return SimulatedSession(
        series=RawSeriesBuffer.from_arrays(ts_a, face_luma, ts_b, finger_luma),
        aux=AuxiliaryMetrics(
            motion_px=AuxiliaryMetric(values=motion, timestamps_ns=ts_aux),
            inertial_g=AuxiliaryMetric(values=inertial, timestamps_ns=ts_aux),
        ),
        config=config,
    )
