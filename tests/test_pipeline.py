import numpy as np
import pytest

from dsp.wavelet import WaveletConfig
from ptt.pipeline import AuxiliaryMetric, AuxiliaryMetrics, PttPipeline
from simulation.synthetic import SimulationConfig, frame_times, pulse_shape, simulate_session
from sync.timestamp_sync import RawSeriesBuffer

from conftest import sine_streams

STAGES = {"sync", "mask", "condition", "spectral", "quality", "lag", "consensus", "total"}


def test_sine_end_to_end(sine_series):
    result = PttPipeline().process(sine_series)
    assert result.is_valid
    assert result.ptt.lag_ms == pytest.approx(100.0, abs=5.0)
    assert result.ptt.reportable
    assert result.ptt.confidence >= 0.6
    assert result.lag.correlation > 0.95
    assert result.stability.is_stable
    assert result.foot.is_valid
    assert result.drift.is_acceptable
    assert set(result.timings_ms) == STAGES
    assert result.heart_rate_a["hr_bpm"] == pytest.approx(72.0, abs=3.0)


def test_empty_streams_give_invalid_result():
    result = PttPipeline().process(RawSeriesBuffer())
    assert not result.is_valid
    assert not result.ptt.reportable
    assert result.ptt.message
    assert result.ptt.guidance


def test_non_overlapping_streams_give_invalid_result():
    ts, face, finger = sine_streams(duration_s=5.0)
    later = ts + 60_000_000_000
    result = PttPipeline().process(RawSeriesBuffer.from_arrays(ts, face, later, finger))
    assert not result.is_valid
    assert "overlap" in result.ptt.message


def test_uncorrelated_noise_is_not_reportable(rng):
    ts, _, _ = sine_streams()
    noise_a = 100.0 + rng.normal(size=len(ts))
    noise_b = 200.0 + rng.normal(size=len(ts))
    result = PttPipeline().process(RawSeriesBuffer.from_arrays(ts, noise_a, ts, noise_b))
    assert result.is_valid
    assert not result.ptt.reportable
    assert result.ptt.confidence < 0.3
    assert result.ptt.guidance


def test_bad_auxiliary_metric_is_reported_not_raised(sine_series):
    aux = AuxiliaryMetrics(motion_px=AuxiliaryMetric(values=np.ones(5), timestamps_ns=np.arange(3)))
    result = PttPipeline().process(sine_series, aux)
    assert not result.is_valid
    assert "Processing error" in result.ptt.message


def test_wavelet_pipeline_stays_valid(sine_series):
    # Haar thresholding is shift-variant and biases timing on a clean sine
    result = PttPipeline(wavelet=WaveletConfig()).process(sine_series)
    assert result.is_valid
    assert result.lag.is_valid
    assert result.lag.lag_ms == pytest.approx(100.0, abs=30.0)
    assert 30.0 <= result.ptt.lag_ms <= 200.0


def test_lossless_wavelet_matches_plain_pipeline(sine_series):
    plain = PttPipeline().process(sine_series)
    lossless = PttPipeline(wavelet=WaveletConfig(threshold_scale=0.0)).process(sine_series)
    assert lossless.ptt.lag_ms == pytest.approx(plain.ptt.lag_ms, abs=1e-6)
    assert lossless.ptt.reportable


@pytest.mark.parametrize("seed", range(4))
def test_noisy_streams_do_not_jump_a_beat(seed):
    ts, face, finger = sine_streams()
    rng = np.random.default_rng(seed)
    face = face + rng.normal(0.0, 1.0, len(ts))
    finger = finger + rng.normal(0.0, 1.0, len(ts))
    result = PttPipeline().process(RawSeriesBuffer.from_arrays(ts, face, ts, finger))
    assert result.is_valid
    assert result.lag.lag_ms == pytest.approx(100.0, abs=30.0)


def test_simulated_session_recovers_ptt():
    session = simulate_session(SimulationConfig(ptt_ms=120.0, rate_a_hz=30.0, rate_b_hz=60.0))
    result = PttPipeline().process(session.series, session.aux)
    assert result.is_valid
    assert result.ptt.lag_ms == pytest.approx(120.0, abs=10.0)
    assert result.ptt.reportable
    assert result.quality_a.motion_score == 100.0
    assert result.quality_b.motion_score is None
    assert result.masked_percent == 0.0


def test_motion_burst_is_masked():
    session = simulate_session(SimulationConfig(motion_burst=(10.0, 3.0)))
    result = PttPipeline().process(session.series, session.aux)
    assert result.bad_windows
    assert all("motion" in w.reason for w in result.bad_windows)
    assert result.masked_percent > 5.0
    assert result.segment.duration_s > 15.0
    assert result.ptt.lag_ms == pytest.approx(100.0, abs=10.0)


def test_masking_can_leave_nothing():
    session = simulate_session(SimulationConfig(duration_s=12.0, motion_burst=(2.0, 8.0)))
    result = PttPipeline().process(session.series, session.aux)
    assert not result.is_valid
    assert result.segment is None
    assert "clean segment" in result.ptt.message


def test_drifting_clock_is_flagged():
    session = simulate_session(SimulationConfig(drift_ms_per_s=8.0))
    result = PttPipeline().process(session.series, session.aux)
    assert not result.drift.is_acceptable


def test_simulation_is_deterministic():
    a = simulate_session(SimulationConfig(seed=7)).series.arrays("A")
    b = simulate_session(SimulationConfig(seed=7)).series.arrays("A")
    assert np.array_equal(a[0], b[0]) and np.array_equal(a[1], b[1])


def test_simulation_helpers(rng):
    t = frame_times(10.0, 30.0, 1.0, 0.2, rng)
    assert np.all(np.diff(t) > 0)
    assert t[0] >= 0.0 and t[-1] <= 10.0
    assert len(t) < 301
    shape = pulse_shape(np.linspace(0.0, 1.0, 101))
    assert shape.max() == pytest.approx(1.0, abs=0.01)
    assert np.argmax(shape) == 25
