import numpy as np
import pytest

from dsp.conditioning import ConditioningChain, DetrendMethod
from dsp.filters import (
    bandpass_filter,
    butterworth_q_factors,
    design_bandpass_sos,
    detrend_iir,
    detrend_moving_average,
    zscore_normalize,
)
from dsp.wavelet import ThresholdMode, WaveletConfig, median_absolute_deviation, wavelet_denoise

FS = 100.0
T = np.arange(3000) / FS


def _amplitude(x: np.ndarray) -> float:
    core = x[500:-500]
    return float(np.sqrt(2.0) * core.std())


def test_butterworth_q_factors():
    assert butterworth_q_factors(2) == pytest.approx([0.7071], abs=1e-4)
    assert butterworth_q_factors(4) == pytest.approx([0.5412, 1.3066], abs=1e-4)
    with pytest.raises(ValueError):
        butterworth_q_factors(3)


def test_bandpass_sos_shape():
    assert design_bandpass_sos(FS, order=4).shape == (4, 6)


def test_bandpass_passes_pulse_band_and_rejects_outside():
    assert _amplitude(bandpass_filter(np.sin(2 * np.pi * 1.5 * T), FS)) > 0.9
    assert _amplitude(bandpass_filter(np.sin(2 * np.pi * 12.0 * T), FS)) < 0.05
    assert _amplitude(bandpass_filter(np.sin(2 * np.pi * 0.05 * T), FS)) < 0.05


def test_zero_phase_filter_has_no_delay():
    x = np.sin(2 * np.pi * 1.2 * T)
    y = bandpass_filter(x, FS, zero_phase=True)
    assert np.corrcoef(x[500:-500], y[500:-500])[0, 1] > 0.99


def test_high_cutoff_is_clamped_below_nyquist():
    with pytest.warns(UserWarning):
        sos = design_bandpass_sos(6.0, 0.7, 4.0)
    assert np.isfinite(sos).all()


def test_invalid_band_raises():
    with pytest.raises(ValueError):
        design_bandpass_sos(FS, 3.0, 2.0)


def test_short_signal_falls_back_to_causal_filter():
    y = bandpass_filter(np.ones(10), FS)
    assert len(y) == 10


def test_detrend_removes_offset():
    x = 50.0 + np.sin(2 * np.pi * 1.2 * T)
    assert abs(detrend_moving_average(x).mean()) < 0.1
    iir = detrend_iir(x, FS)
    assert iir[0] == 0.0
    assert abs(iir[500:].mean()) < 0.1
    assert np.allclose(detrend_iir(np.full(50, 3.0), FS), 0.0)
    assert np.allclose(detrend_moving_average(np.full(50, 3.0)), 0.0)


def test_zscore():
    z = zscore_normalize(np.array([1.0, 2.0, 3.0, 4.0]))
    assert z.mean() == pytest.approx(0.0)
    assert z.std() == pytest.approx(1.0)
    assert np.all(zscore_normalize(np.full(20, 7.0)) == 0.0)


@pytest.mark.parametrize("n", [1024, 1000])
@pytest.mark.parametrize("mode", list(ThresholdMode))
def test_wavelet_round_trip_at_zero_scale(n, mode):
    x = np.random.default_rng(3).normal(size=n)
    y = wavelet_denoise(x, WaveletConfig(mode=mode, threshold_scale=0.0))
    assert np.allclose(x, y, atol=1e-12)


def test_wavelet_reduces_noise(rng):
    clean = np.sin(2 * np.pi * 1.2 * T)
    noisy = clean + rng.normal(0.0, 0.3, len(T))
    denoised = wavelet_denoise(noisy, WaveletConfig(levels=2))
    assert len(denoised) == len(noisy)
    assert np.std(denoised - clean) < np.std(noisy - clean)


def test_median_absolute_deviation_is_centred():
    assert median_absolute_deviation(np.array([1.0, 2.0, 3.0, 4.0, 100.0])) == pytest.approx(1.0)
    # an offset band must not inflate the noise estimate
    assert median_absolute_deviation(np.array([10.0, 11.0, 12.0])) == pytest.approx(1.0)
    assert median_absolute_deviation(np.array([])) == 0.0


def test_wavelet_short_input_unchanged():
    assert wavelet_denoise(np.array([4.2])).tolist() == [4.2]


def test_conditioning_chain_outputs():
    x = 120.0 + np.sin(2 * np.pi * 1.2 * T) + 0.3 * np.sin(2 * np.pi * 0.05 * T)
    for method in DetrendMethod:
        ch = ConditioningChain(FS, detrend=method).process(x)
        assert len(ch) == len(x)
        assert not ch.is_degenerate
        assert ch.values.mean() == pytest.approx(0.0, abs=1e-9)
        assert ch.values.std() == pytest.approx(1.0)
        assert ch.residual.shape == ch.filtered.shape


def test_conditioning_empty_and_constant():
    chain = ConditioningChain(FS)
    assert chain.process(np.array([])).is_degenerate
    flat = chain.process(np.full(500, 10.0))
    assert flat.is_degenerate
    assert np.all(flat.values == 0.0)


def test_conditioning_with_wavelet():
    x = np.sin(2 * np.pi * 1.2 * T)
    a, b = ConditioningChain(FS, wavelet=WaveletConfig()).process_pair(x, x)
    assert np.allclose(a.values, b.values)


def test_conditioning_rejects_bad_rate():
    with pytest.raises(ValueError):
        ConditioningChain(0.0)
