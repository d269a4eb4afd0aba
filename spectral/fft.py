"""
spectral/fft.py — Radix-2 FFT and magnitude spectrum
=====================================================
Iterative Cooley-Tukey: bit-reversal permutation followed by log2(N)
butterfly passes, each pass vectorised over all butterflies of that
stage.  Only power-of-two lengths are accepted; padding is the caller's
job (``magnitude_spectrum`` does it for you).
"""

import numpy as np


def is_power_of_two(n: int) -> bool:
    return n > 0 and (n & (n - 1)) == 0


def next_power_of_two(n: int) -> int:
    return 1 if n <= 1 else 1 << (n - 1).bit_length()


def _bit_reverse_indices(n: int) -> np.ndarray:
    bits = n.bit_length() - 1
    idx = np.arange(n)
    rev = np.zeros(n, dtype=np.int64)
    for _ in range(bits):
        rev = (rev << 1) | (idx & 1)
        idx >>= 1
    return rev


def fft(signal: np.ndarray) -> np.ndarray:
    """
    Complex DFT of a power-of-two-length array.

    Raises
    ------
    ValueError
        If ``len(signal)`` is not a power of two.
    """
    x = np.asarray(signal, dtype=np.complex128)
    n = len(x)
    if not is_power_of_two(n):
        raise ValueError(f"FFT length must be a power of two, got {n}.")

    out = x[_bit_reverse_indices(n)]
    size = 2
    while size <= n:
        half = size // 2
        twiddle = np.exp(-2j * np.pi * np.arange(half) / size)
        blocks = out.reshape(-1, size)
        even = blocks[:, :half].copy()
        odd = blocks[:, half:] * twiddle
        blocks[:, :half] = even + odd
        blocks[:, half:] = even - odd
        size *= 2
    return out


def magnitude_spectrum(signal: np.ndarray, fs: float) -> tuple[np.ndarray, np.ndarray]:
    """
    One-sided magnitude spectrum of a Hann-windowed, zero-padded signal.

    Parameters
    ----------
    signal : ndarray, shape (N,)
    fs     : float   Sampling frequency (Hz).

    Returns
    -------
    freqs      : ndarray, shape (M/2 + 1,)   Bin centres in Hz.
    magnitudes : ndarray, shape (M/2 + 1,)   |X[k]|, M = next power of two ≥ N.
    """
    x = np.asarray(signal, dtype=np.float64)
    n = len(x)
    if n < 2 or fs <= 0:
        return np.empty(0), np.empty(0)
    n_fft = next_power_of_two(n)
    padded = np.zeros(n_fft)
    padded[:n] = x * np.hanning(n)
    spectrum = fft(padded)[: n_fft // 2 + 1]
    freqs = np.arange(n_fft // 2 + 1) * fs / n_fft
    return freqs, np.abs(spectrum)
