"""Real-input FFT primitives and frequency-domain cross-correlation."""
from __future__ import annotations
import numpy as np


def next_pow2(n: int) -> int:
    """Smallest power of two >= n (1 for n <= 1)."""
    n = int(n)
    if n <= 1:
        return 1
    return 1 << (n - 1).bit_length()


def transform(x: np.ndarray, n: int) -> np.ndarray:
    """Forward real FFT of ``x`` zero-padded to ``n`` points."""
    return np.fft.rfft(np.asarray(x, dtype=np.float64), n=n)


def inverse(spectrum: np.ndarray, n: int) -> np.ndarray:
    """Inverse of :func:`transform` back to ``n`` real samples."""
    return np.fft.irfft(spectrum, n=n)


def cross_correlate(signal: np.ndarray, query: np.ndarray) -> np.ndarray:
    """
    Un-normalized cross-correlation of ``query`` against ``signal``.

    Computed as the linear convolution of the signal with the time-reversed
    query, zero-padded to the next power of two >= len(signal) + len(query).

    Args:
        signal: 1D signal to search in.
        query: 1D pattern to search for.

    Returns:
        Array of length len(signal) + len(query) - 1. Index ``k`` holds the
        dot product of the query with ``signal[k - (len(query) - 1):]``.
    """
    s = np.asarray(signal, dtype=np.float64)
    q = np.asarray(query, dtype=np.float64)
    if s.ndim != 1 or q.ndim != 1:
        raise ValueError("cross_correlate expects 1D inputs.")
    if s.size == 0 or q.size == 0:
        return np.zeros(0, dtype=np.float64)
    n_out = s.size + q.size - 1
    nfft = next_pow2(s.size + q.size)
    spec = transform(s, nfft) * transform(q[::-1], nfft)
    return inverse(spec, nfft)[:n_out]
