"""Mono reduction, silence trimming and box-filter resampling."""
from __future__ import annotations

import numpy as np

SILENCE_FLOOR = 0.0005
EPS = 1e-9


def to_mono(samples: np.ndarray, channels: int) -> np.ndarray:
    """
    Average each interleaved channel group into one mono sample.

    Args:
        samples: Interleaved samples (1D array).
        channels: Number of interleaved channels (>= 1).

    Returns:
        Mono float64 signal of length len(samples) // channels.
    """
    x = np.asarray(samples, dtype=np.float64)
    if x.ndim != 1:
        raise ValueError("to_mono expects a 1D interleaved buffer.")
    channels = int(channels)
    if channels < 1:
        raise ValueError("channels must be >= 1.")
    if x.size % channels != 0:
        raise ValueError("Interleaved length must be a multiple of channels.")
    if channels == 1:
        return x.copy()
    return np.mean(x.reshape(-1, channels), axis=1)


def effective_end(mono: np.ndarray, floor: float = SILENCE_FLOOR) -> int:
    """
    Return one past the last sample whose magnitude exceeds ``floor``.

    A buffer with no sample above the floor (including an empty one) has an
    effective end of 0.
    """
    x = np.asarray(mono)
    loud = np.flatnonzero(np.abs(x) > floor)
    if loud.size == 0:
        return 0
    return int(loud[-1]) + 1


def downsample_factor(sample_rate: int, target_rate: int) -> int:
    """Integer decimation factor bringing ``sample_rate`` near ``target_rate``."""
    if target_rate <= 0:
        raise ValueError("target_rate must be positive.")
    return max(1, int(sample_rate) // int(target_rate))


def box_downsample(x: np.ndarray, factor: int) -> np.ndarray:
    """Block-average ``factor`` samples at a time; a short tail block is averaged over its length."""
    x = np.asarray(x, dtype=np.float64)
    if factor <= 1:
        return x.copy()
    n_full = x.size // factor
    head = x[:n_full * factor].reshape(n_full, factor).mean(axis=1)
    if x.size == n_full * factor:
        return head
    tail = x[n_full * factor:]
    return np.concatenate([head, [float(np.mean(tail))]])


def rms(x: np.ndarray) -> float:
    x = np.asarray(x, dtype=np.float64)
    if x.size == 0:
        return 0.0
    return float(np.sqrt(np.sum(x * x) / (x.size + EPS)))
