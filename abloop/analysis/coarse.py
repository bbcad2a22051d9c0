"""Coarse repeat search via energy-normalized spectral cross-correlation."""
from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from abloop.dsp.fft import cross_correlate
from abloop.dsp.mono import EPS, box_downsample, downsample_factor

QUERY_DURATION_SEC = 15.0
# Regions shorter than this many query lengths get a shorter query.
QUERY_REGION_DIVISOR = 3
COARSE_SAMPLE_RATE = 4000
SELF_MATCH_MARGIN_SEC = 0.5
COARSE_MIN_CORRELATION = 0.3


@dataclass(frozen=True)
class CoarseMatch:
    position: int
    correlation: float
    factor: int


def sliding_energy(x: np.ndarray, width: int) -> np.ndarray:
    """
    Sum of squares of every ``width``-long window, indexed by window start.

    Running sums can drift slightly negative on silent stretches; those are
    clamped to zero.
    """
    x = np.asarray(x, dtype=np.float64)
    if width <= 0 or x.size < width:
        return np.zeros(0, dtype=np.float64)
    cs = np.concatenate(([0.0], np.cumsum(x * x)))
    energy = cs[width:] - cs[:-width]
    return np.maximum(energy, 0.0)


def find_coarse_match(
    signal: np.ndarray,
    query: np.ndarray,
    *,
    exclude_from: int | None = None,
) -> tuple[int, float] | None:
    """
    Best energy-normalized correlation of ``query`` inside ``signal``.

    Args:
        signal: Signal to search.
        query: Pattern to locate.
        exclude_from: Candidate windows must end at or before this index.
            Used to keep the query from matching itself.

    Returns:
        (start, correlation) of the best lag, or None when no lag is valid.
    """
    s = np.asarray(signal, dtype=np.float64)
    q = np.asarray(query, dtype=np.float64)
    m = q.size
    if m == 0 or s.size < m:
        return None
    q_energy = float(np.sum(q * q))
    if q_energy < EPS:
        return None

    corr = cross_correlate(s, q)[m - 1:s.size]
    denom = np.sqrt(sliding_energy(s, m)) * np.sqrt(q_energy)
    valid = denom >= EPS
    if exclude_from is not None:
        valid[max(0, int(exclude_from) - m + 1):] = False
    if not np.any(valid):
        return None

    norm = np.full(corr.shape, -np.inf, dtype=np.float64)
    norm[valid] = np.clip(corr[valid] / denom[valid], -1.0, 1.0)
    best = int(np.argmax(norm))
    return best, float(norm[best])


def coarse_search(
    mono: np.ndarray,
    query_start: int,
    query_len: int,
    sample_rate: int,
    *,
    target_rate: int = COARSE_SAMPLE_RATE,
    margin_sec: float = SELF_MATCH_MARGIN_SEC,
) -> CoarseMatch | None:
    """
    Locate an approximate earlier repeat of ``mono[query_start:query_start + query_len]``.

    The searchable region is ``mono[:query_start + query_len]``; both it and
    the query are box-downsampled toward ``target_rate`` before correlating.
    The returned position is projected back to native samples.
    """
    x = np.asarray(mono, dtype=np.float64)
    factor = downsample_factor(sample_rate, target_rate)
    signal_ds = box_downsample(x[:query_start + query_len], factor)
    query_ds = box_downsample(x[query_start:query_start + query_len], factor)
    margin = int(margin_sec * sample_rate)
    exclude_from = max(0, query_start - margin) // factor
    found = find_coarse_match(signal_ds, query_ds, exclude_from=exclude_from)
    if found is None:
        return None
    lag, corr = found
    return CoarseMatch(position=lag * factor, correlation=corr, factor=factor)
