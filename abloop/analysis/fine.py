"""Normalized cross-correlation refinement around a coarse estimate."""
from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from abloop.dsp.mono import EPS, box_downsample, downsample_factor

REFINE_RADIUS_SEC = 2.0
MEDIUM_SAMPLE_RATE = 2000


@dataclass(frozen=True)
class FineMatch:
    position: int
    correlation: float


def ncc(a: np.ndarray, b: np.ndarray) -> float:
    """Normalized cross-correlation of two equal-length windows, in [-1, 1]."""
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    if a.size == 0 or a.shape != b.shape:
        return 0.0
    ac = a - np.mean(a)
    bc = b - np.mean(b)
    na = float(np.sqrt(np.sum(ac * ac)))
    nb = float(np.sqrt(np.sum(bc * bc)))
    if na < EPS or nb < EPS:
        return 0.0
    return float(np.clip(np.sum(ac * bc) / (na * nb), -1.0, 1.0))


def ncc_profile(query: np.ndarray, search: np.ndarray) -> np.ndarray:
    """
    NCC of ``query`` at every offset of ``search``.

    Offsets whose candidate window is flat get -inf so they never win.
    """
    q = np.asarray(query, dtype=np.float64)
    s = np.asarray(search, dtype=np.float64)
    n = q.size
    if n == 0 or s.size < n:
        return np.zeros(0, dtype=np.float64)
    qc = q - np.mean(q)
    q_norm = float(np.sqrt(np.sum(qc * qc)))
    out = np.full(s.size - n + 1, -np.inf, dtype=np.float64)
    if q_norm < EPS:
        return out

    # NCC is offset invariant; removing the global mean keeps the running sums small.
    s = s - np.mean(s)
    numer = np.correlate(s, qc, mode="valid")
    cs = np.concatenate(([0.0], np.cumsum(s)))
    cs2 = np.concatenate(([0.0], np.cumsum(s * s)))
    sums = cs[n:] - cs[:-n]
    sq = cs2[n:] - cs2[:-n]
    c_norm = np.sqrt(np.maximum(sq - sums * sums / n, 0.0))
    valid = c_norm >= EPS
    out[valid] = np.clip(numer[valid] / (q_norm * c_norm[valid]), -1.0, 1.0)
    return out


def best_ncc_match(query: np.ndarray, search: np.ndarray) -> tuple[int, float] | None:
    """Offset and value of the highest NCC, or None if every candidate is degenerate."""
    profile = ncc_profile(query, search)
    if profile.size == 0 or not np.any(np.isfinite(profile)):
        return None
    best = int(np.argmax(profile))
    return best, float(profile[best])


def refine_match(
    mono: np.ndarray,
    query_start: int,
    query_len: int,
    estimate: int,
    sample_rate: int,
    *,
    max_start: int,
    radius_sec: float = REFINE_RADIUS_SEC,
    medium_rate: int | None = MEDIUM_SAMPLE_RATE,
) -> FineMatch | None:
    """
    Refine a coarse match position to sample precision.

    A medium-resolution NCC sweep covers ``estimate +/- radius_sec``; when that
    pass is decimated, a native-rate sweep then polishes within one medium
    step. Pass ``medium_rate=None`` to sweep the whole neighborhood natively.

    Args:
        mono: Mono signal.
        query_start: Start of the query window in ``mono``.
        query_len: Query length in samples.
        estimate: Coarse position estimate (native samples).
        sample_rate: Sample rate in Hz.
        max_start: Largest admissible candidate start.
        radius_sec: Half-width of the neighborhood in seconds.
        medium_rate: Target rate of the medium pass, or None for native.

    Returns:
        FineMatch with the best position and its NCC, or None when the
        neighborhood is empty or every candidate is flat.
    """
    x = np.asarray(mono, dtype=np.float64)
    radius = int(radius_sec * sample_rate)
    lo = max(0, int(estimate) - radius)
    hi = min(int(estimate) + radius, int(max_start))
    if hi <= lo:
        return None

    query = x[query_start:query_start + query_len]
    step = downsample_factor(sample_rate, medium_rate) if medium_rate else 1
    medium = best_ncc_match(
        box_downsample(query, step),
        box_downsample(x[lo:hi + query_len], step),
    )
    if medium is None:
        return None
    position = min(lo + medium[0] * step, hi)
    correlation = medium[1]

    if step > 1:
        p_lo = max(lo, position - step)
        p_hi = min(hi, position + step)
        native = best_ncc_match(query, x[p_lo:p_hi + query_len])
        if native is not None:
            position = p_lo + native[0]
            correlation = native[1]
    return FineMatch(position=int(position), correlation=float(correlation))
