"""Fade-out detection from a backward RMS envelope scan."""
from __future__ import annotations

import logging

import numpy as np

from abloop.dsp.mono import SILENCE_FLOOR, effective_end
from abloop.types import AnalysisSettings, FadeOutInfo

logger = logging.getLogger(__name__)

MIN_CONTENT_SECONDS = 5.0
FADE_LOOKBACK_SECONDS = 60.0
# Trailing-silence floor relative to the configured fade threshold.
FADE_FLOOR_RATIO = 0.1
JITTER_TOLERANCE = 0.10
ONSET_REFERENCE_PERCENTILE = 90.0
ONSET_PEAK_TOLERANCE = 0.02
MIN_DECAY_RATIO = 2.0
FADE_CONFIDENCE = 0.8


def backward_window_rms(x: np.ndarray, end: int, window: int, n_windows: int) -> np.ndarray:
    """
    RMS of ``n_windows`` contiguous windows ending at ``end``.

    Index 0 is the window immediately before ``end``; higher indices walk
    backward in time.
    """
    if n_windows <= 0 or window <= 0:
        return np.zeros(0, dtype=np.float64)
    start = end - n_windows * window
    if start < 0:
        raise ValueError("Windows extend before the start of the signal.")
    seg = np.asarray(x[start:end], dtype=np.float64).reshape(n_windows, window)
    forward = np.sqrt(np.mean(seg ** 2, axis=1))
    return forward[::-1].copy()


def anchored_run_length(rms_back: np.ndarray, tolerance: float = JITTER_TOLERANCE) -> int:
    """
    Length of the rising run that starts at the last window.

    Walking from the end toward the start, each earlier window may be at most
    ``tolerance`` quieter than the window after it.
    """
    if rms_back.size == 0:
        return 0
    floor = 1.0 - tolerance
    for i in range(1, rms_back.size):
        if rms_back[i] < rms_back[i - 1] * floor:
            return i
    return int(rms_back.size)


def onset_window_index(run: np.ndarray, tolerance: float = ONSET_PEAK_TOLERANCE) -> int:
    """
    Window nearest the end whose RMS reaches the run's reference level.

    The reference level is the 90th percentile of the run, so a single loud
    window on the plateau before the fade does not drag the onset backward.
    """
    level = float(np.percentile(run, ONSET_REFERENCE_PERCENTILE))
    reached = np.flatnonzero(run >= level * (1.0 - tolerance))
    return int(reached[0])


def detect_fade_out(
    mono: np.ndarray,
    sample_rate: int,
    channels: int,
    settings: AnalysisSettings,
) -> FadeOutInfo | None:
    """
    Locate a decaying volume envelope at the end of the track.

    Args:
        mono: Mono signal.
        sample_rate: Sample rate in Hz.
        channels: Channel count of the interleaved source, used to map
            frame indices back to interleaved sample indices.
        settings: Analysis settings carrying the fade thresholds.

    Returns:
        FadeOutInfo in interleaved sample space, or None when no fade passes
        the duration, loudness and decay gates.
    """
    x = np.asarray(mono, dtype=np.float64)
    if sample_rate <= 0:
        raise ValueError("sample_rate must be positive.")
    floor = max(SILENCE_FLOOR, float(settings.fade_out_threshold_volume) * FADE_FLOOR_RATIO)
    end = effective_end(x, floor)
    if end < MIN_CONTENT_SECONDS * sample_rate:
        logger.debug("fade-out: audible content too short (%d samples)", end)
        return None

    window = max(1, int(round(sample_rate * settings.fade_out_window_size_ms / 1000.0)))
    lookback_start = max(0, end - int(FADE_LOOKBACK_SECONDS * sample_rate))
    n_windows = (end - lookback_start) // window
    if n_windows < 2:
        return None

    rms_back = backward_window_rms(x, end, window, n_windows)
    run = rms_back[:anchored_run_length(rms_back)]
    onset_idx = onset_window_index(run)
    onset = end - (onset_idx + 1) * window
    onset_rms = float(rms_back[onset_idx])
    final_rms = float(rms_back[0])
    duration = end - onset

    min_duration = settings.min_fade_out_duration_ms * sample_rate / 1000.0
    if duration < min_duration:
        logger.debug("fade-out: run of %d samples below minimum duration", duration)
        return None
    if onset_rms < settings.fade_out_threshold_volume:
        logger.debug("fade-out: onset RMS %.4f below threshold", onset_rms)
        return None
    if onset_rms < MIN_DECAY_RATIO * final_rms:
        logger.debug("fade-out: decay %.4f -> %.4f under 6 dB", onset_rms, final_rms)
        return None

    logger.debug("fade-out: onset=%d duration=%d", onset, duration)
    return FadeOutInfo(
        start_sample=int(onset) * channels,
        duration_samples=int(duration) * channels,
        confidence=FADE_CONFIDENCE,
    )
