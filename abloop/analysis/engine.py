"""Analysis orchestrator: trims, detects the fade-out, searches the loop, reconciles."""
from __future__ import annotations

import logging
import threading
from typing import Callable

import numpy as np

from abloop.analysis.coarse import (
    COARSE_MIN_CORRELATION,
    QUERY_DURATION_SEC,
    QUERY_REGION_DIVISOR,
    SELF_MATCH_MARGIN_SEC,
    coarse_search,
)
from abloop.analysis.confidence import adjust_confidence, reconcile_with_fade_out
from abloop.analysis.fade import MIN_CONTENT_SECONDS, detect_fade_out
from abloop.analysis.fine import refine_match
from abloop.dsp.mono import effective_end, rms, to_mono
from abloop.types import AnalysisResult, AnalysisSettings, AudioData, LoopPoints

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]

STAGE_PREPROCESSED = "preprocessed"
STAGE_FADE_OUT = "fade_out"
STAGE_COARSE_SEARCH = "coarse_search"
STAGE_FINE_SEARCH = "fine_search"
STAGE_COMPLETE = "complete"


def _no_progress(stage: str) -> None:
    return None


def _search_loop(
    mono: np.ndarray,
    sample_rate: int,
    channels: int,
    search_end: int,
    notify: ProgressCallback,
) -> LoopPoints | None:
    """Coarse then fine search for an earlier repeat of the tail ending at ``search_end``."""
    if search_end < MIN_CONTENT_SECONDS * sample_rate:
        logger.debug("loop: searchable region too short (%d samples)", search_end)
        return None
    # Short regions shrink the query so a full-length candidate and the
    # self-match margin still fit in front of it.
    query_len = min(int(QUERY_DURATION_SEC * sample_rate), search_end // QUERY_REGION_DIVISOR)
    query_start = search_end - query_len
    margin = int(SELF_MATCH_MARGIN_SEC * sample_rate)
    max_start = query_start - query_len - margin
    if max_start < 0:
        logger.debug("loop: no room for a candidate before the query window")
        return None

    coarse = coarse_search(mono, query_start, query_len, sample_rate)
    notify(STAGE_COARSE_SEARCH)
    if coarse is None or coarse.correlation < COARSE_MIN_CORRELATION:
        logger.debug(
            "loop: coarse correlation %s below %.2f",
            None if coarse is None else f"{coarse.correlation:.3f}",
            COARSE_MIN_CORRELATION,
        )
        return None

    fine = refine_match(
        mono,
        query_start,
        query_len,
        coarse.position,
        sample_rate,
        max_start=max_start,
    )
    notify(STAGE_FINE_SEARCH)
    if fine is None:
        logger.debug("loop: refine range degenerate around %d", coarse.position)
        return None

    match_rms = rms(mono[fine.position:fine.position + query_len])
    query_rms = rms(mono[query_start:search_end])
    confidence = adjust_confidence(fine.correlation, match_rms, query_rms)
    logger.debug(
        "loop: coarse=%d (%.3f) fine=%d (%.3f) confidence=%.3f",
        coarse.position, coarse.correlation, fine.position, fine.correlation, confidence,
    )
    return LoopPoints(
        start_sample=fine.position * channels,
        end_sample=query_start * channels,
        confidence=confidence,
    )


def detect_loop(
    audio: AudioData,
    *,
    search_end: int | None = None,
    on_progress: ProgressCallback | None = None,
) -> LoopPoints | None:
    """
    Find loop points for ``audio`` without fade-out handling.

    Args:
        audio: Decoded track.
        search_end: Optional frame index bounding the searchable region;
            defaults to the end of audible content.
        on_progress: Optional callback receiving the same milestones as
            run_analysis_with_progress, without the fade-out stage.

    Returns:
        LoopPoints in interleaved sample space, or None if no confident loop.
    """
    notify = on_progress or _no_progress
    if audio.sample_rate <= 0:
        raise ValueError("sample_rate must be positive.")
    mono = to_mono(audio.samples, audio.channels)
    end = effective_end(mono)
    if search_end is not None:
        end = min(end, int(search_end))
    notify(STAGE_PREPROCESSED)
    loop = _search_loop(mono, audio.sample_rate, audio.channels, end, notify)
    notify(STAGE_COMPLETE)
    return loop


def run_analysis_with_progress(
    audio: AudioData,
    settings: AnalysisSettings | None,
    on_progress: ProgressCallback | None,
) -> AnalysisResult:
    """
    Run the full analysis, reporting pipeline milestones to ``on_progress``.

    Milestones are reported synchronously and in order, one per stage that
    actually runs, and always ending with ``"complete"``. Rejections inside a
    stage leave that part of the result as None; they never raise.
    """
    settings = settings or AnalysisSettings()
    notify = on_progress or _no_progress
    if audio.sample_rate <= 0:
        raise ValueError("sample_rate must be positive.")
    sample_rate = int(audio.sample_rate)
    channels = int(audio.channels)

    mono = to_mono(audio.samples, channels)
    content_end = effective_end(mono)
    notify(STAGE_PREPROCESSED)

    fade = None
    if settings.wants_fade_out:
        fade = detect_fade_out(mono, sample_rate, channels, settings)
        notify(STAGE_FADE_OUT)

    loop = None
    if settings.wants_loop:
        search_end = content_end
        if fade is not None:
            search_end = min(search_end, fade.start_sample // channels)
        loop = _search_loop(mono, sample_rate, channels, search_end, notify)
        if loop is not None:
            loop = reconcile_with_fade_out(
                loop,
                fade,
                sample_rate=sample_rate,
                channels=channels,
                buffer_ms=settings.fade_out_buffer_ms,
            )

    notify(STAGE_COMPLETE)
    logger.info(
        "analysis complete: loop=%s fade_out=%s",
        None if loop is None else f"{loop.start_sample}-{loop.end_sample} ({loop.confidence:.2f})",
        None if fade is None else f"{fade.start_sample}+{fade.duration_samples}",
    )
    return AnalysisResult(loop_points=loop, fade_out_info=fade)


def run_analysis(audio: AudioData, settings: AnalysisSettings | None = None) -> AnalysisResult:
    """Run the full analysis without progress reporting."""
    return run_analysis_with_progress(audio, settings, None)


def analyze_in_background(
    audio: AudioData,
    settings: AnalysisSettings | None,
    on_complete: Callable[[AnalysisResult], None],
    *,
    on_progress: ProgressCallback | None = None,
    on_error: Callable[[Exception], None] | None = None,
) -> threading.Thread:
    """
    Run one analysis on a daemon worker thread.

    The result is delivered through ``on_complete`` from the worker thread.
    Errors are logged and passed to ``on_error`` when given. The started
    thread is returned so callers may join it.
    """
    def _worker() -> None:
        try:
            result = run_analysis_with_progress(audio, settings, on_progress)
        except Exception as exc:
            logger.exception("background analysis failed")
            if on_error is not None:
                on_error(exc)
            return
        on_complete(result)

    thread = threading.Thread(target=_worker, name="abloop-analysis", daemon=True)
    thread.start()
    return thread
