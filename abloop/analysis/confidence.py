"""Confidence adjustment and loop/fade-out reconciliation."""
from __future__ import annotations

from dataclasses import replace

from abloop.dsp.mono import EPS
from abloop.types import FadeOutInfo, LoopPoints

LOUDER_MATCH_RATIO = 1.2
BOOST_MIN_CONFIDENCE = 0.6
CONFIDENCE_BOOST = 0.2
QUIETER_MATCH_RATIO = 0.8
QUIETER_MATCH_PENALTY = 0.8


def adjust_confidence(base: float, match_rms: float, query_rms: float) -> float:
    """
    Scale a correlation score by how loud the match is relative to the query.

    A louder match that already correlates well is boosted; a much quieter
    one is penalized. The result is clipped to [0, 1].
    """
    ratio = match_rms / (query_rms + EPS)
    confidence = float(base)
    if ratio > LOUDER_MATCH_RATIO:
        if confidence > BOOST_MIN_CONFIDENCE:
            confidence = min(confidence + CONFIDENCE_BOOST, 1.0)
    elif ratio < QUIETER_MATCH_RATIO:
        confidence *= QUIETER_MATCH_PENALTY
    return min(max(confidence, 0.0), 1.0)


def reconcile_with_fade_out(
    loop: LoopPoints,
    fade: FadeOutInfo | None,
    *,
    sample_rate: int,
    channels: int,
    buffer_ms: int,
) -> LoopPoints:
    """
    Pull the loop end in front of the fade-out onset.

    Only applies when the loop end lies after the onset. The new end sits
    ``buffer_ms`` before the onset, but at least one frame after the start.
    The confidence is kept as is.
    """
    if fade is None or loop.end_sample <= fade.start_sample:
        return loop
    buffer_frames = int(round(buffer_ms * sample_rate / 1000.0))
    onset_frame = fade.start_sample // channels
    start_frame = loop.start_sample // channels
    end_frame = max(onset_frame - buffer_frames, start_frame + 1)
    return replace(loop, end_sample=end_frame * channels)
