from __future__ import annotations

import pytest

from abloop.analysis.confidence import adjust_confidence, reconcile_with_fade_out
from abloop.types import FadeOutInfo, LoopPoints


def test_adjust_confidence_boosts_louder_strong_match():
    assert adjust_confidence(0.7, 1.5, 1.0) == pytest.approx(0.9)


def test_adjust_confidence_boost_is_capped():
    assert adjust_confidence(0.95, 2.0, 1.0) == 1.0


def test_adjust_confidence_no_boost_for_weak_match():
    assert adjust_confidence(0.5, 2.0, 1.0) == pytest.approx(0.5)


def test_adjust_confidence_penalizes_quieter_match():
    assert adjust_confidence(0.9, 0.5, 1.0) == pytest.approx(0.72)


def test_adjust_confidence_neutral_band_unchanged():
    assert adjust_confidence(0.8, 1.0, 1.0) == pytest.approx(0.8)
    assert adjust_confidence(0.8, 1.1, 1.0) == pytest.approx(0.8)


def test_adjust_confidence_clipped_to_unit_interval():
    assert adjust_confidence(-0.3, 1.0, 1.0) == 0.0
    assert adjust_confidence(1.4, 1.0, 1.0) == 1.0


def test_reconcile_pulls_end_before_fade_onset():
    loop = LoopPoints(start_sample=20_000, end_sample=300_000, confidence=0.9)
    fade = FadeOutInfo(start_sample=200_000, duration_samples=50_000, confidence=0.8)
    out = reconcile_with_fade_out(loop, fade, sample_rate=8000, channels=2, buffer_ms=100)
    # 100 ms at 8 kHz is 800 frames; onset frame 100_000.
    assert out.end_sample == (100_000 - 800) * 2
    assert out.end_sample < fade.start_sample
    assert out.start_sample == loop.start_sample
    assert out.confidence == loop.confidence


def test_reconcile_keeps_at_least_one_frame():
    loop = LoopPoints(start_sample=199_800, end_sample=300_000, confidence=0.9)
    fade = FadeOutInfo(start_sample=200_000, duration_samples=50_000, confidence=0.8)
    out = reconcile_with_fade_out(loop, fade, sample_rate=8000, channels=2, buffer_ms=100)
    assert out.end_sample == (199_800 // 2 + 1) * 2
    assert out.end_sample > out.start_sample


def test_reconcile_noop_without_overlap():
    loop = LoopPoints(start_sample=0, end_sample=1000, confidence=0.5)
    fade = FadeOutInfo(start_sample=1000, duration_samples=10, confidence=0.8)
    assert reconcile_with_fade_out(loop, fade, sample_rate=8000, channels=1, buffer_ms=100) is loop
    assert reconcile_with_fade_out(loop, None, sample_rate=8000, channels=1, buffer_ms=100) is loop
