from __future__ import annotations

from itertools import islice

import numpy as np
import pytest
import soundfile as sf

from abloop.playback.looping import (
    LoopingSource,
    apply_fade_out,
    export_loop,
    render_loop,
    whole_track_points,
)
from abloop.types import AudioData, FadeOutInfo, LoopPoints


def _stereo_ramp(frames: int = 10) -> AudioData:
    samples = np.arange(2 * frames, dtype=np.float32)
    return AudioData(samples=samples, sample_rate=8000, channels=2)


def test_looping_source_matches_render():
    audio = _stereo_ramp()
    points = LoopPoints(start_sample=4, end_sample=12, confidence=1.0)
    streamed = np.array(list(LoopingSource(audio, points, max_loops=3)), dtype=np.float32)
    assert np.array_equal(streamed, render_loop(audio, points, 3))


def test_looping_source_sequence():
    audio = _stereo_ramp(5)
    points = LoopPoints(start_sample=2, end_sample=6, confidence=1.0)
    out = list(LoopingSource(audio, points, max_loops=2))
    assert out == [0, 1, 2, 3, 4, 5, 2, 3, 4, 5, 2, 3, 4, 5, 6, 7, 8, 9]


def test_unaligned_end_jumps_on_next_frame_boundary():
    audio = _stereo_ramp()
    points = LoopPoints(start_sample=4, end_sample=11, confidence=1.0)
    streamed = np.array(list(LoopingSource(audio, points, max_loops=2)), dtype=np.float32)
    assert np.array_equal(streamed, render_loop(audio, points, 2))
    assert streamed[11] == 11.0
    assert streamed[12] == 4.0


def test_zero_loops_plays_track_once():
    audio = _stereo_ramp()
    points = LoopPoints(start_sample=4, end_sample=12, confidence=1.0)
    assert list(LoopingSource(audio, points, max_loops=0)) == list(audio.samples)
    assert np.array_equal(render_loop(audio, points, 0), audio.samples)


def test_end_past_track_plays_track_once():
    audio = _stereo_ramp()
    points = LoopPoints(start_sample=4, end_sample=40, confidence=1.0)
    assert list(LoopingSource(audio, points, max_loops=3)) == list(audio.samples)
    assert np.array_equal(render_loop(audio, points, 3), audio.samples)


def test_unbounded_loop_never_exhausts():
    audio = _stereo_ramp()
    points = LoopPoints(start_sample=4, end_sample=12, confidence=1.0)
    source = LoopingSource(audio, points)
    head = list(islice(source, 1000))
    assert len(head) == 1000
    assert source.loop_count > 100
    assert source.channels == 2
    assert source.sample_rate == 8000


def test_whole_track_points_cover_buffer():
    audio = _stereo_ramp()
    points = whole_track_points(audio)
    assert points.start_sample == 0
    assert points.end_sample == audio.samples.size


def test_render_loop_rejects_negative_loops():
    audio = _stereo_ramp()
    with pytest.raises(ValueError):
        render_loop(audio, whole_track_points(audio), -1)


def test_apply_fade_out_ramps_then_silences():
    samples = np.ones(20, dtype=np.float32)
    fade = FadeOutInfo(start_sample=8, duration_samples=8, confidence=0.8)
    out = apply_fade_out(samples, fade, 2)
    frames = out.reshape(10, 2)
    assert np.allclose(frames[:4], 1.0)
    assert np.allclose(frames[4:8, 0], [1.0, 0.75, 0.5, 0.25])
    assert np.allclose(frames[4:8, 1], frames[4:8, 0])
    assert np.allclose(frames[8:], 0.0)
    assert np.allclose(samples, 1.0)


def test_export_loop_writes_float_wav(tmp_path):
    audio = _stereo_ramp()
    points = LoopPoints(start_sample=4, end_sample=12, confidence=1.0)
    path = tmp_path / "out" / "loop.wav"
    export_loop(path, audio, points, 2)
    data, sr = sf.read(str(path), always_2d=True)
    assert sr == 8000
    assert data.shape[1] == 2
    expected = render_loop(audio, points, 2).reshape(-1, 2)
    assert np.allclose(data, expected)
