"""Looping sample source and offline loop rendering."""
from __future__ import annotations

from pathlib import Path

import numpy as np
import soundfile as sf

from abloop.types import AudioData, FadeOutInfo, LoopPoints


def whole_track_points(audio: AudioData) -> LoopPoints:
    """Loop points covering the whole track, used when no loop was detected."""
    return LoopPoints(start_sample=0, end_sample=int(audio.samples.size), confidence=0.0)


class LoopingSource:
    """
    Iterator over interleaved samples that jumps from the loop end back to
    the loop start.

    The jump only happens on a frame boundary, so channels never swap.
    ``max_loops=None`` loops forever.
    """

    def __init__(self, audio: AudioData, loop_points: LoopPoints, max_loops: int | None = None):
        self.audio = audio
        self.loop_points = loop_points
        self.max_loops = max_loops
        self.cursor = 0
        self.loop_count = 0

    @property
    def channels(self) -> int:
        return self.audio.channels

    @property
    def sample_rate(self) -> int:
        return self.audio.sample_rate

    def __iter__(self):
        return self

    def __next__(self) -> float:
        samples = self.audio.samples
        if self.cursor >= samples.size:
            raise StopIteration
        sample = float(samples[self.cursor])
        self.cursor += 1

        should_loop = self.max_loops is None or self.loop_count < self.max_loops
        if should_loop and self.cursor >= self.loop_points.end_sample:
            if self.cursor % self.channels == 0:
                self.cursor = self.loop_points.start_sample
                self.loop_count += 1
        return sample


def apply_fade_out(samples: np.ndarray, fade: FadeOutInfo, channels: int) -> np.ndarray:
    """
    Return a copy of ``samples`` with a linear 1.0 -> 0.0 ramp over the fade
    region and silence after it.
    """
    out = np.array(samples, dtype=np.float32, copy=True)
    start_frame = fade.start_sample // channels
    n_frames = max(1, fade.duration_samples // channels)
    total_frames = out.size // channels
    frames = out.reshape(total_frames, channels)
    if start_frame >= total_frames:
        return out
    stop_frame = min(start_frame + n_frames, total_frames)
    gain = 1.0 - np.arange(stop_frame - start_frame, dtype=np.float64) / n_frames
    frames[start_frame:stop_frame] *= gain[:, None].astype(np.float32)
    frames[stop_frame:] = 0.0
    return out


def render_loop(
    audio: AudioData,
    loop_points: LoopPoints,
    loops: int,
    fade_out_info: FadeOutInfo | None = None,
) -> np.ndarray:
    """
    Render the sample stream ``LoopingSource(max_loops=loops)`` would produce.

    The first pass plays up to the loop end, ``loops - 1`` further passes
    repeat the loop body, and the final pass runs from the loop start to the
    end of the track (faded out when ``fade_out_info`` is given).
    """
    if loops < 0:
        raise ValueError("loops must be >= 0.")
    samples = np.asarray(audio.samples, dtype=np.float32)
    if fade_out_info is not None:
        samples = apply_fade_out(samples, fade_out_info, audio.channels)
    channels = audio.channels
    start = int(loop_points.start_sample)
    # The source only jumps on the first frame boundary at or after the end.
    end = -(-int(loop_points.end_sample) // channels) * channels
    if loops == 0 or end > samples.size:
        return samples.copy()
    parts = [samples[:end]]
    parts.extend(samples[start:end] for _ in range(loops - 1))
    parts.append(samples[start:])
    return np.concatenate(parts)


def export_loop(
    path: str | Path,
    audio: AudioData,
    loop_points: LoopPoints,
    loops: int,
    fade_out_info: FadeOutInfo | None = None,
) -> None:
    """Write the looped render as a 32-bit float WAV file."""
    rendered = render_loop(audio, loop_points, loops, fade_out_info)
    out_path = Path(path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    sf.write(
        str(out_path),
        rendered.reshape(-1, audio.channels),
        audio.sample_rate,
        subtype="FLOAT",
        format="WAV",
    )
