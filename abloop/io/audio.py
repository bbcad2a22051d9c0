"""Audio decoding into interleaved float32 buffers."""
from __future__ import annotations
import io
import json
import shutil
import subprocess
import warnings as py_warnings
from pathlib import Path
import numpy as np
import soundfile as sf
from abloop.types import AudioData


def _as_frames(samples: np.ndarray) -> np.ndarray:
    """Shape decoded audio as (frames, channels) float32."""
    x = np.asarray(samples, dtype=np.float32)
    if x.ndim == 1:
        return x.reshape(-1, 1)
    if x.ndim != 2:
        raise ValueError("Decoded audio must be 1D or 2D array.")
    return x


def _tag(f: sf.SoundFile, name: str) -> str | None:
    value = getattr(f, name, "")
    return value or None


def _decode_soundfile(source, *, fmt: str | None = None) -> tuple[np.ndarray, int, list[str], dict]:
    """Decode using soundfile (libsndfile)."""
    with py_warnings.catch_warnings(record=True) as w:
        py_warnings.simplefilter("always")
        with sf.SoundFile(source, format=fmt) as f:
            data = f.read(dtype="float32", always_2d=True)
            fs = int(f.samplerate)
            tags = {name: _tag(f, name) for name in ("title", "artist", "album")}
    warn_list = [str(wi.message) for wi in w]
    return data, fs, warn_list, tags


def _ffprobe_info(path: str) -> tuple[int, int]:
    """Return (sample_rate, channels) from ffprobe."""
    ffprobe = shutil.which("ffprobe")
    if not ffprobe:
        raise RuntimeError("ffprobe not found for ffmpeg backend.")
    cmd = [
        ffprobe,
        "-v", "error",
        "-select_streams", "a:0",
        "-show_entries", "stream=sample_rate,channels",
        "-of", "json",
        path,
    ]
    proc = subprocess.run(cmd, capture_output=True, text=True, check=False)
    if proc.returncode != 0:
        raise ValueError(f"ffprobe failed: {proc.stderr.strip()}")
    streams = json.loads(proc.stdout).get("streams", [])
    if not streams:
        raise ValueError("ffprobe reported no audio streams.")
    return int(streams[0]["sample_rate"]), int(streams[0]["channels"])


def _decode_ffmpeg(path: str) -> tuple[np.ndarray, int, list[str]]:
    """Decode using ffmpeg to raw float32 PCM."""
    ffmpeg = shutil.which("ffmpeg")
    if not ffmpeg:
        raise RuntimeError("ffmpeg backend not available.")
    fs, ch = _ffprobe_info(path)
    cmd = [
        ffmpeg,
        "-v", "warning",
        "-i", path,
        "-f", "f32le",
        "-acodec", "pcm_f32le",
        "-vn",
        "pipe:1",
    ]
    proc = subprocess.run(cmd, capture_output=True, check=False)
    warn_list = [line for line in proc.stderr.decode("utf-8", errors="replace").splitlines() if line.strip()]
    if proc.returncode != 0:
        raise ValueError("ffmpeg decode failed.")
    data = np.frombuffer(proc.stdout, dtype=np.float32)
    ch = max(1, ch)
    n = (data.size // ch) * ch
    if n != data.size:
        warn_list.append("ffmpeg: trimmed partial frame at end of stream.")
        data = data[:n]
    return data.reshape(-1, ch), fs, warn_list


def _build_audio(data: np.ndarray, fs: int, warnings_list: list[str], tags: dict) -> AudioData:
    frames = _as_frames(data)
    return AudioData(
        samples=np.ascontiguousarray(frames).reshape(-1),
        sample_rate=int(fs),
        channels=int(frames.shape[1]),
        title=tags.get("title"),
        artist=tags.get("artist"),
        album=tags.get("album"),
        warnings=warnings_list,
    )


def load_audio(path: str) -> AudioData:
    """
    Decode an audio file into interleaved float32 samples.

    Formats libsndfile understands (WAV, FLAC, AIFF, OGG, MP3 on recent
    builds) go through soundfile; anything else falls back to ffmpeg when
    installed.
    """
    if not Path(path).is_file():
        raise FileNotFoundError(path)
    warnings_list: list[str] = []
    tags: dict = {}
    try:
        data, fs, warn_list, tags = _decode_soundfile(str(path))
        warnings_list.extend(warn_list)
    except Exception as exc:
        warnings_list.append(f"soundfile decode failed: {exc}")
        data, fs, warn_list = _decode_ffmpeg(str(path))
        warnings_list.extend(warn_list)
    return _build_audio(data, fs, warnings_list, tags)


def load_audio_from_bytes(data: bytes, extension_hint: str | None = None) -> AudioData:
    """Decode an in-memory encoded file; ``extension_hint`` selects the container when given."""
    fmt = None
    if extension_hint:
        candidate = extension_hint.lstrip(".").upper()
        if candidate in sf.available_formats():
            fmt = candidate
    try:
        frames, fs, warn_list, tags = _decode_soundfile(io.BytesIO(data), fmt=fmt)
    except RuntimeError as exc:
        raise ValueError(f"unsupported or corrupt audio data: {exc}") from exc
    return _build_audio(frames, fs, warn_list, tags)
