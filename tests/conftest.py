from __future__ import annotations

import json
import sys
from pathlib import Path

import numpy as np

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from abloop.types import AudioData  # noqa: E402

FS = 8000


def make_audio(mono: np.ndarray, fs: int = FS, channels: int = 1) -> AudioData:
    """Wrap a mono signal as interleaved audio; extra channels are scaled copies."""
    x = np.asarray(mono, dtype=np.float32)
    if channels == 1:
        samples = x.copy()
    else:
        gains = np.linspace(1.0, 0.5, channels, dtype=np.float32)
        samples = (x[:, None] * gains[None, :]).reshape(-1)
    return AudioData(samples=samples, sample_rate=fs, channels=channels)


def noise(duration_s: float, fs: int = FS, amp: float = 0.2, seed: int = 0) -> np.ndarray:
    rng = np.random.default_rng(seed)
    return amp * rng.standard_normal(int(duration_s * fs))


def sine(duration_s: float, fs: int = FS, freq_hz: float = 440.0, amp: float = 0.5) -> np.ndarray:
    t = np.arange(int(duration_s * fs)) / fs
    return amp * np.sin(2.0 * np.pi * freq_hz * t)


def build_repeat_track(fs: int = FS, seed: int = 0) -> np.ndarray:
    """50 s of noise whose last 20 s repeat seconds [5, 25)."""
    x = noise(50.0, fs, seed=seed)
    x[30 * fs:50 * fs] = x[5 * fs:25 * fs]
    return x


def build_fade_tone(fs: int = FS) -> np.ndarray:
    """20 s constant 440 Hz tone; the last 3 s ramp linearly to silence."""
    x = sine(20.0, fs)
    n_fade = 3 * fs
    x[-n_fade:] *= np.linspace(1.0, 0.0, n_fade)
    return x


def write_settings(tmp_path: Path, settings: dict) -> Path:
    path = tmp_path / "settings.json"
    path.write_text(json.dumps(settings), encoding="utf-8")
    return path
