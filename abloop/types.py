from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
import numpy as np


class DetectionMode(str, Enum):
    AUTO = "auto"
    LOOP_ONLY = "loop_only"
    FADE_OUT_ONLY = "fade_out_only"


class FadeOutMode(str, Enum):
    AUTO = "auto"
    NONE = "none"
    ONLY = "only"


@dataclass(frozen=True)
class AudioData:
    """Decoded track: interleaved float32 samples plus stream metadata."""
    samples: np.ndarray
    sample_rate: int
    channels: int
    title: str | None = None
    artist: str | None = None
    album: str | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def frames(self) -> int:
        if self.channels < 1:
            return 0
        return int(self.samples.size // self.channels)

    @property
    def duration(self) -> float:
        if self.sample_rate <= 0:
            return 0.0
        return self.frames / float(self.sample_rate)


@dataclass(frozen=True)
class LoopPoints:
    start_sample: int
    end_sample: int
    confidence: float


@dataclass(frozen=True)
class FadeOutInfo:
    start_sample: int
    duration_samples: int
    confidence: float

    @property
    def end_sample(self) -> int:
        return self.start_sample + self.duration_samples


@dataclass(frozen=True)
class AnalysisSettings:
    detection_mode: DetectionMode = DetectionMode.AUTO
    fade_out_mode: FadeOutMode = FadeOutMode.AUTO
    fade_out_threshold_volume: float = 0.05
    fade_out_window_size_ms: int = 50
    min_fade_out_duration_ms: int = 1000
    fade_out_buffer_ms: int = 100

    @property
    def wants_fade_out(self) -> bool:
        """Whether the fade-out pass runs for this mode combination."""
        if self.fade_out_mode == FadeOutMode.NONE:
            return False
        if self.fade_out_mode == FadeOutMode.ONLY:
            return True
        return self.detection_mode != DetectionMode.LOOP_ONLY

    @property
    def wants_loop(self) -> bool:
        """Whether the loop search runs for this mode combination."""
        if self.detection_mode == DetectionMode.FADE_OUT_ONLY:
            return False
        return self.fade_out_mode != FadeOutMode.ONLY


@dataclass(frozen=True)
class AnalysisResult:
    loop_points: LoopPoints | None = None
    fade_out_info: FadeOutInfo | None = None
