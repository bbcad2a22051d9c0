"""
abloop - Automatic loop point and fade-out detection

Finds a seamless loop point and a trailing fade-out in decoded audio using
only the raw waveform.
"""
from abloop.version import __version__
from abloop.types import (
    DetectionMode,
    FadeOutMode,
    AudioData,
    LoopPoints,
    FadeOutInfo,
    AnalysisSettings,
    AnalysisResult,
)
from abloop.analysis.engine import (
    analyze_in_background,
    detect_loop,
    run_analysis,
    run_analysis_with_progress,
)

__all__ = [
    "__version__",
    "DetectionMode",
    "FadeOutMode",
    "AudioData",
    "LoopPoints",
    "FadeOutInfo",
    "AnalysisSettings",
    "AnalysisResult",
    "analyze_in_background",
    "detect_loop",
    "run_analysis",
    "run_analysis_with_progress",
]
