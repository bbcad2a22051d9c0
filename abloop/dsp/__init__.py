"""DSP primitives for abloop."""

from abloop.dsp.fft import cross_correlate, inverse, next_pow2, transform
from abloop.dsp.mono import (
    EPS,
    SILENCE_FLOOR,
    box_downsample,
    downsample_factor,
    effective_end,
    rms,
    to_mono,
)

__all__ = [
    "EPS",
    "SILENCE_FLOOR",
    "box_downsample",
    "cross_correlate",
    "downsample_factor",
    "effective_end",
    "inverse",
    "next_pow2",
    "rms",
    "to_mono",
    "transform",
]
