"""Analysis settings validation helpers."""
from __future__ import annotations
from typing import Any
import math

from abloop.types import DetectionMode, FadeOutMode

SETTINGS_KEYS = (
    "detection_mode",
    "fade_out_mode",
    "fade_out_threshold_volume",
    "fade_out_window_size_ms",
    "min_fade_out_duration_ms",
    "fade_out_buffer_ms",
)


def _is_number(v: Any) -> bool:
    return (
        isinstance(v, (int, float))
        and not isinstance(v, bool)
        and not math.isnan(v)
        and not math.isinf(v)
    )


def _is_int(v: Any) -> bool:
    return isinstance(v, int) and not isinstance(v, bool)


def validate_settings_dict(j: dict) -> None:
    """Validate an analysis settings object; every problem is reported at once."""
    if not isinstance(j, dict):
        raise ValueError("settings must be a JSON object.")
    errors: list[str] = []

    def err(msg: str) -> None:
        errors.append(msg)

    for k in j:
        if k not in SETTINGS_KEYS:
            err(f"unknown key: {k}")

    modes = {m.value for m in DetectionMode}
    if "detection_mode" in j and j["detection_mode"] not in modes:
        err(f"detection_mode must be one of {', '.join(sorted(modes))}.")
    fade_modes = {m.value for m in FadeOutMode}
    if "fade_out_mode" in j and j["fade_out_mode"] not in fade_modes:
        err(f"fade_out_mode must be one of {', '.join(sorted(fade_modes))}.")

    threshold = j.get("fade_out_threshold_volume", 0.0)
    if not _is_number(threshold) or not 0.0 <= threshold <= 1.0:
        err("fade_out_threshold_volume must be a number in [0, 1].")

    window = j.get("fade_out_window_size_ms", 1)
    if not _is_int(window) or window <= 0:
        err("fade_out_window_size_ms must be a positive int.")
    min_duration = j.get("min_fade_out_duration_ms", 0)
    if not _is_int(min_duration) or min_duration < 0:
        err("min_fade_out_duration_ms must be a non-negative int.")
    buffer_ms = j.get("fade_out_buffer_ms", 0)
    if not _is_int(buffer_ms) or buffer_ms < 0:
        err("fade_out_buffer_ms must be a non-negative int.")

    if errors:
        raise ValueError("; ".join(errors))
