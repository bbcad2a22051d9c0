from __future__ import annotations
from dataclasses import asdict, replace
import json
from abloop.settings.validator import validate_settings_dict
from abloop.types import AnalysisSettings, DetectionMode, FadeOutMode


def settings_from_dict(j: dict, base: AnalysisSettings | None = None) -> AnalysisSettings:
    """
    Build AnalysisSettings from a plain dict.

    Missing keys keep the value from ``base`` (the defaults when omitted).
    Raises ValueError listing every invalid entry.
    """
    validate_settings_dict(j)
    settings = base or AnalysisSettings()
    updates: dict = {}
    if "detection_mode" in j:
        updates["detection_mode"] = DetectionMode(j["detection_mode"])
    if "fade_out_mode" in j:
        updates["fade_out_mode"] = FadeOutMode(j["fade_out_mode"])
    if "fade_out_threshold_volume" in j:
        updates["fade_out_threshold_volume"] = float(j["fade_out_threshold_volume"])
    for key in ("fade_out_window_size_ms", "min_fade_out_duration_ms", "fade_out_buffer_ms"):
        if key in j:
            updates[key] = int(j[key])
    return replace(settings, **updates)


def load_settings(path: str) -> AnalysisSettings:
    """
    Load analysis settings from a JSON file.

    Args:
        path: Path to a JSON object with any of the AnalysisSettings keys.

    Returns:
        AnalysisSettings with unspecified keys at their defaults.
    """
    with open(path, "r", encoding="utf-8") as f:
        j = json.load(f)
    return settings_from_dict(j)


def settings_to_dict(settings: AnalysisSettings) -> dict:
    """JSON-ready view of the settings (enum members as their values)."""
    d = asdict(settings)
    d["detection_mode"] = settings.detection_mode.value
    d["fade_out_mode"] = settings.fade_out_mode.value
    return d
