from __future__ import annotations
from abloop.settings.loader import settings_to_dict
from abloop.types import AnalysisResult, AnalysisSettings
from abloop.utils.serialize import q, sha256_hex_canonical_json


def _seconds(sample_index: int, sample_rate: int, channels: int) -> float:
    return q(sample_index / float(channels) / float(sample_rate), 0.001)


def build_analysis_report_dict(
    *,
    engine: dict,
    input_meta: dict,
    settings: AnalysisSettings,
    result: AnalysisResult,
    sample_rate: int,
    channels: int,
) -> dict:
    """
    Build an analysis report dictionary with quantized values and integrity hash.

    Args:
        engine: Engine metadata (name, version)
        input_meta: Input file metadata
        settings: Settings the analysis ran with
        result: Analysis result
        sample_rate: Sample rate of the analyzed track
        channels: Channel count of the analyzed track

    Returns:
        Report dictionary; ``integrity.report_hash_sha256`` covers everything
        except the integrity block itself.
    """
    loop = None
    if result.loop_points is not None:
        lp = result.loop_points
        loop = {
            "start_sample": int(lp.start_sample),
            "end_sample": int(lp.end_sample),
            "start_s": _seconds(lp.start_sample, sample_rate, channels),
            "end_s": _seconds(lp.end_sample, sample_rate, channels),
            "confidence": q(float(lp.confidence), 0.0001),
        }
    fade_out = None
    if result.fade_out_info is not None:
        fo = result.fade_out_info
        fade_out = {
            "start_sample": int(fo.start_sample),
            "duration_samples": int(fo.duration_samples),
            "start_s": _seconds(fo.start_sample, sample_rate, channels),
            "duration_s": _seconds(fo.duration_samples, sample_rate, channels),
            "confidence": q(float(fo.confidence), 0.0001),
        }

    report = {
        "schema_version": "1.0",
        "engine": engine,
        "input": input_meta,
        "settings": settings_to_dict(settings),
        "result": {
            "loop_detected": loop is not None,
            "loop_points": loop,
            "fade_out_detected": fade_out is not None,
            "fade_out": fade_out,
        },
        "integrity": {"report_hash_sha256": ""},
    }
    tmp = dict(report)
    tmp.pop("integrity", None)
    report["integrity"]["report_hash_sha256"] = sha256_hex_canonical_json(tmp)
    return report
