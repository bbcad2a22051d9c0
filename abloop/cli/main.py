"""abloop CLI - automatic loop point and fade-out detection."""
from __future__ import annotations
import argparse
import json
import os
import platform
import sys
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import replace
from pathlib import Path
from typing import Iterable

import numpy as np

from abloop.version import __version__
from abloop.analysis.engine import run_analysis_with_progress
from abloop.io.audio import load_audio
from abloop.playback.looping import export_loop, whole_track_points
from abloop.reporting.report import build_analysis_report_dict
from abloop.settings.loader import load_settings, settings_from_dict, settings_to_dict
from abloop.types import AnalysisResult, AnalysisSettings, AudioData, DetectionMode, FadeOutMode
from abloop.utils.logging import setup_logging
from abloop.utils.serialize import q, sha256_hex_file


EXIT_LOOP_FOUND = 0
EXIT_NO_LOOP = 10
EXIT_BAD_ARGS = 2
EXIT_DECODE_ERROR = 3
EXIT_SETTINGS_ERROR = 4
EXIT_INTERNAL_ERROR = 5
DEFAULT_EXPORT_LOOPS = 5
SUPPORTED_AUDIO_EXTS = {".wav", ".flac", ".aiff", ".aif", ".ogg", ".mp3"}


def _build_engine_meta() -> dict:
    return {
        "name": "abloop",
        "version": __version__,
        "python": platform.python_version(),
        "numpy": np.__version__,
    }


def _build_input_meta(audio_path: str, audio: AudioData) -> dict:
    """Describe the decoded input for the report."""
    return {
        "path": str(audio_path),
        "file_name": Path(audio_path).name,
        "file_hash_sha256": sha256_hex_file(audio_path),
        "sample_rate_hz": int(audio.sample_rate),
        "channels": int(audio.channels),
        "frames": int(audio.frames),
        "duration_s": q(audio.duration, 0.001),
        "title": audio.title,
        "artist": audio.artist,
        "album": audio.album,
        "decode_warnings": list(audio.warnings),
    }


def _resolve_settings(args) -> AnalysisSettings:
    """Settings file (if any) with command-line overrides applied."""
    settings = load_settings(args.settings) if getattr(args, "settings", None) else AnalysisSettings()
    if getattr(args, "detection_mode", None):
        settings = replace(settings, detection_mode=DetectionMode(args.detection_mode))
    if getattr(args, "fade_out_mode", None):
        settings = replace(settings, fade_out_mode=FadeOutMode(args.fade_out_mode))
    return settings


def _exit_code_for_result(result: AnalysisResult, settings: AnalysisSettings) -> int:
    if settings.wants_loop and result.loop_points is None:
        return EXIT_NO_LOOP
    return EXIT_LOOP_FOUND


def _analyze_file(
    audio_path: str,
    settings: AnalysisSettings,
    *,
    verbose: bool = False,
) -> tuple[dict, AnalysisResult, AudioData]:
    """Decode, analyze and build the report for one file."""
    audio = load_audio(audio_path)

    def _progress(stage: str) -> None:
        if verbose:
            print(f"[{stage}]", file=sys.stderr)

    result = run_analysis_with_progress(audio, settings, _progress)
    report = build_analysis_report_dict(
        engine=_build_engine_meta(),
        input_meta=_build_input_meta(audio_path, audio),
        settings=settings,
        result=result,
        sample_rate=audio.sample_rate,
        channels=audio.channels,
    )
    return report, result, audio


def _iter_audio_files(folder: Path, recursive: bool) -> list[Path]:
    """Collect supported audio files from a folder."""
    if not folder.exists():
        raise ValueError(f"Folder not found: {folder}")
    files: Iterable[Path]
    files = folder.rglob("*") if recursive else folder.glob("*")
    return sorted(
        p for p in files
        if p.is_file() and p.suffix.lower() in SUPPORTED_AUDIO_EXTS
    )


def _output_path(out_dir: Path, audio_path: Path) -> Path:
    return out_dir / f"{audio_path.stem}.abloop.json"


def _batch_worker(task: tuple[str, dict, str | None]) -> tuple[str, str, str | None, dict | None]:
    """Analyze one file in a worker process; returns (path, status, error, report)."""
    audio_path, settings_dict, out_dir = task
    try:
        report, result, _ = _analyze_file(audio_path, settings_from_dict(settings_dict))
        if out_dir:
            out_path = _output_path(Path(out_dir), Path(audio_path))
            out_path.write_text(json.dumps(report, indent=2), encoding="utf-8")
        status = "loop" if result.loop_points is not None else "no_loop"
        return audio_path, status, None, report
    except Exception as e:
        return audio_path, "error", str(e), None


def _summarize_batch(results: list[tuple[str, str, str | None, dict | None]]) -> dict:
    """Aggregate per-file outcomes into a batch summary."""
    counts = {"loop": 0, "no_loop": 0, "error": 0}
    confidences: list[float] = []
    fade_outs = 0
    files = []
    for audio_path, status, err, report in sorted(results, key=lambda r: r[0]):
        counts[status] = counts.get(status, 0) + 1
        entry = {"path": audio_path, "status": status}
        if err:
            entry["error"] = err
        if report is not None:
            res = report["result"]
            if res["loop_points"] is not None:
                confidences.append(float(res["loop_points"]["confidence"]))
                entry["loop_points"] = res["loop_points"]
            if res["fade_out_detected"]:
                fade_outs += 1
        files.append(entry)
    return {
        "total_files": len(results),
        "counts": counts,
        "fade_outs_detected": fade_outs,
        "mean_confidence": q(float(np.mean(confidences)), 0.0001) if confidences else None,
        "files": files,
    }


def cmd_analyze(args) -> int:
    """Handle analyze command."""
    try:
        settings = _resolve_settings(args)
    except (OSError, ValueError) as e:
        print(f"Error: Invalid settings - {e}", file=sys.stderr)
        return EXIT_SETTINGS_ERROR
    try:
        report, result, _ = _analyze_file(args.audio_path, settings, verbose=args.verbose)
        output_json = json.dumps(report, indent=2)
        if args.out:
            Path(args.out).write_text(output_json, encoding="utf-8")
            print(f"Report written to: {args.out}", file=sys.stderr)
        else:
            print(output_json)
        return _exit_code_for_result(result, settings)
    except FileNotFoundError as e:
        print(f"Error: File not found - {e}", file=sys.stderr)
        return EXIT_DECODE_ERROR
    except (ValueError, RuntimeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_DECODE_ERROR
    except Exception as e:
        print(f"Internal error: {e}", file=sys.stderr)
        return EXIT_INTERNAL_ERROR


def cmd_export(args) -> int:
    """Handle export command."""
    if args.loops < 0:
        print("Error: --loops must be >= 0.", file=sys.stderr)
        return EXIT_BAD_ARGS
    try:
        settings = _resolve_settings(args)
    except (OSError, ValueError) as e:
        print(f"Error: Invalid settings - {e}", file=sys.stderr)
        return EXIT_SETTINGS_ERROR
    try:
        _, result, audio = _analyze_file(args.audio_path, settings, verbose=args.verbose)
        points = result.loop_points
        if points is None:
            print("No clear loop detected. Exporting the whole track.", file=sys.stderr)
            points = whole_track_points(audio)
        fade = None if args.no_fade else result.fade_out_info
        export_loop(args.out, audio, points, args.loops, fade)
        print(f"Exported to: {args.out}", file=sys.stderr)
        return _exit_code_for_result(result, settings)
    except FileNotFoundError as e:
        print(f"Error: File not found - {e}", file=sys.stderr)
        return EXIT_DECODE_ERROR
    except (ValueError, RuntimeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_DECODE_ERROR
    except Exception as e:
        print(f"Internal error: {e}", file=sys.stderr)
        return EXIT_INTERNAL_ERROR


def cmd_batch(args) -> int:
    """Handle batch command."""
    try:
        settings = _resolve_settings(args)
    except (OSError, ValueError) as e:
        print(f"Error: Invalid settings - {e}", file=sys.stderr)
        return EXIT_SETTINGS_ERROR
    try:
        audio_paths = _iter_audio_files(Path(args.folder), args.recursive)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_BAD_ARGS
    if not audio_paths:
        print("Error: No input files found.", file=sys.stderr)
        return EXIT_BAD_ARGS

    out_dir = Path(args.out_dir) if args.out_dir else None
    if out_dir:
        out_dir.mkdir(parents=True, exist_ok=True)
    settings_dict = settings_to_dict(settings)
    tasks = [(str(p), settings_dict, str(out_dir) if out_dir else None) for p in audio_paths]
    max_workers = min(max(1, int(args.workers)), len(tasks))

    results: list[tuple[str, str, str | None, dict | None]] = []

    def _record(result: tuple[str, str, str | None, dict | None]) -> None:
        results.append(result)
        audio_path, status, err, _ = result
        if err:
            print(f"[ERROR] {audio_path}: {err}", file=sys.stderr)
        else:
            print(f"[{status.upper()}] {audio_path}")

    if max_workers == 1:
        for task in tasks:
            _record(_batch_worker(task))
    else:
        with ProcessPoolExecutor(max_workers=max_workers) as ex:
            futures = [ex.submit(_batch_worker, t) for t in tasks]
            for fut in as_completed(futures):
                _record(fut.result())

    summary = _summarize_batch(results)
    summary_json = json.dumps(summary, indent=2)
    if out_dir:
        (out_dir / args.summary_json).write_text(summary_json, encoding="utf-8")
    else:
        print(summary_json)
    return EXIT_INTERNAL_ERROR if summary["counts"]["error"] else EXIT_LOOP_FOUND


def _add_settings_arguments(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--settings", "-s",
        help="Path to analysis settings JSON"
    )
    p.add_argument(
        "--detection-mode",
        choices=[m.value for m in DetectionMode],
        help="Override detection mode"
    )
    p.add_argument(
        "--fade-out-mode",
        choices=[m.value for m in FadeOutMode],
        help="Override fade-out mode"
    )


def main(argv: list[str] | None = None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="abloop",
        description="abloop - automatic loop point and fade-out detection"
    )
    parser.add_argument(
        "--version", action="version",
        version=f"abloop {__version__}"
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: WARNING)"
    )
    parser.add_argument(
        "--log-format",
        default="text",
        choices=["text", "json"],
        help="Log output format (default: text)"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # analyze command
    analyze_parser = subparsers.add_parser(
        "analyze",
        help="Detect loop points and fade-out, print a JSON report"
    )
    analyze_parser.add_argument(
        "audio_path",
        help="Path to audio file"
    )
    _add_settings_arguments(analyze_parser)
    analyze_parser.add_argument(
        "--out", "-o",
        help="Output path for report JSON"
    )
    analyze_parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Print pipeline milestones to stderr"
    )
    analyze_parser.set_defaults(func=cmd_analyze)

    # export command
    export_parser = subparsers.add_parser(
        "export",
        help="Render the looped track to a WAV file"
    )
    export_parser.add_argument(
        "audio_path",
        help="Path to audio file"
    )
    export_parser.add_argument(
        "--out", "-o",
        required=True,
        help="Output WAV path"
    )
    export_parser.add_argument(
        "--loops", "-l",
        type=int,
        default=DEFAULT_EXPORT_LOOPS,
        help=f"Number of loop repetitions (default: {DEFAULT_EXPORT_LOOPS})"
    )
    export_parser.add_argument(
        "--no-fade",
        action="store_true",
        help="Do not apply the detected fade-out to the render"
    )
    _add_settings_arguments(export_parser)
    export_parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Print pipeline milestones to stderr"
    )
    export_parser.set_defaults(func=cmd_export)

    # batch command
    batch_parser = subparsers.add_parser(
        "batch",
        help="Analyze every audio file in a folder"
    )
    batch_parser.add_argument(
        "--folder",
        required=True,
        help="Folder containing audio files"
    )
    batch_parser.add_argument(
        "--recursive",
        action="store_true",
        help="Recurse into subfolders"
    )
    batch_parser.add_argument(
        "--out-dir",
        help="Output directory for per-file reports and the summary"
    )
    batch_parser.add_argument(
        "--summary-json",
        default="batch-summary.json",
        help="Summary filename inside --out-dir (default: batch-summary.json)"
    )
    _add_settings_arguments(batch_parser)
    batch_parser.add_argument(
        "--workers",
        type=int,
        default=max(1, (os.cpu_count() or 2) - 1),
        help="Parallel workers (default: cpu_count-1)"
    )
    batch_parser.set_defaults(func=cmd_batch)

    args = parser.parse_args(argv)
    setup_logging(args.log_level, args.log_format)

    if hasattr(args, "func"):
        sys.exit(args.func(args))
    else:
        parser.print_help()
        sys.exit(EXIT_BAD_ARGS)


if __name__ == "__main__":
    main()
