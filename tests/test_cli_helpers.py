from __future__ import annotations

import json

import numpy as np
import pytest
import soundfile as sf

from abloop.cli.main import (
    EXIT_DECODE_ERROR,
    EXIT_LOOP_FOUND,
    EXIT_NO_LOOP,
    EXIT_SETTINGS_ERROR,
    _iter_audio_files,
    _summarize_batch,
    main,
)
from tests.conftest import FS, build_repeat_track, noise, write_settings


def _write_wav(path, x, fs: int = FS):
    sf.write(str(path), np.asarray(x, dtype=np.float32), fs, subtype="FLOAT")
    return path


def _run(argv) -> int:
    with pytest.raises(SystemExit) as exc:
        main(argv)
    return exc.value.code


def test_summarize_batch_counts_and_confidence():
    loop_report = {"result": {
        "loop_points": {"start_sample": 0, "end_sample": 10, "confidence": 0.8},
        "fade_out_detected": True,
    }}
    other_report = {"result": {
        "loop_points": {"start_sample": 0, "end_sample": 10, "confidence": 0.6},
        "fade_out_detected": False,
    }}
    results = [
        ("b.wav", "loop", None, other_report),
        ("a.wav", "loop", None, loop_report),
        ("c.wav", "error", "decode failed", None),
    ]
    summary = _summarize_batch(results)
    assert summary["total_files"] == 3
    assert summary["counts"] == {"loop": 2, "no_loop": 0, "error": 1}
    assert summary["fade_outs_detected"] == 1
    assert summary["mean_confidence"] == 0.7
    assert [f["path"] for f in summary["files"]] == ["a.wav", "b.wav", "c.wav"]
    assert summary["files"][2]["error"] == "decode failed"


def test_iter_audio_files_filters_and_sorts(tmp_path):
    (tmp_path / "b.wav").write_bytes(b"")
    (tmp_path / "a.FLAC").write_bytes(b"")
    (tmp_path / "notes.txt").write_text("x", encoding="utf-8")
    sub = tmp_path / "sub"
    sub.mkdir()
    (sub / "c.ogg").write_bytes(b"")
    assert [p.name for p in _iter_audio_files(tmp_path, False)] == ["a.FLAC", "b.wav"]
    assert len(_iter_audio_files(tmp_path, True)) == 3
    with pytest.raises(ValueError):
        _iter_audio_files(tmp_path / "missing", False)


def test_analyze_prints_report(tmp_path, capsys):
    path = _write_wav(tmp_path / "loop.wav", build_repeat_track())
    assert _run(["analyze", str(path)]) == EXIT_LOOP_FOUND
    report = json.loads(capsys.readouterr().out)
    assert report["result"]["loop_detected"] is True
    assert report["result"]["loop_points"]["start_s"] == 10.0
    assert report["input"]["sample_rate_hz"] == FS


def test_analyze_exit_codes(tmp_path):
    short = _write_wav(tmp_path / "short.wav", noise(8.0))
    assert _run(["analyze", str(short)]) == EXIT_NO_LOOP
    assert _run(["analyze", str(short), "--detection-mode", "fade_out_only"]) == EXIT_LOOP_FOUND
    assert _run(["analyze", str(tmp_path / "missing.wav")]) == EXIT_DECODE_ERROR
    bad = write_settings(tmp_path, {"fade_out_window_size_ms": -5})
    assert _run(["analyze", str(short), "--settings", str(bad)]) == EXIT_SETTINGS_ERROR


def test_analyze_writes_report_file(tmp_path):
    path = _write_wav(tmp_path / "loop.wav", build_repeat_track())
    out = tmp_path / "report.json"
    assert _run(["analyze", str(path), "--out", str(out), "--verbose"]) == EXIT_LOOP_FOUND
    report = json.loads(out.read_text(encoding="utf-8"))
    assert report["integrity"]["report_hash_sha256"]


def test_export_renders_loops(tmp_path):
    path = _write_wav(tmp_path / "loop.wav", build_repeat_track())
    out = tmp_path / "render" / "loop.wav"
    assert _run(["export", str(path), "--out", str(out), "--loops", "2"]) == EXIT_LOOP_FOUND
    info = sf.info(str(out))
    # 35 s intro, one 25 s repeat, then 40 s from the loop start to the end.
    assert info.frames == 100 * FS
    assert info.samplerate == FS


def test_batch_writes_reports_and_summary(tmp_path):
    folder = tmp_path / "in"
    folder.mkdir()
    _write_wav(folder / "a.wav", build_repeat_track())
    _write_wav(folder / "b.wav", noise(8.0))
    out_dir = tmp_path / "out"
    code = _run(["batch", "--folder", str(folder), "--out-dir", str(out_dir), "--workers", "1"])
    assert code == EXIT_LOOP_FOUND
    assert (out_dir / "a.abloop.json").exists()
    summary = json.loads((out_dir / "batch-summary.json").read_text(encoding="utf-8"))
    assert summary["counts"] == {"loop": 1, "no_loop": 1, "error": 0}
