"""Canonical JSON, hashing and quantization for stable reports."""
from __future__ import annotations
import hashlib
import json
import math


def canonical_dumps(obj) -> str:
    """Serialize object to canonical JSON (sorted keys, minimal whitespace)."""
    return json.dumps(obj, ensure_ascii=False, sort_keys=True, separators=(",", ":"))


def sha256_hex_canonical_json(obj) -> str:
    return hashlib.sha256(canonical_dumps(obj).encode("utf-8")).hexdigest()


def sha256_hex_file(path: str) -> str:
    """Compute SHA256 hash of a file."""
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            h.update(chunk)
    return h.hexdigest()


def q(x: float | None, step: float) -> float | None:
    """Round half away from zero to the nearest multiple of ``step``; None/NaN/inf pass through."""
    if x is None or math.isnan(x) or math.isinf(x):
        return x
    inv = 1.0 / step
    y = x * inv
    yq = math.floor(y + 0.5) if y >= 0 else -math.floor(-y + 0.5)
    return yq / inv
