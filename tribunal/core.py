"""Core primitives for the tribunal escrow protocol.

This module provides the foundational utilities used throughout the package:
- Cryptographic hashing (SHA-256)
- Canonical JSON serialization (JCS/RFC8785 subset)
- YAML/JSON loading with consistent encoding
- Duration parsing for configuration values

Design principles:
- Pure functions where possible
- No global mutable state
- Explicit error handling
"""

from __future__ import annotations

import hashlib
import json
import pathlib
import re
from decimal import Decimal
from typing import Any

import yaml

# Repository root, computed once at module load
REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
SCHEMAS_DIR = REPO_ROOT / "schemas"


def sha256_bytes(data: bytes) -> str:
    """Compute SHA-256 hash of bytes, returning lowercase hex string."""
    return hashlib.sha256(data).hexdigest()


def load_yaml(path: pathlib.Path) -> Any:
    """Load YAML file with UTF-8 encoding."""
    return yaml.safe_load(pathlib.Path(path).read_text(encoding="utf-8"))


def load_json(path: pathlib.Path) -> Any:
    """Load JSON file with UTF-8 encoding."""
    return json.loads(pathlib.Path(path).read_text(encoding="utf-8"))


def canonical_json_bytes(obj: Any) -> bytes:
    """Serialize object to canonical JSON bytes (JCS/RFC8785 subset).

    Properties:
    - Keys sorted lexicographically
    - No whitespace
    - UTF-8 encoded
    - Floats rejected (amounts travel as integers or decimal strings)

    This ensures byte-for-byte reproducibility for digests and signatures.
    """
    def _reject_floats(o: Any, path: str = "") -> None:
        if isinstance(o, float):
            raise ValueError(f"Float not allowed in canonical JSON at {path}")
        if isinstance(o, dict):
            for k, v in o.items():
                _reject_floats(v, f"{path}.{k}")
        if isinstance(o, list):
            for i, v in enumerate(o):
                _reject_floats(v, f"{path}[{i}]")

    _reject_floats(obj)
    return json.dumps(
        obj,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")


def digest_of(obj: Any) -> str:
    """SHA-256 of the canonical JSON encoding of obj."""
    return sha256_bytes(canonical_json_bytes(obj))


def parse_duration_seconds(duration: Any) -> int:
    """Parse duration string to seconds.

    Supported formats:
    - Shorthand: "30s", "15m", "2h", "7d"
    - ISO8601 subset: "PT1H", "PT30M", "P1D"
    - Plain integer (seconds)

    Raises ValueError for unparseable input.
    """
    if isinstance(duration, int) and not isinstance(duration, bool):
        return duration

    s = str(duration or "").strip()
    if not s:
        raise ValueError("empty duration")

    # Plain integer
    if re.fullmatch(r"\d+", s):
        return int(s)

    # Shorthand: 30s, 15m, 2h, 7d
    m = re.fullmatch(r"(?i)(\d+)\s*([smhd])", s)
    if m:
        n, unit = int(m.group(1)), m.group(2).lower()
        return n * {"s": 1, "m": 60, "h": 3600, "d": 86400}[unit]

    # ISO8601 PnD
    m = re.fullmatch(r"(?i)P(\d+)D", s)
    if m:
        return int(m.group(1)) * 86400

    # ISO8601 PTnHnMnS
    m = re.fullmatch(r"(?i)PT(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?", s)
    if m and any(m.groups()):
        h = int(m.group(1) or 0)
        mi = int(m.group(2) or 0)
        sec = int(m.group(3) or 0)
        return h * 3600 + mi * 60 + sec

    raise ValueError(f"unparseable duration: {duration!r}")


def to_decimal(value: Any) -> Decimal:
    """Coerce a user-supplied amount to Decimal without going through float."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(str(value))
