"""Content hashing utilities for packaged function sources."""

import hashlib
import json
from pathlib import Path


def compact_json(data: object) -> str:
    """Serialise without extra whitespace, keeping insertion order.

    Key order is NOT normalised here; callers that need a stable string
    canonicalise first (see runtime_config.convert_to_sorted_key_value_array).
    """
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False)


def get_source_hash(path: str | Path) -> str:
    """SHA-256 hex digest of raw file bytes.

    Used as the per-file component of the packaged source fingerprint.
    Returns a 64-character lowercase hex string.
    """
    h = hashlib.sha256()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(65536), b""):
            h.update(chunk)
    return h.hexdigest()
