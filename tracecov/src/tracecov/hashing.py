"""Hashing utilities."""

import hashlib
import json
from typing import Any


def canonical_json(payload: Any) -> str:
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"), sort_keys=True)


def hash_payload(payload: Any) -> str:
    """Stable sha256 digest of a JSON-serializable payload, independent of key order."""
    return hashlib.sha256(canonical_json(payload).encode("utf-8")).hexdigest()
