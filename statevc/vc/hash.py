"""Checksum and integrity utilities for state documents."""

import hashlib
import json
from typing import Any

from statevc.vc.walk import deep_clone


def canonical_json(document: Any) -> str:
    """
    Serialize a document to canonical JSON.

    The document is walked first so unsupported values fail loudly instead
    of being coerced, then dumped with sorted keys for deterministic output.
    """
    return json.dumps(
        deep_clone(document),
        sort_keys=True,
        ensure_ascii=False,
        separators=(",", ":"),
        allow_nan=False,
    )


def compute_checksum(document: Any) -> str:
    """
    Compute the SHA256 checksum of a state document.

    Args:
        document: State document to digest.

    Returns:
        Full hexadecimal SHA256 digest.
    """
    serialized = canonical_json(document)
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()


def compute_size(document: Any) -> int:
    """Size in bytes of the canonical serialization of a document."""
    return len(canonical_json(document).encode("utf-8"))


def verify_checksum(document: Any, expected: str) -> bool:
    """Check a document against a previously computed checksum."""
    try:
        return compute_checksum(document) == expected
    except (TypeError, ValueError):
        return False


def compute_hash(data: dict[str, Any]) -> str:
    """
    Compute a short SHA256 hash of a metadata dictionary.

    Returns:
        First 16 hex characters of the digest (64 bits).
    """
    serialized = json.dumps(data, sort_keys=True, ensure_ascii=False, default=str)
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()[:16]
