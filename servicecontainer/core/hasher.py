"""Canonical hashing helpers for naming container generations.

A generation name must depend only on what is generated, so two processes
compiling the same inputs agree on the directory they write to.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any

GENERATION_PREFIX = "Container"
GENERATION_DIGEST_LENGTH = 10


def canonical_json_bytes(obj: Any) -> bytes:
    """Produce canonical JSON bytes — deterministic, sorted, compact.

    - sorted keys
    - no whitespace separators (",", ":")
    - ensure_ascii=True
    - UTF-8 encoding
    """
    return json.dumps(
        obj, sort_keys=True, separators=(",", ":"), ensure_ascii=True
    ).encode("utf-8")


def sha256_hex(data: bytes) -> str:
    """Return the SHA-256 hex digest of raw bytes."""
    return hashlib.sha256(data).hexdigest()


def generation_name(class_name: str, files: dict[str, str]) -> str:
    """Name the generation holding *files* (relative name -> source).

    Returns ``Container<digest>``; the digest covers the class name and every
    file, so any change to the generated code yields a new generation.
    """
    payload = {"class": class_name, "files": files}
    digest = sha256_hex(canonical_json_bytes(payload))
    return f"{GENERATION_PREFIX}{digest[:GENERATION_DIGEST_LENGTH]}"
