"""Content identifier helpers.

This module derives content-addressed ids from bytes and builds
unique record ids for datasets and version records.
"""

from __future__ import annotations

import base64
import hashlib
from datetime import datetime, timezone
from uuid import uuid4

from core.constants import CID_PREFIX, HASH_ALGORITHM


def hash_bytes(payload: bytes) -> str:
    """Hash a byte payload using the configured digest algorithm.

    Args:
        payload: Raw content.

    Returns:
        Hex digest string.
    """
    hasher = hashlib.new(HASH_ALGORITHM)
    hasher.update(payload)
    return hasher.hexdigest()


def build_content_id(payload: bytes) -> str:
    """Build a CIDv1-style identifier from content bytes.

    Args:
        payload: Raw content.

    Returns:
        Prefixed lowercase base32 digest, stable for identical content.
    """
    digest = hashlib.new(HASH_ALGORITHM, payload).digest()
    encoded = base64.b32encode(digest).decode("ascii").lower().rstrip("=")
    return f"{CID_PREFIX}{encoded}"


def is_content_id(value: str) -> bool:
    """Return true when a string looks like an id built by this module."""
    if not value.startswith(CID_PREFIX) or len(value) < 2:
        return False
    return all(char in "abcdefghijklmnopqrstuvwxyz234567" for char in value[1:])


def build_record_id(kind: str, seed: str) -> str:
    """Build a unique id for a dataset or version record.

    Args:
        kind: Record kind, e.g. dataset or version.
        seed: Human-meaningful seed such as a name or version string.

    Returns:
        Content id derived from kind, seed, timestamp, and a random nonce.
    """
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
    nonce = uuid4().hex
    return build_content_id(f"{kind}-{seed}-{timestamp}-{nonce}".encode("utf-8"))
