"""Content hashing helpers."""

import hashlib


def file_hash_from_string(value: str) -> str:
    """Return the lowercase hex SHA-256 digest of the UTF-8 encoded text."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()