"""Hash and randomness helpers backing the tree and the protocol."""

from __future__ import annotations

import hashlib
import re
import secrets

from .constants import KEY_BYTES, PREVIEW_LENGTH

_HEX_DIGEST = re.compile(r"[0-9a-f]{64}")


def sha256_hex(data: str | bytes) -> str:
    """Return the lowercase hex SHA-256 digest of ``data``.

    Text is hashed as its UTF-8 encoding, so concatenated hex strings are
    hashed exactly as they read.
    """

    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def random_hex(length: int) -> str:
    """Return ``length`` secure random bytes as a ``2 * length`` hex string."""

    if length <= 0:
        raise ValueError("Random byte count must be positive")
    return secrets.token_hex(length)


def generate_public_key() -> str:
    """Generate a fresh simulated public key."""

    return random_hex(KEY_BYTES)


def derive_identity_id(public_key: str) -> str:
    """Derive the stable identity identifier (and leaf hash) of a key."""

    return sha256_hex(public_key)


def combine_hashes(left: str, right: str) -> str:
    """Hash two child digests in left-then-right order."""

    return sha256_hex(left + right)


def is_valid_hash(value: object) -> bool:
    return isinstance(value, str) and _HEX_DIGEST.fullmatch(value) is not None


def truncate_hash(value: str, length: int = PREVIEW_LENGTH) -> str:
    return value[:length] + "..."


__all__ = [
    "combine_hashes",
    "derive_identity_id",
    "generate_public_key",
    "is_valid_hash",
    "random_hex",
    "sha256_hex",
    "truncate_hash",
]
