"""Protocol constants shared by the tree, the authenticator and the registry."""

from __future__ import annotations

KEY_BYTES = 32
RANDOMNESS_BYTES = 32
HASH_HEX_LENGTH = 64

MIN_IDENTITIES = 2
MAX_IDENTITIES = 32

# Five minutes, in milliseconds.
PROOF_VALIDITY_MS = 5 * 60 * 1000

PREVIEW_LENGTH = 8
