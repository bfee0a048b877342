"""Exception taxonomy for the Merkle authentication demo."""

from __future__ import annotations


class MerkleAuthError(Exception):
    """Base class for every error raised by :mod:`merkleauth`."""


class IdentityRangeError(MerkleAuthError, ValueError):
    """An identity count or key sequence is outside the accepted range."""


class NotFoundError(MerkleAuthError, LookupError):
    """An identity or leaf is not present."""


class StateError(MerkleAuthError, RuntimeError):
    """An operation was attempted before the required initialization."""


class InvalidArgumentError(MerkleAuthError, ValueError):
    """A malformed or missing value was supplied."""


__all__ = [
    "MerkleAuthError",
    "IdentityRangeError",
    "NotFoundError",
    "StateError",
    "InvalidArgumentError",
]
