"""Merkle set-membership authentication demo package."""

from .auth import initialize_registry, prove_membership, verify_bundle
from .errors import (
    IdentityRangeError,
    InvalidArgumentError,
    MerkleAuthError,
    NotFoundError,
    StateError,
)
from .merkle import MembershipProof, MerkleNode, MerkleTree, PathStep, TreeStats
from .protocol import (
    Authenticator,
    Commitment,
    ProofBundle,
    Response,
    VerificationReport,
    VerificationStep,
)
from .registry import IdentityRecord, Registry, RegistrySnapshot

__all__ = [
    "initialize_registry",
    "prove_membership",
    "verify_bundle",
    "IdentityRangeError",
    "InvalidArgumentError",
    "MerkleAuthError",
    "NotFoundError",
    "StateError",
    "MembershipProof",
    "MerkleNode",
    "MerkleTree",
    "PathStep",
    "TreeStats",
    "Authenticator",
    "Commitment",
    "ProofBundle",
    "Response",
    "VerificationReport",
    "VerificationStep",
    "IdentityRecord",
    "Registry",
    "RegistrySnapshot",
]
