"""Commitment, challenge and response wrapper around Merkle membership.

The prover commits to its key with fresh randomness, derives the challenge
Fiat-Shamir style from the commitment and the membership proof, and answers
with a digest of its randomness and the challenge. The challenge depends only
on values the prover controls, so this is a demonstration protocol rather
than a sound zero-knowledge proof.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Dict, List, Mapping, Optional, Union

from .config import get_settings
from .constants import HASH_HEX_LENGTH, RANDOMNESS_BYTES
from .crypto import is_valid_hash, random_hex, sha256_hex, truncate_hash
from .errors import InvalidArgumentError, NotFoundError, StateError
from .merkle import MembershipProof, MerkleTree

if TYPE_CHECKING:
    from .registry import IdentityRecord

logger = logging.getLogger(__name__)

STEP_MEMBERSHIP = "Merkle membership proof"
STEP_CHALLENGE = "Challenge integrity"
STEP_RESPONSE = "Response integrity"
STEP_FRESHNESS = "Timestamp freshness"
STEP_PROCESS = "Verification process"


def current_millis() -> int:
    """Milliseconds since the Unix epoch."""

    return int(time.time() * 1000)


def _require_hash(value: object, name: str) -> None:
    if not is_valid_hash(value):
        raise InvalidArgumentError(f"{name} must be a 64 character lowercase hex digest")


def _require_timestamp(value: object, name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidArgumentError(f"{name} must be a non-negative integer")


@dataclass(frozen=True)
class Commitment:
    """Hiding commitment ``H(identity_key || randomness)``."""

    hash: str
    randomness: str
    timestamp: int

    def __post_init__(self) -> None:
        _require_hash(self.hash, "commitment hash")
        _require_hash(self.randomness, "commitment randomness")
        _require_timestamp(self.timestamp, "commitment timestamp")

    def to_dict(self) -> Dict[str, object]:
        return {"hash": self.hash, "randomness": self.randomness, "timestamp": self.timestamp}

    @staticmethod
    def from_dict(data: Mapping[str, object]) -> "Commitment":
        return Commitment(
            hash=data["hash"],  # type: ignore[arg-type]
            randomness=data["randomness"],  # type: ignore[arg-type]
            timestamp=data["timestamp"],  # type: ignore[arg-type]
        )


@dataclass(frozen=True)
class Response:
    """Digest of the commitment randomness followed by the challenge."""

    hash: str
    raw_data: str
    timestamp: int

    def __post_init__(self) -> None:
        _require_hash(self.hash, "response hash")
        if not isinstance(self.raw_data, str) or len(self.raw_data) != 2 * HASH_HEX_LENGTH or not all(
            is_valid_hash(part) for part in (self.raw_data[:HASH_HEX_LENGTH], self.raw_data[HASH_HEX_LENGTH:])
        ):
            raise InvalidArgumentError("response raw_data must be randomness followed by challenge")
        _require_timestamp(self.timestamp, "response timestamp")

    def to_dict(self) -> Dict[str, object]:
        return {"hash": self.hash, "raw_data": self.raw_data, "timestamp": self.timestamp}

    @staticmethod
    def from_dict(data: Mapping[str, object]) -> "Response":
        return Response(
            hash=data["hash"],  # type: ignore[arg-type]
            raw_data=data["raw_data"],  # type: ignore[arg-type]
            timestamp=data["timestamp"],  # type: ignore[arg-type]
        )


@dataclass(frozen=True)
class ProofBundle:
    """Everything a verifier needs to check one membership claim.

    ``identity_index`` is kept for the demonstration only; it identifies the
    prover and would be dropped by any deployment that wants anonymity.
    """

    commitment: Commitment
    challenge: str
    response: Response
    membership_proof: MembershipProof
    timestamp: int
    identity_index: Optional[int] = None

    def __post_init__(self) -> None:
        if not isinstance(self.commitment, Commitment):
            raise InvalidArgumentError("commitment must be a Commitment")
        if not isinstance(self.response, Response):
            raise InvalidArgumentError("response must be a Response")
        if not isinstance(self.membership_proof, MembershipProof):
            raise InvalidArgumentError("membership_proof must be a MembershipProof")
        _require_hash(self.challenge, "challenge")
        _require_timestamp(self.timestamp, "bundle timestamp")
        if self.identity_index is not None:
            _require_timestamp(self.identity_index, "identity_index")

    def summary(self) -> Dict[str, object]:
        return {
            "commitment_hash": truncate_hash(self.commitment.hash),
            "challenge_hash": truncate_hash(self.challenge),
            "response_hash": truncate_hash(self.response.hash),
            "path_length": len(self.membership_proof.path),
            "root_hash": truncate_hash(self.membership_proof.root_hash),
        }

    def to_dict(self) -> Dict[str, object]:
        return {
            "commitment": self.commitment.to_dict(),
            "challenge": self.challenge,
            "response": self.response.to_dict(),
            "membership_proof": self.membership_proof.to_dict(),
            "timestamp": self.timestamp,
            "identity_index": self.identity_index,
        }

    @staticmethod
    def from_dict(data: Mapping[str, object]) -> "ProofBundle":
        return ProofBundle(
            commitment=Commitment.from_dict(data["commitment"]),  # type: ignore[arg-type]
            challenge=data["challenge"],  # type: ignore[arg-type]
            response=Response.from_dict(data["response"]),  # type: ignore[arg-type]
            membership_proof=MembershipProof.from_dict(data["membership_proof"]),  # type: ignore[arg-type]
            timestamp=data["timestamp"],  # type: ignore[arg-type]
            identity_index=data.get("identity_index"),  # type: ignore[arg-type]
        )


@dataclass(frozen=True)
class VerificationStep:
    name: str
    result: bool
    details: str

    def to_dict(self) -> Dict[str, object]:
        return {"step": self.name, "result": self.result, "details": self.details}


@dataclass
class VerificationReport:
    """Outcome of every verification step plus the overall verdict."""

    is_valid: bool
    steps: List[VerificationStep] = field(default_factory=list)

    @property
    def passed_steps(self) -> int:
        return sum(1 for step in self.steps if step.result)

    @property
    def final_result(self) -> str:
        return "Proof valid" if self.is_valid else "Proof invalid"

    def step(self, name: str) -> Optional[VerificationStep]:
        return next((step for step in self.steps if step.name == name), None)

    def to_dict(self) -> Dict[str, object]:
        return {
            "is_valid": self.is_valid,
            "verification_steps": [step.to_dict() for step in self.steps],
            "summary": {
                "total_steps": len(self.steps),
                "passed_steps": self.passed_steps,
                "final_result": self.final_result,
            },
        }


def derive_challenge(commitment: Commitment, membership_proof: MembershipProof) -> str:
    return sha256_hex(commitment.hash + membership_proof.root_hash + membership_proof.leaf_hash)


def derive_response_hash(randomness: str, challenge: str) -> str:
    return sha256_hex(randomness + challenge)


class Authenticator:
    """Builds and checks proof bundles.

    ``clock`` and ``randomness`` default to wall-clock milliseconds and
    :func:`secrets.token_hex`; tests replace them to pin the transcript.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], int] = current_millis,
        randomness: Callable[[int], str] = random_hex,
        validity_window_ms: int | None = None,
    ) -> None:
        self.clock = clock
        self.randomness = randomness
        if validity_window_ms is None:
            validity_window_ms = get_settings().proof_validity_ms
        if validity_window_ms < 0:
            raise InvalidArgumentError("Validity window must not be negative")
        self.validity_window_ms = validity_window_ms

    def commit(self, identity_key: str) -> Commitment:
        nonce = self.randomness(RANDOMNESS_BYTES)
        return Commitment(hash=sha256_hex(identity_key + nonce), randomness=nonce, timestamp=self.clock())

    def respond(self, commitment: Commitment, challenge: str) -> Response:
        raw_data = commitment.randomness + challenge
        return Response(hash=sha256_hex(raw_data), raw_data=raw_data, timestamp=self.clock())

    def generate_proof(
        self,
        identity: Optional["IdentityRecord"],
        tree: Optional[MerkleTree],
    ) -> ProofBundle:
        """Produce a proof bundle for ``identity`` against ``tree``.

        Raises:
            StateError: if ``tree`` is missing or not built
            NotFoundError: if ``identity`` is missing or not a tree member
        """
        if tree is None or not tree.is_built:
            raise StateError("System is not initialized")
        if identity is None:
            raise NotFoundError("Identity does not exist")

        membership_proof = tree.generate_membership_proof(identity.public_key)
        commitment = self.commit(identity.public_key)
        challenge = derive_challenge(commitment, membership_proof)
        response = self.respond(commitment, challenge)

        bundle = ProofBundle(
            commitment=commitment,
            challenge=challenge,
            response=response,
            membership_proof=membership_proof,
            timestamp=self.clock(),
            identity_index=identity.index,
        )
        logger.info(
            "Generated proof bundle with %d path steps against root %s",
            len(membership_proof.path),
            truncate_hash(membership_proof.root_hash, 16),
        )
        return bundle

    def is_fresh(self, timestamp: int) -> bool:
        return self.clock() - timestamp <= self.validity_window_ms

    def verify_proof(self, bundle: Union[ProofBundle, Mapping[str, object], None]) -> VerificationReport:
        """Run every verification step and report each result.

        A mapping is parsed into a :class:`ProofBundle` first; parsing and
        any other unexpected fault is reported as a failed step instead of
        being raised.
        """
        if bundle is None:
            raise InvalidArgumentError("Proof bundle is empty")

        steps: List[VerificationStep] = []
        try:
            if not isinstance(bundle, ProofBundle):
                bundle = ProofBundle.from_dict(bundle)

            membership_valid = MerkleTree.verify_membership_proof(bundle.membership_proof)
            steps.append(
                VerificationStep(
                    STEP_MEMBERSHIP,
                    membership_valid,
                    "Identity belongs to the registered set"
                    if membership_valid
                    else "Identity does not belong to the registered set",
                )
            )

            challenge_valid = derive_challenge(bundle.commitment, bundle.membership_proof) == bundle.challenge
            steps.append(
                VerificationStep(
                    STEP_CHALLENGE,
                    challenge_valid,
                    "Challenge correctly derived" if challenge_valid else "Challenge mismatch",
                )
            )

            response_valid = (
                derive_response_hash(bundle.commitment.randomness, bundle.challenge) == bundle.response.hash
            )
            steps.append(
                VerificationStep(
                    STEP_RESPONSE,
                    response_valid,
                    "Response consistent with commitment and challenge"
                    if response_valid
                    else "Response verification failed",
                )
            )

            fresh = self.is_fresh(bundle.timestamp)
            steps.append(
                VerificationStep(
                    STEP_FRESHNESS,
                    fresh,
                    "Proof is within the validity window" if fresh else "Proof has expired",
                )
            )
            is_valid = all(step.result for step in steps)
        except Exception as exc:
            logger.warning("Verification aborted: %s", exc)
            steps.append(VerificationStep(STEP_PROCESS, False, f"Verification error: {exc}"))
            is_valid = False

        report = VerificationReport(is_valid=is_valid, steps=steps)
        if not is_valid:
            logger.warning(
                "Proof rejected (%d/%d steps passed)", report.passed_steps, len(report.steps)
            )
        return report


__all__ = [
    "Authenticator",
    "Commitment",
    "ProofBundle",
    "Response",
    "VerificationReport",
    "VerificationStep",
    "current_millis",
    "derive_challenge",
    "derive_response_hash",
]
