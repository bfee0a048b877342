import itertools
import unittest
from dataclasses import replace

from merkleauth.constants import PROOF_VALIDITY_MS
from merkleauth.crypto import sha256_hex
from merkleauth.errors import InvalidArgumentError, NotFoundError, StateError
from merkleauth.merkle import MerkleTree
from merkleauth.protocol import (
    STEP_CHALLENGE,
    STEP_FRESHNESS,
    STEP_MEMBERSHIP,
    STEP_PROCESS,
    STEP_RESPONSE,
    Authenticator,
    ProofBundle,
    Response,
    derive_challenge,
)
from merkleauth.registry import IdentityRecord

NOW = 1_700_000_000_000


def fixed_randomness(length: int) -> str:
    return "ab" * length


def make_identity(index: int) -> IdentityRecord:
    key = sha256_hex(f"identity-{index}")
    return IdentityRecord(index=index, public_key=key, identity_id=sha256_hex(key))


class TestAuthenticator(unittest.TestCase):
    def setUp(self) -> None:
        self.identities = [make_identity(index) for index in range(5)]
        self.tree = MerkleTree.from_keys([identity.public_key for identity in self.identities])
        self.authenticator = Authenticator(
            clock=lambda: NOW,
            randomness=fixed_randomness,
            validity_window_ms=PROOF_VALIDITY_MS,
        )

    def _bundle(self, index: int = 2) -> ProofBundle:
        return self.authenticator.generate_proof(self.identities[index], self.tree)

    def test_transcript_derivation(self) -> None:
        identity = self.identities[2]
        bundle = self._bundle()
        randomness = fixed_randomness(32)

        self.assertEqual(bundle.commitment.randomness, randomness)
        self.assertEqual(bundle.commitment.hash, sha256_hex(identity.public_key + randomness))
        self.assertEqual(
            bundle.challenge,
            sha256_hex(bundle.commitment.hash + self.tree.root_hash() + identity.identity_id),
        )
        self.assertEqual(bundle.response.raw_data, randomness + bundle.challenge)
        self.assertEqual(bundle.response.hash, sha256_hex(randomness + bundle.challenge))
        self.assertEqual(bundle.timestamp, NOW)
        self.assertEqual(bundle.identity_index, 2)

    def test_valid_bundle_passes_every_step(self) -> None:
        report = self.authenticator.verify_proof(self._bundle())

        self.assertTrue(report.is_valid)
        self.assertEqual(
            [step.name for step in report.steps],
            [STEP_MEMBERSHIP, STEP_CHALLENGE, STEP_RESPONSE, STEP_FRESHNESS],
        )
        summary = report.to_dict()["summary"]
        self.assertEqual(summary, {"total_steps": 4, "passed_steps": 4, "final_result": "Proof valid"})

    def test_tampered_response_only_fails_response_step(self) -> None:
        bundle = self._bundle()
        tampered = replace(bundle, response=replace(bundle.response, hash=sha256_hex("forged")))
        report = self.authenticator.verify_proof(tampered)

        self.assertFalse(report.is_valid)
        self.assertEqual(len(report.steps), 4)
        self.assertTrue(report.step(STEP_MEMBERSHIP).result)
        self.assertTrue(report.step(STEP_CHALLENGE).result)
        self.assertFalse(report.step(STEP_RESPONSE).result)
        self.assertTrue(report.step(STEP_FRESHNESS).result)
        self.assertEqual(report.to_dict()["summary"]["final_result"], "Proof invalid")

    def test_tampered_challenge_fails_challenge_and_response(self) -> None:
        bundle = self._bundle()
        report = self.authenticator.verify_proof(replace(bundle, challenge=sha256_hex("other")))

        self.assertTrue(report.step(STEP_MEMBERSHIP).result)
        self.assertFalse(report.step(STEP_CHALLENGE).result)
        self.assertFalse(report.step(STEP_RESPONSE).result)
        self.assertEqual(report.passed_steps, 2)

    def test_foreign_root_fails_membership_and_challenge(self) -> None:
        bundle = self._bundle()
        proof = replace(bundle.membership_proof, root_hash=sha256_hex("elsewhere"))
        report = self.authenticator.verify_proof(replace(bundle, membership_proof=proof))

        self.assertFalse(report.step(STEP_MEMBERSHIP).result)
        self.assertFalse(report.step(STEP_CHALLENGE).result)
        self.assertTrue(report.step(STEP_RESPONSE).result)

    def test_freshness_boundary(self) -> None:
        bundle = self._bundle()

        expired = replace(bundle, timestamp=NOW - PROOF_VALIDITY_MS - 1)
        report = self.authenticator.verify_proof(expired)
        self.assertFalse(report.step(STEP_FRESHNESS).result)
        self.assertEqual(report.step(STEP_FRESHNESS).details, "Proof has expired")
        self.assertFalse(report.is_valid)

        fresh = replace(bundle, timestamp=NOW - PROOF_VALIDITY_MS + 1)
        self.assertTrue(self.authenticator.verify_proof(fresh).is_valid)

        edge = replace(bundle, timestamp=NOW - PROOF_VALIDITY_MS)
        self.assertTrue(self.authenticator.verify_proof(edge).step(STEP_FRESHNESS).result)

    def test_freshness_follows_verifier_clock(self) -> None:
        bundle = self._bundle()
        ticks = itertools.count(NOW + PROOF_VALIDITY_MS + 1)
        later = Authenticator(clock=lambda: next(ticks), validity_window_ms=PROOF_VALIDITY_MS)

        report = later.verify_proof(bundle)
        self.assertFalse(report.step(STEP_FRESHNESS).result)
        self.assertEqual(report.passed_steps, 3)

    def test_dict_bundle_is_accepted(self) -> None:
        report = self.authenticator.verify_proof(self._bundle().to_dict())
        self.assertTrue(report.is_valid)

    def test_malformed_bundle_becomes_failed_step(self) -> None:
        payload = self._bundle().to_dict()
        payload["challenge"] = "zz"
        report = self.authenticator.verify_proof(payload)

        self.assertFalse(report.is_valid)
        self.assertEqual([step.name for step in report.steps], [STEP_PROCESS])
        self.assertIn("Verification error", report.steps[0].details)

        report = self.authenticator.verify_proof({"commitment": {}})
        self.assertFalse(report.is_valid)
        self.assertEqual(report.steps[-1].name, STEP_PROCESS)

    def test_missing_bundle_rejected(self) -> None:
        with self.assertRaises(InvalidArgumentError):
            self.authenticator.verify_proof(None)

    def test_generate_requires_built_tree_and_identity(self) -> None:
        with self.assertRaises(StateError):
            self.authenticator.generate_proof(self.identities[0], MerkleTree())
        with self.assertRaises(StateError):
            self.authenticator.generate_proof(self.identities[0], None)
        with self.assertRaises(NotFoundError):
            self.authenticator.generate_proof(None, self.tree)
        with self.assertRaises(NotFoundError):
            self.authenticator.generate_proof(make_identity(99), self.tree)

    def test_fresh_randomness_per_bundle(self) -> None:
        authenticator = Authenticator(clock=lambda: NOW)
        first = authenticator.generate_proof(self.identities[0], self.tree)
        second = authenticator.generate_proof(self.identities[0], self.tree)

        self.assertNotEqual(first.commitment.randomness, second.commitment.randomness)
        self.assertNotEqual(first.challenge, second.challenge)
        self.assertTrue(authenticator.verify_proof(second).is_valid)

    def test_summary_is_redacted(self) -> None:
        bundle = self._bundle()
        summary = bundle.summary()

        self.assertEqual(summary["path_length"], len(bundle.membership_proof.path))
        self.assertEqual(summary["challenge_hash"], bundle.challenge[:8] + "...")
        self.assertEqual(derive_challenge(bundle.commitment, bundle.membership_proof), bundle.challenge)

    def test_response_rejects_malformed_raw_data(self) -> None:
        with self.assertRaises(InvalidArgumentError):
            Response(hash=sha256_hex("x"), raw_data="abc", timestamp=NOW)


if __name__ == "__main__":
    unittest.main()
