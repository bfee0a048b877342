import itertools
import unittest

from merkleauth.crypto import sha256_hex
from merkleauth.errors import IdentityRangeError, NotFoundError, StateError
from merkleauth.merkle import MerkleTree
from merkleauth.protocol import Authenticator
from merkleauth.registry import Registry

NOW = 1_700_000_000_000


def counting_keys():
    counter = itertools.count()
    return lambda: sha256_hex(f"key-{next(counter)}")


class TestRegistry(unittest.TestCase):
    def setUp(self) -> None:
        self.registry = Registry(
            Authenticator(clock=lambda: NOW, validity_window_ms=300_000),
            key_source=counting_keys(),
        )

    def test_initialize_snapshot(self) -> None:
        snapshot = self.registry.initialize(5)
        expected_root = MerkleTree.from_keys([sha256_hex(f"key-{i}") for i in range(5)]).root_hash()

        self.assertEqual(snapshot.identity_count, 5)
        self.assertEqual(snapshot.root_hash, expected_root)
        self.assertEqual(snapshot.stats.leaf_nodes, 5)
        self.assertEqual(snapshot.stats.tree_height, 4)
        self.assertEqual([entry["index"] for entry in snapshot.identities], list(range(5)))
        for entry in snapshot.identities:
            self.assertTrue(entry["identity_id"].endswith("..."))
            self.assertEqual(len(entry["public_key_preview"]), 11)

        payload = snapshot.to_dict()
        self.assertEqual(payload["tree_stats"]["root_hash"], expected_root)

    def test_identity_count_bounds(self) -> None:
        for count in (0, 1, 33, 100):
            with self.assertRaises(IdentityRangeError):
                self.registry.initialize(count)
        self.assertFalse(self.registry.is_initialized)

        self.registry.initialize(2)
        self.registry.initialize(32)
        self.assertEqual(self.registry.get_status()["identity_count"], 32)

    def test_failed_initialize_keeps_previous_state(self) -> None:
        self.registry.initialize(4)
        root = self.registry.tree.root_hash()

        with self.assertRaises(IdentityRangeError):
            self.registry.initialize(64)
        self.assertEqual(self.registry.tree.root_hash(), root)
        self.assertEqual(self.registry.get_status()["identity_count"], 4)

    def test_operations_before_initialize(self) -> None:
        with self.assertRaises(StateError):
            self.registry.generate_zk_proof(0)
        with self.assertRaises(StateError):
            self.registry.verify_zk_proof(None)
        self.assertEqual(self.registry.get_status()["initialized"], False)
        self.assertEqual(self.registry.list_identities(), [])

    def test_generate_and_verify(self) -> None:
        self.registry.initialize(6)
        bundle = self.registry.generate_zk_proof(3)

        self.assertIs(self.registry.current_proof, bundle)
        self.assertEqual(bundle.membership_proof.leaf_index, 3)
        self.assertTrue(self.registry.verify_zk_proof(bundle).is_valid)
        self.assertTrue(self.registry.get_status()["has_current_proof"])

    def test_unknown_identity(self) -> None:
        self.registry.initialize(3)
        with self.assertRaises(NotFoundError):
            self.registry.generate_zk_proof(3)
        self.assertIsNone(self.registry.current_proof)

    def test_status(self) -> None:
        self.registry.initialize(8)
        status = self.registry.get_status()

        self.assertEqual(
            status,
            {
                "initialized": True,
                "identity_count": 8,
                "root_hash": self.registry.tree.root_hash(),
                "tree_height": 4,
                "total_nodes": 15,
                "has_current_proof": False,
            },
        )

    def test_list_identities(self) -> None:
        self.registry.initialize(2)
        identities = self.registry.list_identities()

        self.assertEqual([entry["label"] for entry in identities], ["Identity 1", "Identity 2"])
        self.assertEqual(identities[0]["public_key_preview"], sha256_hex("key-0")[:16] + "...")
        self.assertEqual(identities[1]["identity_id_preview"], sha256_hex(sha256_hex("key-1"))[:16] + "...")

    def test_registry_tree_cannot_be_rebuilt(self) -> None:
        self.registry.initialize(4)
        root = self.registry.tree.root_hash()

        with self.assertRaises(StateError):
            self.registry.tree.build([sha256_hex("intruder"), sha256_hex("other")])
        self.assertEqual(self.registry.tree.root_hash(), root)
        self.assertTrue(self.registry.verify_zk_proof(self.registry.generate_zk_proof(3)).is_valid)

    def test_reset_discards_everything(self) -> None:
        self.registry.initialize(4)
        self.registry.generate_zk_proof(0)
        self.registry.reset()

        self.assertFalse(self.registry.is_initialized)
        self.assertIsNone(self.registry.tree)
        self.assertIsNone(self.registry.current_proof)
        self.assertEqual(self.registry.get_status(), {"initialized": False, "message": "System is not initialized"})

    def test_reinitialize_clears_current_proof(self) -> None:
        self.registry.initialize(4)
        self.registry.generate_zk_proof(1)
        self.registry.initialize(4)
        self.assertIsNone(self.registry.current_proof)


if __name__ == "__main__":
    unittest.main()
