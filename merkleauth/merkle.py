"""Merkle tree over an ordered sequence of identity public keys.

Leaves hash the public key, internal nodes hash ``left || right`` and an odd
level is padded by pairing its last node with itself. Membership proofs carry
the sibling digests from leaf to root, and can be checked with nothing but
the hash function and the claimed root.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from .crypto import combine_hashes, derive_identity_id, is_valid_hash
from .errors import IdentityRangeError, InvalidArgumentError, NotFoundError, StateError

logger = logging.getLogger(__name__)


def _require_hash(value: object, name: str) -> None:
    if not is_valid_hash(value):
        raise InvalidArgumentError(f"{name} must be a 64 character lowercase hex digest")


def _require_index(value: object, name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidArgumentError(f"{name} must be a non-negative integer")


@dataclass(frozen=True)
class LeafPayload:
    """Identity data carried by a leaf."""

    public_key: str
    index: int


@dataclass(eq=False)
class MerkleNode:
    hash: str
    left: Optional["MerkleNode"] = None
    right: Optional["MerkleNode"] = None
    is_leaf: bool = False
    data: Optional[LeafPayload] = None


@dataclass(frozen=True)
class PathStep:
    """One sibling on the way from a leaf to the root."""

    sibling_hash: str
    is_sibling_on_left: bool
    level: int

    def __post_init__(self) -> None:
        _require_hash(self.sibling_hash, "sibling_hash")
        if not isinstance(self.is_sibling_on_left, bool):
            raise InvalidArgumentError("is_sibling_on_left must be a boolean")
        _require_index(self.level, "level")

    def to_dict(self) -> Dict[str, object]:
        return {
            "sibling_hash": self.sibling_hash,
            "is_sibling_on_left": self.is_sibling_on_left,
            "level": self.level,
        }

    @staticmethod
    def from_dict(data: Dict[str, object]) -> "PathStep":
        return PathStep(
            sibling_hash=data["sibling_hash"],  # type: ignore[arg-type]
            is_sibling_on_left=data["is_sibling_on_left"],  # type: ignore[arg-type]
            level=data["level"],  # type: ignore[arg-type]
        )


@dataclass(frozen=True)
class MembershipProof:
    """Proof that ``leaf_hash`` is committed to by ``root_hash``."""

    leaf_hash: str
    leaf_index: int
    root_hash: str
    path: tuple[PathStep, ...] = ()

    def __post_init__(self) -> None:
        _require_hash(self.leaf_hash, "leaf_hash")
        _require_hash(self.root_hash, "root_hash")
        _require_index(self.leaf_index, "leaf_index")
        # Accept any sequence of steps but store an immutable tuple.
        object.__setattr__(self, "path", tuple(self.path))
        for step in self.path:
            if not isinstance(step, PathStep):
                raise InvalidArgumentError("path must contain PathStep entries")

    def to_dict(self) -> Dict[str, object]:
        return {
            "leaf_hash": self.leaf_hash,
            "leaf_index": self.leaf_index,
            "root_hash": self.root_hash,
            "path": [step.to_dict() for step in self.path],
        }

    @staticmethod
    def from_dict(data: Dict[str, object]) -> "MembershipProof":
        raw_path = data.get("path", [])
        if not isinstance(raw_path, list):
            raise InvalidArgumentError("path must be a list")
        return MembershipProof(
            leaf_hash=data["leaf_hash"],  # type: ignore[arg-type]
            leaf_index=data["leaf_index"],  # type: ignore[arg-type]
            root_hash=data["root_hash"],  # type: ignore[arg-type]
            path=tuple(PathStep.from_dict(step) for step in raw_path),
        )


@dataclass(frozen=True)
class TreeStats:
    total_nodes: int
    leaf_nodes: int
    tree_height: int
    root_hash: Optional[str]

    def to_dict(self) -> Dict[str, object]:
        return {
            "total_nodes": self.total_nodes,
            "leaf_nodes": self.leaf_nodes,
            "tree_height": self.tree_height,
            "root_hash": self.root_hash,
        }


class MerkleTree:
    """
    Binary hash tree over identity public keys.

    Usage:
        tree = MerkleTree()
        tree.build(public_keys)
        proof = tree.generate_membership_proof(public_keys[1])
        assert MerkleTree.verify_membership_proof(proof)
    """

    def __init__(self) -> None:
        self.root: Optional[MerkleNode] = None
        self.leaves: List[MerkleNode] = []
        # Level 0 holds the leaves, the last level holds only the root.
        self._levels: List[List[MerkleNode]] = []
        # Content-addressed index over every node created by the last build.
        self._nodes: Dict[str, MerkleNode] = {}

    @classmethod
    def from_keys(cls, public_keys: Sequence[str]) -> "MerkleTree":
        tree = cls()
        tree.build(public_keys)
        return tree

    def build(self, public_keys: Sequence[str]) -> str:
        """
        Build the tree bottom-up from ``public_keys`` and return the root hash.

        The order of ``public_keys`` fixes the leaf indexes; building from
        the same sequence always yields the same root. A tree is built once,
        so a different key sequence needs a new tree.
        """
        if self.root is not None:
            raise StateError("Tree is already built")
        if not public_keys:
            raise IdentityRangeError("Public key sequence must not be empty")

        nodes: Dict[str, MerkleNode] = {}
        leaves: List[MerkleNode] = []
        for index, public_key in enumerate(public_keys):
            leaf = MerkleNode(
                hash=derive_identity_id(public_key),
                is_leaf=True,
                data=LeafPayload(public_key=public_key, index=index),
            )
            leaves.append(leaf)
            nodes[leaf.hash] = leaf

        levels = [leaves]
        current = leaves
        while len(current) > 1:
            # Pad with the last node if the level is odd
            paired = current + [current[-1]] if len(current) % 2 else current
            next_level: List[MerkleNode] = []
            for i in range(0, len(paired), 2):
                left, right = paired[i], paired[i + 1]
                parent = MerkleNode(hash=combine_hashes(left.hash, right.hash), left=left, right=right)
                next_level.append(parent)
                nodes[parent.hash] = parent
            levels.append(next_level)
            current = next_level

        self.leaves = leaves
        self._levels = levels
        self._nodes = nodes
        self.root = current[0]
        logger.debug(
            "Built Merkle tree with %d leaves, %d levels, root %s",
            len(leaves),
            len(levels),
            self.root.hash[:16],
        )
        return self.root.hash

    def root_hash(self) -> str:
        return self.root.hash if self.root is not None else ""

    @property
    def is_built(self) -> bool:
        return self.root is not None

    @property
    def height(self) -> int:
        # Each stored level adds one to 1 + max(height(left), height(right)).
        return len(self._levels)

    def stats(self) -> TreeStats:
        if self.root is None:
            return TreeStats(total_nodes=0, leaf_nodes=0, tree_height=0, root_hash=None)
        return TreeStats(
            total_nodes=len(self._nodes),
            leaf_nodes=len(self.leaves),
            tree_height=self.height,
            root_hash=self.root.hash,
        )

    def leaf_nodes_info(self) -> List[Dict[str, object]]:
        return [
            {
                "hash": leaf.hash,
                "public_key": leaf.data.public_key,
                "index": leaf.data.index,
            }
            for leaf in self.leaves
            if leaf.data is not None
        ]

    def generate_membership_proof(self, public_key: str) -> MembershipProof:
        """
        Collect the sibling path for ``public_key`` from its leaf to the root.

        Raises:
            StateError: if the tree has not been built
            NotFoundError: if no leaf carries ``public_key``
        """
        if self.root is None:
            raise StateError("Tree must be built first")

        leaf_hash = derive_identity_id(public_key)
        position = next((i for i, leaf in enumerate(self.leaves) if leaf.hash == leaf_hash), None)
        if position is None:
            raise NotFoundError("Identity is not a member of the tree")

        path: List[PathStep] = []
        index = position
        for level in self._levels[:-1]:
            sibling_index = index ^ 1
            # The padded last node of an odd level is its own sibling.
            sibling = level[sibling_index] if sibling_index < len(level) else level[index]
            path.append(
                PathStep(
                    sibling_hash=sibling.hash,
                    is_sibling_on_left=index % 2 == 1,
                    level=len(path),
                )
            )
            index //= 2

        return MembershipProof(
            leaf_hash=leaf_hash,
            leaf_index=position,
            root_hash=self.root.hash,
            path=tuple(path),
        )

    @staticmethod
    def verify_membership_proof(proof: MembershipProof) -> bool:
        """Fold the path from the leaf and compare against the claimed root."""
        current = proof.leaf_hash
        for step in proof.path:
            if step.is_sibling_on_left:
                current = combine_hashes(step.sibling_hash, current)
            else:
                current = combine_hashes(current, step.sibling_hash)
        return current == proof.root_hash


__all__ = [
    "LeafPayload",
    "MembershipProof",
    "MerkleNode",
    "MerkleTree",
    "PathStep",
    "TreeStats",
]
