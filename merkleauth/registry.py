"""In-memory identity registry backing one authentication session."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from typing import Callable, Dict, List, Mapping, Optional, Tuple, Union

from .constants import MAX_IDENTITIES, MIN_IDENTITIES
from .crypto import derive_identity_id, generate_public_key, truncate_hash
from .errors import IdentityRangeError, StateError
from .merkle import MerkleTree, TreeStats
from .protocol import Authenticator, ProofBundle, VerificationReport

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IdentityRecord:
    """A registered identity: its position, key and derived identifier."""

    index: int
    public_key: str
    identity_id: str

    def preview(self) -> Dict[str, object]:
        return {
            "index": self.index,
            "identity_id": truncate_hash(self.identity_id),
            "public_key_preview": truncate_hash(self.public_key),
        }


@dataclass(frozen=True)
class RegistrySnapshot:
    """Redacted view returned after initialization."""

    identity_count: int
    root_hash: str
    stats: TreeStats
    identities: Tuple[Dict[str, object], ...]

    def to_dict(self) -> Dict[str, object]:
        return {
            "identity_count": self.identity_count,
            "root_hash": self.root_hash,
            "tree_stats": self.stats.to_dict(),
            "identities": list(self.identities),
        }


@dataclass(frozen=True)
class _RegistryState:
    tree: MerkleTree
    identities: Mapping[int, IdentityRecord]
    current_proof: Optional[ProofBundle] = None


class Registry:
    """Owns the tree, the identity map and the last generated bundle.

    All three live in one immutable state value that is replaced as a whole,
    so ``initialize`` and ``reset`` are single transitions and readers never
    observe a tree without its matching identity map.
    """

    def __init__(
        self,
        authenticator: Authenticator | None = None,
        *,
        key_source: Callable[[], str] = generate_public_key,
    ) -> None:
        self.authenticator = authenticator or Authenticator()
        self.key_source = key_source
        self._state: Optional[_RegistryState] = None
        self._lock = threading.Lock()

    @property
    def is_initialized(self) -> bool:
        return self._state is not None

    @property
    def tree(self) -> Optional[MerkleTree]:
        """The current tree. It is already built and refuses to be rebuilt."""
        state = self._state
        return state.tree if state is not None else None

    @property
    def current_proof(self) -> Optional[ProofBundle]:
        state = self._state
        return state.current_proof if state is not None else None

    def _require_state(self) -> _RegistryState:
        state = self._state
        if state is None:
            raise StateError("System is not initialized")
        return state

    def initialize(self, identity_count: int) -> RegistrySnapshot:
        """Generate ``identity_count`` identities and build their tree."""

        if isinstance(identity_count, bool) or not isinstance(identity_count, int):
            raise IdentityRangeError("Identity count must be an integer")
        if not MIN_IDENTITIES <= identity_count <= MAX_IDENTITIES:
            raise IdentityRangeError(
                f"Identity count must be between {MIN_IDENTITIES} and {MAX_IDENTITIES}"
            )

        identities: Dict[int, IdentityRecord] = {}
        public_keys: List[str] = []
        for index in range(identity_count):
            public_key = self.key_source()
            public_keys.append(public_key)
            identities[index] = IdentityRecord(
                index=index,
                public_key=public_key,
                identity_id=derive_identity_id(public_key),
            )

        tree = MerkleTree.from_keys(public_keys)
        state = _RegistryState(tree=tree, identities=identities)
        with self._lock:
            self._state = state

        logger.info(
            "Initialized registry with %d identities, root %s",
            identity_count,
            truncate_hash(tree.root_hash(), 16),
        )
        return RegistrySnapshot(
            identity_count=identity_count,
            root_hash=tree.root_hash(),
            stats=tree.stats(),
            identities=tuple(record.preview() for record in identities.values()),
        )

    def generate_zk_proof(self, identity_index: int) -> ProofBundle:
        with self._lock:
            state = self._require_state()
            bundle = self.authenticator.generate_proof(state.identities.get(identity_index), state.tree)
            self._state = replace(state, current_proof=bundle)
        return bundle

    def verify_zk_proof(self, bundle: Union[ProofBundle, Mapping[str, object], None]) -> VerificationReport:
        self._require_state()
        return self.authenticator.verify_proof(bundle)

    def get_status(self) -> Dict[str, object]:
        state = self._state
        if state is None:
            return {"initialized": False, "message": "System is not initialized"}

        stats = state.tree.stats()
        return {
            "initialized": True,
            "identity_count": len(state.identities),
            "root_hash": stats.root_hash,
            "tree_height": stats.tree_height,
            "total_nodes": stats.total_nodes,
            "has_current_proof": state.current_proof is not None,
        }

    def list_identities(self) -> List[Dict[str, object]]:
        state = self._state
        if state is None:
            return []
        # Leaf order is identity order; keys are only shown truncated.
        return [
            {
                "index": leaf["index"],
                "label": f"Identity {leaf['index'] + 1}",
                "identity_id_preview": truncate_hash(leaf["hash"], 16),
                "public_key_preview": truncate_hash(leaf["public_key"], 16),
            }
            for leaf in state.tree.leaf_nodes_info()
        ]

    def reset(self) -> None:
        with self._lock:
            self._state = None
        logger.info("Registry reset")


__all__ = ["IdentityRecord", "Registry", "RegistrySnapshot"]
