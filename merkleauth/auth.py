"""High level initialization, proving and verification helpers."""

from __future__ import annotations

from typing import Dict, Mapping, Union

from .protocol import Authenticator, ProofBundle
from .registry import Registry


def initialize_registry(registry: Registry, identity_count: int) -> Dict[str, object]:
    snapshot = registry.initialize(identity_count)
    return snapshot.to_dict()


def prove_membership(registry: Registry, identity_index: int) -> Dict[str, object]:
    bundle = registry.generate_zk_proof(identity_index)
    return {
        "proof": bundle.to_dict(),
        "proof_summary": bundle.summary(),
    }


def verify_bundle(
    verifier: Union[Registry, Authenticator],
    bundle: Union[ProofBundle, Mapping[str, object], None],
) -> Dict[str, object]:
    """Verify ``bundle`` with a registry session or a stateless authenticator."""

    if isinstance(verifier, Registry):
        report = verifier.verify_zk_proof(bundle)
    else:
        report = verifier.verify_proof(bundle)
    return report.to_dict()


__all__ = ["initialize_registry", "prove_membership", "verify_bundle"]
