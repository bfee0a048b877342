"""Command line interface for the Merkle membership authentication demo."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from merkleauth.auth import initialize_registry, prove_membership, verify_bundle
from merkleauth.config import configure_logging
from merkleauth.errors import MerkleAuthError
from merkleauth.protocol import Authenticator
from merkleauth.registry import Registry


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (default: MERKLEAUTH_LOG_LEVEL or INFO)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    init_parser = subparsers.add_parser("init", help="Register a fresh identity set")
    init_parser.add_argument("count", type=int, help="Number of identities (2-32)")

    prove_parser = subparsers.add_parser(
        "prove",
        help="Register an identity set and prove membership of one identity",
    )
    prove_parser.add_argument("count", type=int, help="Number of identities (2-32)")
    prove_parser.add_argument("index", type=int, help="Zero-based index of the proving identity")
    prove_parser.add_argument(
        "--output",
        help="Optional file path to store the proof bundle JSON",
    )

    verify_parser = subparsers.add_parser(
        "verify",
        help="Verify a proof bundle file without access to the tree",
    )
    verify_parser.add_argument("bundle", help="Path to the proof bundle JSON")

    demo_parser = subparsers.add_parser("demo", help="Initialize, prove and verify in one run")
    demo_parser.add_argument("count", type=int, help="Number of identities (2-32)")
    demo_parser.add_argument("index", type=int, help="Zero-based index of the proving identity")

    return parser.parse_args(argv)


def run(namespace: argparse.Namespace) -> int:
    if namespace.command == "init":
        payload = initialize_registry(Registry(), namespace.count)
        print(json.dumps(payload, indent=2))
        return 0

    if namespace.command == "prove":
        registry = Registry()
        initialize_registry(registry, namespace.count)
        payload = prove_membership(registry, namespace.index)
        if namespace.output:
            Path(namespace.output).write_text(json.dumps(payload["proof"], indent=2), encoding="utf-8")
        print(json.dumps(payload, indent=2))
        return 0

    if namespace.command == "verify":
        bundle_payload = json.loads(Path(namespace.bundle).read_text(encoding="utf-8"))
        if isinstance(bundle_payload, dict) and "proof" in bundle_payload:
            bundle_payload = bundle_payload["proof"]
        report = verify_bundle(Authenticator(), bundle_payload)
        print(json.dumps(report, indent=2))
        return 0 if report["is_valid"] else 1

    if namespace.command == "demo":
        registry = Registry()
        snapshot = initialize_registry(registry, namespace.count)
        proof = prove_membership(registry, namespace.index)
        report = verify_bundle(registry, registry.current_proof)
        payload = {
            "root_hash": snapshot["root_hash"],
            "tree_stats": snapshot["tree_stats"],
            "proof_summary": proof["proof_summary"],
            "verification": report,
        }
        print(json.dumps(payload, indent=2))
        return 0 if report["is_valid"] else 1

    raise RuntimeError("Unreachable")


def main(argv: list[str] | None = None) -> int:
    namespace = parse_args(sys.argv[1:] if argv is None else argv)
    try:
        configure_logging(namespace.log_level)
        return run(namespace)
    except (MerkleAuthError, OSError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
