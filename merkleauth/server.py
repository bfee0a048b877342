"""FastAPI-powered Merkle membership authentication service."""

from __future__ import annotations

import logging
import secrets
from collections import OrderedDict
from typing import Any, Dict, List

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from .auth import initialize_registry, prove_membership, verify_bundle
from .config import get_settings
from .constants import MAX_IDENTITIES, MIN_IDENTITIES
from .errors import IdentityRangeError, InvalidArgumentError, MerkleAuthError, NotFoundError, StateError
from .registry import Registry

logger = logging.getLogger(__name__)


class _SessionManager:
    def __init__(self, max_sessions: int) -> None:
        self.max_sessions = max_sessions
        self._sessions: "OrderedDict[str, Registry]" = OrderedDict()

    def create(self) -> tuple[str, Registry]:
        while len(self._sessions) >= self.max_sessions:
            evicted, _ = self._sessions.popitem(last=False)
            logger.info("Evicted session %s", evicted[:6])
        session_id = secrets.token_urlsafe(16)
        registry = Registry()
        self._sessions[session_id] = registry
        return session_id, registry

    def get(self, session_id: str) -> Registry:
        registry = self._sessions.get(session_id)
        if registry is None:
            raise KeyError(session_id)
        return registry

    def discard(self, session_id: str) -> Registry:
        registry = self._sessions.pop(session_id, None)
        if registry is None:
            raise KeyError(session_id)
        return registry


class InitializeRequest(BaseModel):
    identity_count: int = Field(ge=MIN_IDENTITIES, le=MAX_IDENTITIES)


class InitializeResponse(BaseModel):
    session: str
    identity_count: int
    root_hash: str
    tree_stats: Dict[str, Any]
    identities: List[Dict[str, Any]]


class ProveRequest(BaseModel):
    identity_index: int


class ProveResponse(BaseModel):
    proof: Dict[str, Any]
    proof_summary: Dict[str, Any]


class VerifyRequest(BaseModel):
    bundle: Dict[str, Any] | None = None


class VerifyResponse(BaseModel):
    is_valid: bool
    verification_steps: List[Dict[str, Any]]
    summary: Dict[str, Any]


app = FastAPI(title="MerkleAuth", description="Merkle set-membership authentication demo")
_sessions = _SessionManager(get_settings().max_sessions)


def _lookup(session_id: str) -> Registry:
    try:
        return _sessions.get(session_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail="Unknown session") from exc


def _http_error(exc: MerkleAuthError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, StateError):
        return HTTPException(status_code=409, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


@app.post("/sessions", response_model=InitializeResponse)
async def create_session(request: InitializeRequest) -> InitializeResponse:
    session, registry = _sessions.create()
    try:
        snapshot = initialize_registry(registry, request.identity_count)
    except IdentityRangeError as exc:  # pragma: no cover - bounds checked by the model
        _sessions.discard(session)
        raise _http_error(exc) from exc
    return InitializeResponse(session=session, **snapshot)


@app.get("/sessions/{session_id}")
async def session_status(session_id: str) -> Dict[str, Any]:
    return _lookup(session_id).get_status()


@app.get("/sessions/{session_id}/identities")
async def session_identities(session_id: str) -> List[Dict[str, Any]]:
    return _lookup(session_id).list_identities()


@app.post("/sessions/{session_id}/proofs", response_model=ProveResponse)
async def create_proof(session_id: str, request: ProveRequest) -> ProveResponse:
    registry = _lookup(session_id)
    try:
        payload = prove_membership(registry, request.identity_index)
    except MerkleAuthError as exc:
        raise _http_error(exc) from exc
    return ProveResponse(**payload)


@app.post("/sessions/{session_id}/verify", response_model=VerifyResponse)
async def verify_proof(session_id: str, request: VerifyRequest) -> VerifyResponse:
    registry = _lookup(session_id)
    bundle = request.bundle if request.bundle is not None else registry.current_proof
    try:
        if bundle is None:
            raise InvalidArgumentError("No proof to verify")
        report = verify_bundle(registry, bundle)
    except MerkleAuthError as exc:
        raise _http_error(exc) from exc
    return VerifyResponse(**report)


@app.delete("/sessions/{session_id}", status_code=204)
async def delete_session(session_id: str) -> None:
    try:
        registry = _sessions.discard(session_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail="Unknown session") from exc
    registry.reset()


__all__ = ["app"]
