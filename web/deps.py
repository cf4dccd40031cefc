"""Shared FastAPI dependencies."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from core.config import ServerConfig
from core.request_context import RequestContext, current_request_context
from services.identity import NetworkIdentities, VerifiedIdentity
from services.public_info import PublicInfoCache


async def get_request_context() -> RequestContext:
    """Context bound by the pipeline stages for this request."""
    return current_request_context()


async def get_verified_identity() -> VerifiedIdentity:
    identity = current_request_context().identity
    if identity is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "auth.required", "message": "An identity proof is required."},
        )
    return identity


def get_server_config(request: Request) -> ServerConfig:
    return request.app.state.config


def get_identities(request: Request) -> NetworkIdentities:
    return request.app.state.identities


def get_public_info_cache(request: Request) -> PublicInfoCache:
    return request.app.state.public_info_cache
