"""Verify caller identity proofs before business logic runs."""

from __future__ import annotations

from typing import Callable

from fastapi import Request
from fastapi.responses import JSONResponse

from core.config import ServerConfig
from core.logging import get_logger
from core.request_context import bind_request_context, current_request_context
from services.identity import (
    IdentityVerificationError,
    NetworkIdentities,
    RecentNonces,
    countersign,
    verify_request,
)
from web.routing import classify_request

logger = get_logger(__name__)


def _path_with_query(request: Request) -> str:
    query = request.url.query
    return f"{request.url.path}?{query}" if query else request.url.path


def _auth_error(exc: IdentityVerificationError, config: ServerConfig) -> JSONResponse:
    detail = {
        "code": exc.code,
        "message": exc.message,
        "requestedCertificates": config.certificates.to_payload(),
    }
    return JSONResponse(status_code=401, content={"detail": detail})


def build_identity_middleware(config: ServerConfig, identities: NetworkIdentities) -> Callable:
    """Return the dispatch function for the identity verification stage."""
    # A proof stays acceptable for the skew window on either side of its timestamp.
    seen_nonces = RecentNonces(ttl_seconds=2 * config.auth_max_clock_skew_seconds)

    async def identity_middleware(request: Request, call_next):
        if not classify_request(request.method, request.url.path).requires_identity:
            return await call_next(request)

        body = await request.body()
        try:
            verified = verify_request(
                request.headers,
                method=request.method,
                path=_path_with_query(request),
                body=body,
                base_url=config.base_url,
                identities=identities,
                requirements=config.certificates,
                max_clock_skew_seconds=config.auth_max_clock_skew_seconds,
                require_certificates=config.require_certificates,
                seen_nonces=seen_nonces,
            )
        except IdentityVerificationError as exc:
            logger.info("Rejected identity proof for %s %s: %s", request.method, request.url.path, exc.code)
            return _auth_error(exc, config)

        context = current_request_context().with_identity(verified)
        with bind_request_context(context):
            response = await call_next(request)
        response.headers.update(
            countersign(identities[verified.network], nonce=verified.nonce, status_code=response.status_code)
        )
        return response

    return identity_middleware


__all__ = ["build_identity_middleware"]
