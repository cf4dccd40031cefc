"""FastAPI application factory wiring the request pipeline."""

from __future__ import annotations

from typing import Callable, Optional

from fastapi import FastAPI
from sqlalchemy.orm import Session
from starlette.middleware import Middleware
from starlette.middleware.base import BaseHTTPMiddleware

from core.config import NETWORK_MAINNET, ServerConfig
from core.logging import get_logger
from services.identity import NetworkIdentities, build_network_identities
from services.payments import PaymentProvider, build_payment_provider
from services.public_info import PublicInfoCache
from web import routers
from web.middleware.audit_logger import AuditLoggerMiddleware
from web.middleware.body_limit import BodyLimitMiddleware
from web.middleware.cors import cors_gate_middleware
from web.middleware.handler_errors import handler_failure_middleware
from web.middleware.identity import build_identity_middleware
from web.middleware.identity_binding import build_identity_binding_middleware
from web.middleware.payment import build_payment_middleware
from web.middleware.timeout_guard import TimeoutGuardMiddleware
from web.routing import API_PREFIX

logger = get_logger(__name__)


def build_pipeline(
    config: ServerConfig,
    identities: NetworkIdentities,
    payment_provider: PaymentProvider,
    session_factory: Optional[Callable[[], Session]] = None,
) -> list[Middleware]:
    """Middleware stack, outermost first."""
    return [
        Middleware(BaseHTTPMiddleware, dispatch=cors_gate_middleware),
        Middleware(BaseHTTPMiddleware, dispatch=handler_failure_middleware),
        Middleware(BodyLimitMiddleware, max_body_bytes=config.max_body_bytes),
        Middleware(TimeoutGuardMiddleware, timeout_seconds=config.upload_timeout_seconds),
        Middleware(AuditLoggerMiddleware),
        Middleware(BaseHTTPMiddleware, dispatch=build_identity_middleware(config, identities)),
        Middleware(
            BaseHTTPMiddleware,
            dispatch=build_identity_binding_middleware(config.certificates, session_factory),
        ),
        Middleware(BaseHTTPMiddleware, dispatch=build_payment_middleware(payment_provider)),
    ]


def create_app(
    config: ServerConfig,
    *,
    identities: Optional[NetworkIdentities] = None,
    payment_provider: Optional[PaymentProvider] = None,
    session_factory: Optional[Callable[[], Session]] = None,
) -> FastAPI:
    identities = identities or build_network_identities(config)
    # Payments always settle on the primary network, whichever identity authenticated the caller.
    payment_provider = payment_provider or build_payment_provider(config, NETWORK_MAINNET)

    app = FastAPI(
        title="Identity-gated API",
        middleware=build_pipeline(config, identities, payment_provider, session_factory),
    )
    app.state.config = config
    app.state.identities = identities
    app.state.payment_provider = payment_provider
    app.state.public_info_cache = PublicInfoCache()

    app.include_router(routers.upload.router, prefix=API_PREFIX)
    app.include_router(routers.public.router, prefix=API_PREFIX)
    app.include_router(routers.account.router, prefix=API_PREFIX)
    app.include_router(routers.project.router, prefix=API_PREFIX)

    logger.info(
        "Application configured mainnet=%s testnet=%s",
        identities.public_keys().get("mainnet"),
        identities.public_keys().get("testnet"),
    )
    return app


__all__ = ["build_pipeline", "create_app"]
