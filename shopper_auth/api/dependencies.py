from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx
from fastapi import HTTPException, Request, status

from shopper_auth.core.config import Settings
from shopper_auth.services.basket_merge import BasketMergeClient
from shopper_auth.services.login_service import LoginService, ShopperContext
from shopper_auth.services.session_bridge import SessionBridgeClient
from shopper_auth.services.session_start import SessionStartInterceptor
from shopper_auth.services.session_store import SessionStore
from shopper_auth.services.slas_client import SLASClient

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Components:
    """Everything one app instance wires together; lives on app.state."""

    settings: Settings
    http: httpx.AsyncClient
    internal_http: httpx.AsyncClient
    redis: object | None
    sessions: SessionStore
    slas: SLASClient
    bridge: SessionBridgeClient
    baskets: BasketMergeClient
    login_service: LoginService
    interceptor: SessionStartInterceptor


def get_components(request: Request) -> Components:
    return request.app.state.components


def get_login_service(request: Request) -> LoginService:
    return get_components(request).login_service


def get_shopper(request: Request) -> ShopperContext:
    """The ShopperContext HostSessionMiddleware attached to this request."""
    ctx = getattr(request.state, "shopper", None)
    if ctx is None:
        # Only reachable when a shopper route sits under an excluded path.
        logger.error("No shopper context for path=%s", request.url.path)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Session unavailable",
        )
    return ctx
