from __future__ import annotations

import logging
from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI

from shopper_auth.api.account import router as account_router
from shopper_auth.api.checkout import router as checkout_router
from shopper_auth.api.dependencies import Components
from shopper_auth.api.health import router as health_router
from shopper_auth.api.logout import router as logout_router
from shopper_auth.api.metrics_endpoint import router as metrics_router
from shopper_auth.api.session_restore import router as session_restore_router
from shopper_auth.core.config import SETTINGS, Settings
from shopper_auth.core.http import new_async_client
from shopper_auth.core.logging import setup_logging
from shopper_auth.db.redis import create_redis_pool, lifespan_redis
from shopper_auth.middleware.host_session import HostSessionMiddleware
from shopper_auth.middleware.metrics import MetricsMiddleware
from shopper_auth.middleware.request_context import RequestContextMiddleware
from shopper_auth.services.basket_merge import BasketMergeClient
from shopper_auth.services.login_service import LoginService
from shopper_auth.services.session_bridge import SessionBridgeClient
from shopper_auth.services.session_start import SessionStartInterceptor
from shopper_auth.services.session_store import build_session_store
from shopper_auth.services.slas_client import SLASClient

# Configure logging before anything else runs.
setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)

logger = logging.getLogger(__name__)

TransportFactory = Callable[[FastAPI], httpx.AsyncBaseTransport]


def _build_components(
    app: FastAPI,
    settings: Settings,
    provider_transport: httpx.AsyncBaseTransport | None,
    internal_transport: httpx.AsyncBaseTransport | TransportFactory | None,
) -> Components:
    if internal_transport is not None and not isinstance(
        internal_transport, httpx.AsyncBaseTransport
    ):
        # A factory lets tests route the restore call back into this very app.
        internal_transport = internal_transport(app)

    http = new_async_client(settings, transport=provider_transport)
    internal_http = new_async_client(settings, transport=internal_transport)
    redis_pool = create_redis_pool(settings)
    sessions = build_session_store(redis_pool, settings.host_session_timeout_sec)

    slas = SLASClient(settings, http)
    bridge = SessionBridgeClient(settings, http, internal_http)
    baskets = BasketMergeClient(settings, http)
    login_service = LoginService(settings, slas, bridge, baskets, sessions)
    return Components(
        settings=settings,
        http=http,
        internal_http=internal_http,
        redis=redis_pool,
        sessions=sessions,
        slas=slas,
        bridge=bridge,
        baskets=baskets,
        login_service=login_service,
        interceptor=SessionStartInterceptor(settings, login_service),
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    components: Components = app.state.components
    # Nested so teardown runs in reverse order even if one step fails.
    async with lifespan_redis(components.redis):  # type: ignore[arg-type]
        try:
            yield
        finally:
            await components.http.aclose()
            await components.internal_http.aclose()


def create_app(
    settings: Settings = SETTINGS,
    *,
    provider_transport: httpx.AsyncBaseTransport | None = None,
    internal_transport: httpx.AsyncBaseTransport | TransportFactory | None = None,
) -> FastAPI:
    """Build the app.

    provider_transport carries SLAS, session bridge and basket calls;
    internal_transport carries the session-restore call.  Both default to
    real network transports.
    """
    app = FastAPI(
        title="shopper-auth",
        lifespan=lifespan,
        docs_url="/docs" if settings.is_dev else None,
        redoc_url="/redoc" if settings.is_dev else None,
    )
    app.state.components = _build_components(
        app, settings, provider_transport, internal_transport
    )

    # Middleware execution order: last-added runs first (outermost layer).
    # RequestContext (outermost) → Metrics → HostSession → route handler
    # so the interceptor's outbound calls already log with a request id.
    app.add_middleware(HostSessionMiddleware)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestContextMiddleware)

    app.include_router(metrics_router)
    app.include_router(health_router)
    app.include_router(account_router)
    app.include_router(checkout_router)
    app.include_router(logout_router)
    app.include_router(session_restore_router)

    logger.info(
        "shopper-auth configured  env=%s log_level=%s restore_attributes=%s "
        "session_store=%s",
        settings.app_env,
        settings.log_level,
        "on" if settings.restore_session_attributes else "off",
        "redis" if app.state.components.redis is not None else "memory",
    )
    return app


app = create_app()
