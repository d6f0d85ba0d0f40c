"""Session-start interceptor.

Runs once for every newly created (or expired and recreated) host session
and decides whether the visitor's identity should be re-established
before the page renders.  It acts only when all of these hold:

  - the path is not excluded (health probes, consent/geolocation probes,
    the internal restore endpoint; the restore endpoint being excluded is
    what stops a bridge from recursing into another bridge)
  - no login-guard cookie
  - storefront context, not an admin path
  - the session is not already a registered shopper's
  - GET (retried form submissions must not trigger a login)

A remembered shopper (registered refresh cookie) is refreshed and sent
back to the page they asked for.  Everyone else gets a guest identity and
is redirected to the same URL so the page renders under the new session.
Failures never block the request.
"""

from __future__ import annotations

import logging

from starlette.requests import Request
from starlette.responses import RedirectResponse, Response

from shopper_auth.core.config import (
    REFRESH_TOKEN_COOKIE_REGISTERED,
    SESSION_GUARD_COOKIE,
    Settings,
)
from shopper_auth.core.metrics import SESSION_START_DECISIONS
from shopper_auth.services.login_service import LoginService, ShopperContext

logger = logging.getLogger(__name__)


def matches_prefix(path: str, prefixes: tuple[str, ...]) -> bool:
    return any(path == p or path.startswith(p.rstrip("/") + "/") for p in prefixes)


def reconstruct_url(request: Request) -> str:
    """Relative URL of the current request (path and query)."""
    query = request.url.query
    return f"{request.url.path}?{query}" if query else request.url.path


class SessionStartInterceptor:
    def __init__(self, settings: Settings, login_service: LoginService) -> None:
        self._settings = settings
        self._login = login_service

    def should_intercept(self, request: Request, ctx: ShopperContext) -> bool:
        path = request.url.path
        if matches_prefix(path, self._settings.excluded_paths):
            return False
        if SESSION_GUARD_COOKIE in ctx.cookies:
            return False
        if matches_prefix(path, self._settings.admin_path_prefixes):
            return False
        if ctx.session.registered:
            return False
        return request.method == "GET"

    async def on_session(self, request: Request, ctx: ShopperContext) -> Response | None:
        """Return a redirect when a login/refresh succeeded, else None."""
        if not self.should_intercept(request, ctx):
            SESSION_START_DECISIONS.labels(action="skipped").inc()
            return None

        target = ctx.session.last_click() or reconstruct_url(request)
        refresh_token = ctx.cookies.get(REFRESH_TOKEN_COOKIE_REGISTERED)
        if refresh_token:
            SESSION_START_DECISIONS.labels(action="registered_refresh").inc()
            if await self._login.registered_refresh(ctx, refresh_token):
                return RedirectResponse(target, status_code=302)
            logger.warning(
                "Session start: registered refresh failed, continuing without "
                "registered identity  path=%s",
                request.url.path,
            )
            return None

        SESSION_START_DECISIONS.labels(action="guest_login").inc()
        if await self._login.handle_guest(ctx):
            return RedirectResponse(reconstruct_url(request), status_code=302)
        logger.warning(
            "Session start: guest login failed, continuing anonymously  path=%s",
            request.url.path,
        )
        return None
