"""Host session middleware.

For every storefront request:

  1. Build the request's CookieState.
  2. Load the host session named by the host cookie, or create one when
     the cookie is missing or the session expired.  A newly created
     session gets its id written as the host cookie (unless a bridge later
     in the request replaces it).
  3. Record GET navigations in the click stream.
  4. New sessions only: ask the SessionStartInterceptor whether the
     visitor's identity should be re-established; a redirect it returns is
     sent instead of calling the route.
  5. Apply the accumulated cookie mutations to whatever response goes out.

Excluded paths (probes, metrics, the internal restore endpoint) bypass all
of it: the restore call arrives with a session id this instance may not
have seen yet, and must not mint a competing one.
"""

from __future__ import annotations

import logging

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from shopper_auth.core.config import Settings
from shopper_auth.services.cookie_store import CookieState
from shopper_auth.services.login_service import ShopperContext
from shopper_auth.services.session_start import matches_prefix, reconstruct_url

logger = logging.getLogger(__name__)


def client_ip(request: Request, settings: Settings) -> str | None:
    """Visitor IP: the configured header when present, else the peer address."""
    if settings.client_ip_header_name:
        forwarded = request.headers.get(settings.client_ip_header_name)
        if forwarded:
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


class HostSessionMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        components = request.app.state.components
        settings: Settings = components.settings
        if matches_prefix(request.url.path, settings.excluded_paths):
            return await call_next(request)

        sessions = components.sessions
        cookies = CookieState.from_request(request)

        session_id = cookies.get(settings.host_session_cookie)
        session = await sessions.get(session_id) if session_id else None
        is_new = session is None
        if session is None:
            session = await sessions.create()
            # Session cookie: no max-age, the browser drops it on close.
            cookies.set(settings.host_session_cookie, session.id)
            logger.debug(
                "Host session created  expired=%s", "yes" if session_id else "no"
            )

        if request.method == "GET":
            session.record_click(reconstruct_url(request))
        await sessions.save(session)

        ctx = ShopperContext(
            cookies=cookies,
            session=session,
            client_ip=client_ip(request, settings),
        )
        request.state.shopper = ctx

        if is_new:
            redirect = await components.interceptor.on_session(request, ctx)
            if redirect is not None:
                return cookies.apply(redirect)

        response = await call_next(request)
        return cookies.apply(response)
