from __future__ import annotations

from http.cookiejar import CookieJar, DefaultCookiePolicy

import httpx

from shopper_auth.core.config import Settings


def _refusing_jar() -> CookieJar:
    # allowed_domains=[] matches no domain: nothing is ever stored or sent.
    return CookieJar(policy=DefaultCookiePolicy(allowed_domains=[]))


def new_async_client(
    settings: Settings,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Outbound HTTP client shared by the SLAS, bridge and basket clients.

    Redirects are never followed: the SLAS authorize/login step answers with
    a 303 whose Location header *is* the payload, and following it would
    land on the storefront redirect_uri instead.

    Cookies are never kept.  One client serves every visitor, and the
    bridge's Set-Cookie headers belong to the visitor they were issued for;
    they are relayed through CookieState, not through this client.
    """
    return httpx.AsyncClient(
        follow_redirects=False,
        timeout=httpx.Timeout(settings.http_timeout_sec),
        cookies=_refusing_jar(),
        transport=transport,
    )
