"""Session bridge: trade a fresh SLAS access token for a new host session.

The session-establishment endpoint answers with Set-Cookie headers (the new
host session id among them).  The call is server-to-server, so those
cookies are parsed and re-applied to the visitor's response, and the
visitor's IP is forwarded so geolocation stays consistent.

A bridge swaps the host session, which would drop anything the old one
held (A/B bucket, locale, basket id).  With RESTORE_SESSION_ATTRIBUTES on,
a snapshot of the old session is posted to the internal restore endpoint
under the new session id.  That call is best effort: its failure is logged
and the bridge still counts as a success.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass, field
from urllib.parse import unquote

import httpx

from shopper_auth.core.config import (
    DEFAULT_CLIENT_IP_HEADER,
    SESSION_RESTORE_AUTH_HEADER,
    SESSION_RESTORE_PATH,
    Settings,
)
from shopper_auth.core.metrics import SESSION_BRIDGE_CALLS, SESSION_RESTORE_CALLS
from shopper_auth.models.session import SessionVariables
from shopper_auth.services.cookie_store import BridgedCookie, CookieState
from shopper_auth.services.errors import BridgeError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class BridgeResult:
    ok: bool
    cookies: dict[str, str] = field(default_factory=dict)
    session_id: str | None = None
    error: str | None = None

    def __repr__(self) -> str:
        return f"BridgeResult(ok={self.ok!r}, cookies={sorted(self.cookies)!r})"


def parse_set_cookie(header: str) -> BridgedCookie:
    """Parse one Set-Cookie header value.

    Only the attributes the storefront cares about are kept (path, max-age,
    secure, httponly, version).  Raises BridgeError on anything malformed.
    """
    first, *attributes = header.split(";")
    name, sep, raw_value = first.partition("=")
    name = name.strip()
    if not sep or not name:
        raise BridgeError("malformed Set-Cookie: missing name=value")

    wire_value = raw_value.strip()
    inner = wire_value
    if len(inner) >= 2 and inner[0] == inner[-1] == '"':
        inner = inner[1:-1]
    try:
        value = unquote(inner, errors="strict")
    except UnicodeDecodeError as exc:
        raise BridgeError(f"malformed Set-Cookie value for {name}") from exc

    path: str | None = None
    max_age: int | None = None
    secure = False
    httponly = False
    version: str | None = None
    for part in attributes:
        key, _, attr_value = part.partition("=")
        key = key.strip().lower()
        attr_value = attr_value.strip()
        if key == "path":
            path = attr_value
        elif key == "max-age":
            try:
                max_age = int(attr_value)
            except ValueError:
                raise BridgeError(
                    f"malformed Max-Age for {name}: {attr_value!r}"
                ) from None
        elif key == "secure":
            secure = True
        elif key == "httponly":
            httponly = True
        elif key == "version":
            version = attr_value

    return BridgedCookie(
        name=name,
        value=value,
        path=path,
        max_age=max_age,
        secure=secure,
        httponly=httponly,
        version=version,
        wire_value=wire_value,
    )


def encoded_service_credentials(user: str, password: str) -> str:
    """Basic-style token for the internal restore endpoint ('' when unset)."""
    if not user or not password:
        return ""
    return base64.b64encode(f"{user}:{password}".encode()).decode("ascii")


class SessionBridgeClient:
    def __init__(
        self,
        settings: Settings,
        http: httpx.AsyncClient,
        internal_http: httpx.AsyncClient,
    ) -> None:
        self._settings = settings
        self._http = http
        self._internal_http = internal_http
        self._ip_header = settings.client_ip_header_name or DEFAULT_CLIENT_IP_HEADER

    async def bridge(
        self,
        access_token: str,
        cookies: CookieState,
        *,
        client_ip: str | None = None,
        snapshot: SessionVariables | None = None,
    ) -> BridgeResult:
        """Establish a host session for *access_token*.

        On success the returned cookies are already queued on *cookies*.
        On failure nothing is queued and ok is False.
        """
        try:
            parsed = await self._establish(access_token, client_ip)
        except BridgeError as exc:
            SESSION_BRIDGE_CALLS.labels(outcome="failure").inc()
            logger.error("SLAS FLOW [bridge] session bridge failed  reason=%s", exc.message)
            return BridgeResult(ok=False, error=exc.message)

        for cookie in parsed:
            cookies.add_bridged(cookie)
        SESSION_BRIDGE_CALLS.labels(outcome="success").inc()

        host_cookie = self._settings.host_session_cookie
        session_id = next(
            (c.browser_value for c in parsed if c.name == host_cookie), None
        )
        logger.info(
            "SLAS FLOW [bridge] session established  cookies=%s new_session=%s",
            ",".join(c.name for c in parsed),
            "yes" if session_id else "no",
        )

        if self._settings.restore_session_attributes and session_id:
            await self.restore_attributes(session_id, snapshot or SessionVariables())

        return BridgeResult(
            ok=True,
            cookies={c.name: c.value for c in parsed},
            session_id=session_id,
        )

    async def restore_attributes(
        self, session_id: str, snapshot: SessionVariables
    ) -> bool:
        """Replay *snapshot* into the session named *session_id*. Never raises."""
        auth = encoded_service_credentials(
            self._settings.internal_service_user,
            self._settings.internal_service_password,
        )
        if not auth:
            SESSION_RESTORE_CALLS.labels(outcome="skipped").inc()
            logger.error(
                "internal service credentials are not set, "
                "session attributes will not be restored"
            )
            return False

        try:
            response = await self._internal_http.post(
                f"{self._settings.internal_base_url}{SESSION_RESTORE_PATH}",
                headers={
                    SESSION_RESTORE_AUTH_HEADER: auth,
                    "Cookie": f"{self._settings.host_session_cookie}={session_id}",
                },
                json={"sessionVars": snapshot.to_dict()},
            )
        except httpx.HTTPError as exc:
            SESSION_RESTORE_CALLS.labels(outcome="failure").inc()
            logger.error(
                "SLAS FLOW [restore] session restore call failed  error=%s",
                type(exc).__name__,
            )
            return False

        if not response.is_success:
            SESSION_RESTORE_CALLS.labels(outcome="failure").inc()
            logger.error(
                "SLAS FLOW [restore] session restore rejected  status=%d",
                response.status_code,
            )
            return False

        SESSION_RESTORE_CALLS.labels(outcome="success").inc()
        logger.info(
            "SLAS FLOW [restore] session attributes restored  custom=%d privacy=%d",
            len(snapshot.custom),
            len(snapshot.privacy),
        )
        return True

    async def _establish(
        self, access_token: str, client_ip: str | None
    ) -> list[BridgedCookie]:
        headers = {"Authorization": f"Bearer {access_token}"}
        if client_ip:
            headers[self._ip_header] = client_ip
        try:
            response = await self._http.post(
                self._settings.session_bridge_url, headers=headers
            )
        except httpx.HTTPError as exc:
            raise BridgeError(
                f"session bridge request failed: {type(exc).__name__}"
            ) from exc

        if not response.is_success:
            raise BridgeError(
                f"session bridge returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        raw_cookies = response.headers.get_list("set-cookie")
        if not raw_cookies:
            raise BridgeError(
                "session bridge returned no cookies", status_code=response.status_code
            )
        return [parse_set_cookie(raw) for raw in raw_cookies]
