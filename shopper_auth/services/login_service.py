"""Login orchestrator: the shopper identity state machine.

A visitor is in one of three states, read from cookies:

  no refresh cookie          -> guest_login()          full PKCE, hint=guest
  guest refresh (cc-nx-g)    -> guest_refresh()        refresh grant
  registered refresh (cc-nx) -> registered_refresh()   refresh grant

and moves to "registered" through registered_login() when the shopper
submits credentials.  Every successful step ends in a session bridge so
the host session matches the identity the tokens describe.

FAILURE POLICY
--------------
Guests fail open: a dead guest refresh token falls back to a full guest
login, and a guest who cannot get a session at all simply keeps browsing
anonymously.  Registered flows fail closed and report False; callers show
one generic message, so a wrong password and an unreachable provider
look the same from outside.  The log line keeps the distinction.

Every operation takes a ShopperContext: the request's cookie state, host
session and client IP.  Nothing here reads request globals.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from shopper_auth.core.config import (
    REFRESH_TOKEN_COOKIE_GUEST,
    REFRESH_TOKEN_COOKIE_REGISTERED,
    SESSION_GUARD_COOKIE,
    Settings,
)
from shopper_auth.core.metrics import LOGIN_FLOWS
from shopper_auth.models.credentials import LoginInput, ShopperCredentials
from shopper_auth.models.session import HostSession
from shopper_auth.models.token_set import CallType, Grant, TokenSet
from shopper_auth.services.basket_merge import BasketMergeClient, has_active_basket
from shopper_auth.services.cookie_store import CookieState
from shopper_auth.services.errors import CredentialError, SLASError
from shopper_auth.services.session_bridge import SessionBridgeClient
from shopper_auth.services.session_store import SessionStore
from shopper_auth.services.slas_client import SLASClient

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ShopperContext:
    """Per-request state handed explicitly to every login step."""

    cookies: CookieState
    session: HostSession
    client_ip: str | None = None


class LoginService:
    def __init__(
        self,
        settings: Settings,
        slas: SLASClient,
        bridge: SessionBridgeClient,
        baskets: BasketMergeClient,
        sessions: SessionStore,
    ) -> None:
        self._settings = settings
        self._slas = slas
        self._bridge = bridge
        self._baskets = baskets
        self._sessions = sessions

    # ------------------------------------------------------------------ guest

    async def handle_guest(self, ctx: ShopperContext) -> bool:
        """Give an anonymous visitor a guest identity and a bridged session."""
        refresh_token = ctx.cookies.get(REFRESH_TOKEN_COOKIE_GUEST)
        if refresh_token:
            return await self.guest_refresh(ctx, refresh_token)
        return await self.guest_login(ctx)

    async def guest_login(self, ctx: ShopperContext) -> bool:
        flow = "guest_login"
        try:
            tokens = await self._slas.exchange(
                Grant.PKCE_AUTHORIZATION, CallType.GUEST_AUTHORIZE
            )
        except SLASError as exc:
            return self._failed(flow, exc)

        self._set_guard(ctx)
        ctx.cookies.set(
            REFRESH_TOKEN_COOKIE_GUEST,
            tokens.refresh_token,
            self._settings.refresh_cookie_age_sec,
        )
        if not await self._bridge_session(ctx, tokens, registered=False):
            LOGIN_FLOWS.labels(flow=flow, outcome="failure").inc()
            return False

        return self._succeeded(flow, tokens)

    async def guest_refresh(self, ctx: ShopperContext, refresh_token: str) -> bool:
        """Rotate the guest refresh token; a dead token falls back to guest_login."""
        flow = "guest_refresh"
        try:
            tokens = await self._slas.exchange(
                Grant.REFRESH_TOKEN, refresh_token=refresh_token
            )
        except SLASError as exc:
            self._failed(flow, exc)
            logger.info(
                "SLAS FLOW [%s] falling back to guest login", flow, extra={"flow": flow}
            )
            return await self.guest_login(ctx)

        # The token just sent is dead now; keep the rotated one whatever happens next.
        ctx.cookies.set(
            REFRESH_TOKEN_COOKIE_GUEST,
            tokens.refresh_token,
            self._settings.refresh_cookie_age_sec,
        )
        self._set_guard(ctx)
        if not await self._bridge_session(ctx, tokens, registered=False):
            logger.warning(
                "SLAS FLOW [%s] tokens refreshed but session not bridged, "
                "continuing as guest",
                flow,
                extra={"flow": flow, "usid": tokens.usid},
            )
        return self._succeeded(flow, tokens)

    # ------------------------------------------------------------- registered

    async def registered_login(self, ctx: ShopperContext, login: LoginInput) -> bool:
        """Authenticate a shopper with email + password.

        A guest refresh cookie, if present, is refreshed first so the guest
        usid can be handed to /login; SLAS then links the guest's history
        and basket to the shopper.  The registered refresh cookie is only
        persisted with remember-me (or SLAS_SAVE_REFRESH_TOKEN_ALWAYS), and
        only then does it replace the guest cookie.
        """
        flow = "registered_login"
        if not login.user or not login.password:
            return self._failed(flow, CredentialError("email and password are required"))

        usid = await self._recover_guest_usid(ctx)

        try:
            tokens = await self._slas.exchange(
                Grant.PKCE_AUTHORIZATION,
                CallType.REGISTERED_AUTHENTICATE,
                credentials=ShopperCredentials(login.user, login.password, usid),
            )
        except SLASError as exc:
            return self._failed(flow, exc)

        if self._settings.save_refresh_token_always or login.remember_me:
            ctx.cookies.set(
                REFRESH_TOKEN_COOKIE_REGISTERED,
                tokens.refresh_token,
                self._settings.refresh_cookie_age_sec,
            )
            ctx.cookies.clear(REFRESH_TOKEN_COOKIE_GUEST)
        self._set_guard(ctx)

        if has_active_basket(ctx.session):
            # Merge failure leaves the guest basket behind but does not fail login.
            await self._baskets.merge(tokens.access_token)

        if not await self._bridge_session(ctx, tokens, registered=True):
            LOGIN_FLOWS.labels(flow=flow, outcome="failure").inc()
            return False

        return self._succeeded(flow, tokens)

    handle_registered = registered_login

    async def registered_refresh(self, ctx: ShopperContext, refresh_token: str) -> bool:
        """Continue a remembered shopper's identity.  Never demotes to guest."""
        flow = "registered_refresh"
        try:
            tokens = await self._slas.exchange(
                Grant.REFRESH_TOKEN, refresh_token=refresh_token
            )
        except SLASError as exc:
            return self._failed(flow, exc)

        ctx.cookies.set(
            REFRESH_TOKEN_COOKIE_REGISTERED,
            tokens.refresh_token,
            self._settings.refresh_cookie_age_sec,
        )
        self._set_guard(ctx)
        if not await self._bridge_session(ctx, tokens, registered=True):
            LOGIN_FLOWS.labels(flow=flow, outcome="failure").inc()
            return False

        return self._succeeded(flow, tokens)

    # ----------------------------------------------------------------- logout

    async def logout(self, ctx: ShopperContext) -> bool:
        """End the shopper's identity.

        Local state is always cleared, whatever SLAS says: all three
        identity cookies, the host session and its cookie.  Returns whether
        the provider-side logout succeeded (True when there was nothing to
        revoke).
        """
        flow = "logout"
        provider_ok = True
        refresh_token = ctx.cookies.get(REFRESH_TOKEN_COOKIE_REGISTERED)
        if refresh_token:
            provider_ok = await self._slas.logout(refresh_token)

        ctx.cookies.clear(REFRESH_TOKEN_COOKIE_REGISTERED)
        ctx.cookies.clear(REFRESH_TOKEN_COOKIE_GUEST)
        ctx.cookies.clear(SESSION_GUARD_COOKIE)
        await self._sessions.delete(ctx.session.id)
        ctx.cookies.clear(self._settings.host_session_cookie)

        LOGIN_FLOWS.labels(flow=flow, outcome="success" if provider_ok else "failure").inc()
        logger.info(
            "SLAS FLOW [%s] local session cleared  provider_logout=%s",
            flow,
            "ok" if provider_ok else "failed",
            extra={"flow": flow},
        )
        return provider_ok

    # --------------------------------------------------------------- internal

    async def _recover_guest_usid(self, ctx: ShopperContext) -> str | None:
        guest_token = ctx.cookies.get(REFRESH_TOKEN_COOKIE_GUEST)
        if not guest_token:
            return None
        try:
            guest_tokens = await self._slas.exchange(
                Grant.REFRESH_TOKEN, refresh_token=guest_token
            )
        except SLASError as exc:
            logger.warning(
                "SLAS FLOW [registered_login] guest refresh failed, logging in "
                "without guest usid  step=%s reason=%s",
                exc.step,
                exc.message,
                extra={"flow": "registered_login"},
            )
            return None
        ctx.cookies.set(
            REFRESH_TOKEN_COOKIE_GUEST,
            guest_tokens.refresh_token,
            self._settings.refresh_cookie_age_sec,
        )
        return guest_tokens.usid

    async def _bridge_session(
        self, ctx: ShopperContext, tokens: TokenSet, *, registered: bool
    ) -> bool:
        result = await self._bridge.bridge(
            tokens.access_token,
            ctx.cookies,
            client_ip=ctx.client_ip,
            snapshot=ctx.session.snapshot(),
        )
        if not result.ok:
            return False
        if result.session_id:
            ctx.session = await self._sessions.bind_shopper(
                result.session_id,
                customer_id=tokens.customer_id,
                usid=tokens.usid,
                registered=registered,
            )
        return True

    def _set_guard(self, ctx: ShopperContext) -> None:
        ctx.cookies.set(SESSION_GUARD_COOKIE, "1", self._settings.session_guard_age_sec)

    @staticmethod
    def _succeeded(flow: str, tokens: TokenSet) -> bool:
        LOGIN_FLOWS.labels(flow=flow, outcome="success").inc()
        logger.info(
            "SLAS FLOW [%s] completed  usid=%s customer_id=%s",
            flow,
            tokens.usid,
            tokens.customer_id,
            extra={"flow": flow, "usid": tokens.usid},
        )
        return True

    @staticmethod
    def _failed(flow: str, exc: SLASError) -> bool:
        LOGIN_FLOWS.labels(flow=flow, outcome="failure").inc()
        logger.error(
            "SLAS FLOW [%s] failed  step=%s status=%s reason=%s",
            flow,
            exc.step,
            exc.status_code,
            exc.message,
            extra={"flow": flow},
        )
        return False
