"""SLAS token exchange client for the Authorization Code + PKCE and refresh grants.

PKCE grant, two calls executed back to back on one client:

  1. Authorize   GET  {base}/authorize   (guest, hint=guest)
                 POST {base}/login       (registered, Basic shopper creds)
     SLAS answers with a redirect.  usid and code travel in the query
     string of the Location header, so the client must NOT follow it.

  2. Token       POST {base}/token       (Basic client creds)
     grant_type=authorization_code_pkce, code + code_verifier prove that
     the party redeeming the code is the one that asked for it.

Refresh grant skips step 1 and posts grant_type=refresh_token.  SLAS
rotates refresh tokens: the one sent is dead once a new pair comes back.

Secrets handled here (never logged): code_verifier, code, shopper
password, access/refresh tokens.
"""

from __future__ import annotations

import logging
from urllib.parse import parse_qsl, urlsplit

import httpx

from shopper_auth.core.config import (
    GUEST_LOGIN_HINT,
    GUEST_LOGIN_RESPONSE_TYPE,
    Settings,
)
from shopper_auth.models.credentials import ShopperCredentials
from shopper_auth.models.token_set import CallType, Grant, PKCEChallenge, TokenSet
from shopper_auth.services import pkce_service
from shopper_auth.services.errors import (
    AuthorizeError,
    CredentialError,
    SLASError,
    TokenError,
)

logger = logging.getLogger(__name__)

_FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


class SLASClient:
    def __init__(self, settings: Settings, http: httpx.AsyncClient) -> None:
        self._settings = settings
        self._http = http
        self._base = settings.slas_base_url

    @property
    def _client_auth(self) -> httpx.BasicAuth:
        return httpx.BasicAuth(
            self._settings.slas_client_id, self._settings.slas_client_secret
        )

    # ------------------------------------------------------------------ public

    async def exchange(
        self,
        grant: Grant,
        call_type: CallType | None = None,
        *,
        credentials: ShopperCredentials | None = None,
        refresh_token: str | None = None,
    ) -> TokenSet:
        """Run one grant end to end and return the token pair.

        Raises AuthorizeError, TokenError or CredentialError.
        """
        if grant is Grant.REFRESH_TOKEN:
            if not refresh_token:
                raise CredentialError("refresh token is required for refresh grant")
            return await self._token(
                {
                    "grant_type": Grant.REFRESH_TOKEN.value,
                    "refresh_token": refresh_token,
                    "redirect_uri": self._settings.redirect_uri,
                    "channel_id": self._settings.channel_id,
                }
            )

        if call_type is None:
            raise ValueError("call_type is required for the PKCE grant")
        login: ShopperCredentials | None = None
        if call_type is CallType.REGISTERED_AUTHENTICATE:
            if credentials is None or not credentials.user or not credentials.password:
                raise CredentialError("credentials are needed for login")
            login = credentials

        pkce = pkce_service.new_challenge()
        usid, code = await self._authorize(call_type, pkce, login)
        return await self._token(
            {
                "grant_type": Grant.PKCE_AUTHORIZATION.value,
                "code": code,
                "redirect_uri": self._settings.redirect_uri,
                "code_verifier": pkce.verifier,
                "channel_id": self._settings.channel_id,
                "usid": usid,
            }
        )

    async def logout(self, refresh_token: str) -> bool:
        """Invalidate a registered shopper's tokens at SLAS.

        SLAS wants a live access token for /logout, so a refresh runs first;
        the rotated refresh token is the one handed to /logout.  Failures
        are logged and reported as False: local logout proceeds regardless.
        """
        try:
            tokens = await self.exchange(Grant.REFRESH_TOKEN, refresh_token=refresh_token)
        except SLASError as exc:
            logger.warning(
                "SLAS FLOW [logout] could not refresh before logout  step=%s reason=%s",
                exc.step,
                exc.message,
            )
            return False

        params = {
            "client_id": self._settings.slas_client_id,
            "channel_id": self._settings.channel_id,
            "refresh_token": tokens.refresh_token,
        }
        try:
            response = await self._http.get(
                f"{self._base}/logout",
                params=params,
                headers={"Authorization": f"Bearer {tokens.access_token}"},
            )
        except httpx.HTTPError as exc:
            logger.warning(
                "SLAS FLOW [logout] logout call failed  error=%s", type(exc).__name__
            )
            return False

        if not response.is_success:
            logger.warning(
                "SLAS FLOW [logout] logout rejected  status=%d", response.status_code
            )
            return False
        logger.info("SLAS FLOW [logout] shopper logged out  usid=%s", tokens.usid)
        return True

    # ---------------------------------------------------------------- internal

    async def _authorize(
        self,
        call_type: CallType,
        pkce: PKCEChallenge,
        login: ShopperCredentials | None,
    ) -> tuple[str, str]:
        """Step 1: return (usid, code) read from the redirect Location.

        A guest authorize when *login* is None, a shopper login otherwise.
        """
        url = f"{self._base}/{call_type.value}"
        try:
            if login is None:
                response = await self._http.get(
                    url,
                    params={
                        "client_id": self._settings.slas_client_id,
                        "redirect_uri": self._settings.redirect_uri,
                        "channel_id": self._settings.channel_id,
                        "code_challenge": pkce.challenge,
                        "response_type": GUEST_LOGIN_RESPONSE_TYPE,
                        "hint": GUEST_LOGIN_HINT,
                    },
                )
            else:
                response = await self._login(url, pkce, login)
        except httpx.HTTPError as exc:
            raise AuthorizeError(
                f"{call_type.value} request failed: {type(exc).__name__}"
            ) from exc

        if not response.is_redirect:
            raise AuthorizeError(
                f"{call_type.value} returned HTTP {response.status_code}, expected redirect",
                status_code=response.status_code,
            )

        query = urlsplit(response.headers["location"]).query
        authorization = dict(parse_qsl(query, keep_blank_values=True))
        usid = authorization.get("usid")
        code = authorization.get("code")
        if authorization.get("error") or not usid or not code:
            raise AuthorizeError(
                authorization.get("error_description")
                or authorization.get("error")
                or "Failed to retrieve authorization code",
                status_code=response.status_code,
            )
        logger.debug(
            "SLAS FLOW [%s] authorization code received  usid=%s", call_type.value, usid
        )
        return usid, code

    async def _login(
        self, url: str, pkce: PKCEChallenge, credentials: ShopperCredentials
    ) -> httpx.Response:
        params = {
            "client_id": self._settings.slas_client_id,
            "redirect_uri": self._settings.redirect_uri,
            "code_challenge": pkce.challenge,
            "channel_id": self._settings.channel_id,
        }
        if credentials.usid:
            # Links the guest's browsing history to the shopper.
            params["usid"] = credentials.usid
        return await self._http.post(
            url,
            params=params,
            auth=httpx.BasicAuth(credentials.user, credentials.password),
            headers={"Content-Type": _FORM_CONTENT_TYPE},
        )

    async def _token(self, form: dict[str, str]) -> TokenSet:
        """Step 2 (or the whole refresh grant)."""
        grant_type = form["grant_type"]
        try:
            response = await self._http.post(
                f"{self._base}/token",
                data=form,
                auth=self._client_auth,
            )
        except httpx.HTTPError as exc:
            raise TokenError(
                f"token request failed: {type(exc).__name__}"
            ) from exc

        if not response.is_success:
            raise TokenError(
                f"token endpoint returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
            if not isinstance(payload, dict):
                raise TypeError("token response is not an object")
            tokens = TokenSet.from_response(payload)
        except (ValueError, KeyError, TypeError) as exc:
            raise TokenError(
                "token response malformed", status_code=response.status_code
            ) from exc

        logger.debug(
            "SLAS FLOW [token] tokens issued  grant_type=%s usid=%s expires_in=%s",
            grant_type,
            tokens.usid,
            tokens.expires_in,
        )
        return tokens
