from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class Grant(str, Enum):
    """Which wire exchange the token client runs."""

    PKCE_AUTHORIZATION = "authorization_code_pkce"
    REFRESH_TOKEN = "refresh_token"


class CallType(str, Enum):
    """Authorize-step variant inside a PKCE grant (the SLAS endpoint name)."""

    GUEST_AUTHORIZE = "authorize"
    REGISTERED_AUTHENTICATE = "login"


@dataclass(frozen=True, slots=True)
class PKCEChallenge:
    verifier: str
    challenge: str

    def __repr__(self) -> str:
        # The verifier is the proof of possession; keep it out of tracebacks.
        return f"PKCEChallenge(challenge={self.challenge!r})"


@dataclass(frozen=True, slots=True)
class TokenSet:
    access_token: str
    refresh_token: str
    usid: str | None
    expires_in: int | None
    customer_id: str | None = None
    token_type: str | None = None
    id_token: str | None = None

    @staticmethod
    def from_response(payload: dict[str, Any]) -> TokenSet:
        """Build from a SLAS token response body.

        Raises KeyError/TypeError/ValueError when the body is not a token
        pair; the caller maps those to TokenError.
        """
        access_token = payload["access_token"]
        refresh_token = payload["refresh_token"]
        if not isinstance(access_token, str) or not access_token:
            raise ValueError("access_token missing")
        if not isinstance(refresh_token, str) or not refresh_token:
            raise ValueError("refresh_token missing")
        expires_in = payload.get("expires_in")
        return TokenSet(
            access_token=access_token,
            refresh_token=refresh_token,
            usid=payload.get("usid"),
            expires_in=int(expires_in) if expires_in is not None else None,
            customer_id=payload.get("customer_id"),
            token_type=payload.get("token_type"),
            id_token=payload.get("id_token"),
        )

    def __repr__(self) -> str:
        return (
            f"TokenSet(usid={self.usid!r}, customer_id={self.customer_id!r}, "
            f"expires_in={self.expires_in!r})"
        )
