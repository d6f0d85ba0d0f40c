"""Error taxonomy for the SLAS token lifecycle.

Clients raise these; LoginService turns every one of them into a boolean
outcome plus a log line.  Nothing here is ever rendered to a shopper: the
HTTP layer shows one generic message whether the password was wrong or
the provider was unreachable.
"""

from __future__ import annotations


class SLASError(Exception):
    """Base class for failures in the login/session-bridge pipeline."""

    step = "slas"

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        # Upstream HTTP status when the failure came from a response; None
        # for transport errors and local validation.
        self.status_code = status_code


class AuthorizeError(SLASError):
    """Authorize/login step rejected, or redirected without a usable code."""

    step = "authorize"


class TokenError(SLASError):
    """Token endpoint returned non-2xx or a body without the token pair."""

    step = "token"


class BridgeError(SLASError):
    """Session-establishment call failed or returned no usable cookies."""

    step = "bridge"


class CredentialError(SLASError):
    """Shopper input missing or invalid; raised before any network call."""

    step = "credentials"
