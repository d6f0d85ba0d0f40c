from __future__ import annotations

import base64
import hashlib
import secrets

from shopper_auth.models.token_set import PKCEChallenge

# PKCE helpers for the SLAS authorize/login + token exchange in slas_client.py.
#
# A fresh verifier is generated for every authorize attempt and only ever
# leaves this process once, in the token request body.  SLAS only supports
# the S256 challenge method.

# 96 random bytes -> 128 chars after base64url, the RFC 7636 maximum.
VERIFIER_BYTES = 96


def _urlsafe_b64(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def new_verifier() -> str:
    return _urlsafe_b64(secrets.token_bytes(VERIFIER_BYTES))


def challenge_for(verifier: str) -> str:
    digest = hashlib.sha256(verifier.encode("utf-8")).digest()
    return _urlsafe_b64(digest)


def new_challenge() -> PKCEChallenge:
    verifier = new_verifier()
    return PKCEChallenge(verifier=verifier, challenge=challenge_for(verifier))
