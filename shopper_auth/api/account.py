"""Account login: the storefront's AJAX login form posts here.

CSRF validation and the login form's own field validation live in the
storefront in front of this service; this endpoint only runs the
registered login and answers with the JSON the login form script expects.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Form, Query
from fastapi.responses import JSONResponse

from shopper_auth.api.dependencies import get_login_service, get_shopper
from shopper_auth.models.credentials import LoginInput
from shopper_auth.services.login_service import LoginService, ShopperContext

logger = logging.getLogger(__name__)

router = APIRouter(tags=["account"])

# Same message whether the password was wrong or SLAS was down.
LOGIN_ERROR_MESSAGE = (
    "Invalid login or password. Remember that password is case-sensitive. "
    "Please try again."
)

# rurl is a number the login form carries over from the page that sent
# the shopper to log in.
_LOGIN_REDIRECTS = {
    "1": "/account",
    "2": "/checkout",
}
_DEFAULT_LOGIN_REDIRECT = "/account"

_CHECKBOX_ON = ("true", "on", "1", "yes")


def login_redirect_url(rurl: str | None) -> str:
    return _LOGIN_REDIRECTS.get(rurl or "", _DEFAULT_LOGIN_REDIRECT)


@router.post("/account/login")
async def account_login(
    ctx: Annotated[ShopperContext, Depends(get_shopper)],
    login_service: Annotated[LoginService, Depends(get_login_service)],
    loginEmail: Annotated[str, Form()] = "",
    loginPassword: Annotated[str, Form()] = "",
    loginRememberMe: Annotated[str | None, Form()] = None,
    rurl: Annotated[str | None, Query()] = None,
) -> JSONResponse:
    login = LoginInput(
        user=loginEmail.strip(),
        password=loginPassword,
        remember_me=(loginRememberMe or "").lower() in _CHECKBOX_ON,
    )
    if await login_service.handle_registered(ctx, login):
        return JSONResponse({"success": True, "redirectUrl": login_redirect_url(rurl)})
    return JSONResponse({"error": [LOGIN_ERROR_MESSAGE]})
