from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Form
from fastapi.responses import JSONResponse

from shopper_auth.api.dependencies import get_login_service, get_shopper
from shopper_auth.models.credentials import LoginInput
from shopper_auth.services.login_service import LoginService, ShopperContext

router = APIRouter(tags=["checkout"])

CHECKOUT_LOGIN_ERROR_MESSAGE = "Invalid login or password. Please try again."
CHECKOUT_SHIPPING_URL = "/checkout?stage=shipping"


@router.post("/checkout/login-customer")
async def checkout_login_customer(
    ctx: Annotated[ShopperContext, Depends(get_shopper)],
    login_service: Annotated[LoginService, Depends(get_login_service)],
    email: Annotated[str, Form()] = "",
    password: Annotated[str, Form()] = "",
) -> JSONResponse:
    """Log a shopper in from the checkout login step.

    No remember-me here: the registered refresh cookie is only kept when
    SLAS_SAVE_REFRESH_TOKEN_ALWAYS is on.
    """
    login = LoginInput(user=email.strip(), password=password)
    if not await login_service.handle_registered(ctx, login):
        return JSONResponse(
            {"error": True, "customerErrorMessage": CHECKOUT_LOGIN_ERROR_MESSAGE}
        )
    return JSONResponse({"error": False, "redirectUrl": CHECKOUT_SHIPPING_URL})
