"""Logout endpoint: revoke the shopper's SLAS tokens and drop local state.

Local state is cleared even when the SLAS call fails: the three identity
cookies, the host session and its cookie.  Logout is idempotent, so a
visitor without any cookies simply gets redirected home.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import RedirectResponse

from shopper_auth.api.dependencies import get_login_service, get_shopper
from shopper_auth.services.login_service import LoginService, ShopperContext

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])


@router.get("/login/logout")
async def logout(
    ctx: Annotated[ShopperContext, Depends(get_shopper)],
    login_service: Annotated[LoginService, Depends(get_login_service)],
) -> RedirectResponse:
    if not await login_service.logout(ctx):
        logger.warning("Provider logout failed, local session cleared anyway")
    return RedirectResponse("/", status_code=302)
