"""Internal session-restore endpoint.

Called by the session bridge, server to server, right after a bridge
replaced the visitor's host session.  The request names the new session
through its host cookie and carries the previous session's attributes:

  POST /internal/session/restore
  x-sf-custom-auth: base64(INTERNAL_SERVICE_USER:INTERNAL_SERVICE_PASSWORD)
  Cookie: dwsid=<new session id>
  {"sessionVars": {"custom": {...}, "privacy": {...}}}

The path is on the session-start exclusion list, so HostSessionMiddleware
never mints a session for it and the call cannot trigger another bridge.
"""

from __future__ import annotations

import logging
import secrets
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from shopper_auth.api.dependencies import Components, get_components
from shopper_auth.core.config import SESSION_RESTORE_AUTH_HEADER, SESSION_RESTORE_PATH
from shopper_auth.models.session import SessionVariables
from shopper_auth.services.session_bridge import encoded_service_credentials

logger = logging.getLogger(__name__)

router = APIRouter(tags=["internal"])


class SessionVarsBody(BaseModel):
    custom: dict[str, Any] = {}
    privacy: dict[str, Any] = {}


class RestoreBody(BaseModel):
    sessionVars: SessionVarsBody


def _authorized(request: Request, components: Components) -> bool:
    expected = encoded_service_credentials(
        components.settings.internal_service_user,
        components.settings.internal_service_password,
    )
    presented = request.headers.get(SESSION_RESTORE_AUTH_HEADER, "")
    if not expected or not presented:
        return False
    return secrets.compare_digest(presented.encode(), expected.encode())


@router.post(SESSION_RESTORE_PATH, status_code=204, include_in_schema=False)
async def restore_session(
    request: Request,
    components: Annotated[Components, Depends(get_components)],
) -> Response:
    if not _authorized(request, components):
        logger.warning("Session restore rejected: bad service credentials")
        return JSONResponse({"detail": "Unauthorized"}, status_code=401)

    session_id = request.cookies.get(components.settings.host_session_cookie)
    if not session_id:
        return JSONResponse({"detail": "Missing session cookie"}, status_code=400)

    try:
        body = RestoreBody.model_validate_json(await request.body())
    except ValidationError:
        logger.warning("Session restore rejected: unparseable body")
        return JSONResponse({"detail": "Invalid session variables"}, status_code=400)

    variables = SessionVariables(
        custom=body.sessionVars.custom, privacy=body.sessionVars.privacy
    )
    await components.sessions.restore_vars(session_id, variables)
    logger.info(
        "Session attributes restored  custom=%d privacy=%d",
        len(variables.custom),
        len(variables.privacy),
    )
    return Response(status_code=204)
