"""Request context middleware: one id per request, carried into every log line.

A session-start request can fan out into authorize, token, bridge and
restore calls, each logging from a different module.  The request id ties
those lines together:

  INFO  [req-abc] SLAS FLOW [guest_login] completed  usid=...
  ERROR [req-abc] SLAS FLOW [bridge] session bridge failed  reason=...

The id lives in a ContextVar (per asyncio task, so concurrent requests on
the same thread never see each other's id).  A LogRecord factory copies it
onto every record at creation time; a filter on the root logger would only
see records logged on the root logger itself, not those propagated up
from module loggers.
"""

from __future__ import annotations

import logging
import time
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

request_id_var: ContextVar[str] = ContextVar("request_id", default="-")

_base_record_factory = logging.getLogRecordFactory()


def _record_factory(*args, **kwargs) -> logging.LogRecord:
    record = _base_record_factory(*args, **kwargs)
    record.request_id = request_id_var.get()  # type: ignore[attr-defined]
    return record


# Installed once, however many times this module is imported.
if getattr(logging.getLogRecordFactory(), "__name__", "") != _record_factory.__name__:
    logging.setLogRecordFactory(_record_factory)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Assign X-Request-ID, time the request, log one completion line."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        req_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        token = request_id_var.set(req_id)
        try:
            start = time.monotonic()
            response = await call_next(request)
            duration_ms = round((time.monotonic() - start) * 1000, 1)

            # Query strings are left out: storefront URLs can carry emails.
            logger.info(
                "%s %s → %d (%.1fms)",
                request.method,
                request.url.path,
                response.status_code,
                duration_ms,
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": duration_ms,
                },
            )
        finally:
            request_id_var.reset(token)

        response.headers["X-Request-ID"] = req_id
        return response
