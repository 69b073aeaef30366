# backend/buildstate/middleware/request_id.py
from __future__ import annotations

import re
import uuid
from contextvars import ContextVar
from typing import Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

HEADER = "X-Request-ID"

# ids echoed back to clients and written to logs: keep them short and printable
_VALID = re.compile(r"^[A-Za-z0-9._:-]{1,64}$")

request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def get_request_id() -> Optional[str]:
    return request_id_ctx.get()


def _incoming_id(request: Request) -> Optional[str]:
    # header lookup is case-insensitive
    rid = (request.headers.get(HEADER) or "").strip()
    return rid if _VALID.match(rid) else None


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Tags every request with an id: the caller's X-Request-ID when it looks
    sane, a fresh uuid4 otherwise. The id is echoed on the response and is
    visible to log formatters through `get_request_id()`.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        rid = _incoming_id(request) or uuid.uuid4().hex
        request.state.request_id = rid

        token = request_id_ctx.set(rid)
        try:
            response = await call_next(request)
        finally:
            request_id_ctx.reset(token)

        response.headers[HEADER] = rid
        return response
