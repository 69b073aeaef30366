# backend/buildstate/main.py
from __future__ import annotations

import logging
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import settings
from .logging_config import configure_logging

from .middleware.request_id import RequestIDMiddleware
from .middleware.structured_logging import StructuredLoggingMiddleware

from .routers.health import router as health_router
from .routers.auth import router as auth_router
from .routers.dashboard import router as dashboard_router

from .routers.properties import router as properties_router
from .routers.units import router as units_router

from .routers.jobs import router as jobs_router
from .routers.inspections import router as inspections_router
from .routers.service_requests import router as service_requests_router

from .routers.notifications import router as notifications_router
from .routers.uploads import router as uploads_router

API_PREFIX = "/api"

configure_logging()
log = logging.getLogger("buildstate")


def _cors_origins() -> list[str]:
    val = settings.cors_allow_origins
    if isinstance(val, str):
        v = val.strip()
        return ["*"] if v == "*" else [x.strip() for x in v.split(",") if x.strip()]
    return list(val) or ["*"]


app = FastAPI(title="Buildstate API", version=settings.app_version)

# added last runs outermost: the request id is set before the access line is written
app.add_middleware(StructuredLoggingMiddleware)
app.add_middleware(RequestIDMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# -----------------------------
# Error envelope: {"error": "..."}
# -----------------------------
def _error_body(detail) -> dict:
    if isinstance(detail, dict):
        body = dict(detail)
        body.setdefault("error", "Request failed")
        return body
    return {"error": str(detail)}


@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc.detail), headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError):
    parts = []
    for err in exc.errors():
        loc = [str(x) for x in err.get("loc", ()) if x not in ("body", "query", "path")]
        msg = str(err.get("msg", "invalid"))
        parts.append(f"{'.'.join(loc)}: {msg}" if loc else msg)
    return JSONResponse(status_code=400, content={"error": "; ".join(parts) or "Invalid request"})


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception):
    log.exception("unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# Core
app.include_router(health_router, prefix=API_PREFIX)
app.include_router(auth_router, prefix=API_PREFIX)
app.include_router(dashboard_router, prefix=API_PREFIX)

# Portfolio
app.include_router(properties_router, prefix=API_PREFIX)
app.include_router(units_router, prefix=API_PREFIX)

# Work
app.include_router(jobs_router, prefix=API_PREFIX)
app.include_router(inspections_router, prefix=API_PREFIX)
app.include_router(service_requests_router, prefix=API_PREFIX)

# Inbox + files
app.include_router(notifications_router, prefix=API_PREFIX)
app.include_router(uploads_router, prefix=API_PREFIX)

Path(settings.upload_dir).mkdir(parents=True, exist_ok=True)
app.mount(settings.upload_public_prefix, StaticFiles(directory=settings.upload_dir), name="uploads")
