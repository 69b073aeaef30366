# backend/buildstate/auth.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

import jwt
from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from .db import get_db
from .models import User
from .services.auth_service import decode_access_token

log = logging.getLogger("buildstate.auth")


@dataclass(frozen=True)
class Principal:
    user_id: int
    email: str
    role: str  # ADMIN | PROPERTY_MANAGER | OWNER | TECHNICIAN | TENANT


def _bearer_token(authorization: Optional[str]) -> str:
    if not authorization or not str(authorization).lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="No token provided")
    return str(authorization).split(" ", 1)[1].strip()


def get_principal(
    request: Request,
    db: Session = Depends(get_db),
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> Principal:
    """
    Resolves `Authorization: Bearer <jwt>` to the calling user.

    The role always comes from the users table, never from the token, so a
    stale token cannot carry an old role.
    """
    token = _bearer_token(authorization)

    try:
        claims = decode_access_token(token)
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token has expired. Please login again.")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token. Please login again.")

    sub = claims.get("id") or claims.get("sub")
    try:
        user_id = int(sub)
    except (TypeError, ValueError):
        raise HTTPException(status_code=401, detail="Token missing subject")

    user = db.scalar(select(User).where(User.id == user_id))
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="Account has been deactivated")

    p = Principal(user_id=int(user.id), email=str(user.email), role=str(user.role))
    request.state.principal = p
    return p


def require_roles(*roles: str, detail: str | None = None) -> Callable[..., Principal]:
    """Dependency factory: 403 unless the caller has one of `roles`."""

    def _dep(p: Principal = Depends(get_principal)) -> Principal:
        if p.role not in roles:
            raise HTTPException(status_code=403, detail=detail or "Access denied")
        return p

    return _dep
