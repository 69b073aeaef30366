# backend/buildstate/routers/auth.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..auth import get_principal
from ..db import get_db
from ..models import User
from ..schemas import LoginIn, RegisterIn, TokenOut, UserOut
from ..services.auth_service import create_access_token, login_user, register_user

log = logging.getLogger("buildstate.auth")

router = APIRouter(prefix="/auth", tags=["auth"])


def _token_response(user: User) -> TokenOut:
    token = create_access_token(user_id=int(user.id), role=str(user.role))
    return TokenOut(token=token, user=UserOut.model_validate(user))


@router.post("/register", response_model=TokenOut, status_code=201)
def register(payload: RegisterIn, db: Session = Depends(get_db)):
    """New accounts start on a trial; ADMIN accounts are never self-registered."""
    try:
        user = register_user(
            db,
            email=payload.email,
            password=payload.password,
            first_name=payload.first_name,
            last_name=payload.last_name,
            phone=payload.phone,
            role=payload.role,
        )
    except ValueError:
        raise HTTPException(status_code=400, detail="Email already registered")

    db.commit()
    log.info("user registered", extra={"user_id": user.id})
    return _token_response(user)


@router.post("/login", response_model=TokenOut)
def login(payload: LoginIn, db: Session = Depends(get_db)):
    try:
        user = login_user(db, email=payload.email, password=payload.password)
    except ValueError as e:
        if str(e) == "inactive":
            raise HTTPException(status_code=403, detail="Account has been deactivated")
        raise HTTPException(status_code=401, detail="Invalid email or password")
    return _token_response(user)


@router.get("/me", response_model=UserOut)
def me(db: Session = Depends(get_db), p=Depends(get_principal)):
    return db.get(User, p.user_id)
