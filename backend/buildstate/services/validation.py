# backend/buildstate/services/validation.py
from __future__ import annotations

from typing import Any, Optional, Sequence

from fastapi import HTTPException
from pydantic import BaseModel


def _missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


def require_fields(payload: BaseModel, names: Sequence[str], *, detail: Optional[str] = None) -> None:
    """
    400 when any of `names` is absent or blank.

    The default message lists the whole required set in wire (camelCase)
    spelling, so clients get the same error whichever field they forgot.
    """
    if not any(_missing(getattr(payload, n, None)) for n in names):
        return
    if detail is None:
        fields = type(payload).model_fields
        wire = [(fields[n].alias or n) if n in fields else n for n in names]
        detail = f"Missing required fields: {', '.join(wire)}"
    raise HTTPException(status_code=400, detail=detail)
