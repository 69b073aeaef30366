# backend/buildstate/routers/uploads.py
from __future__ import annotations

import logging
import re
import uuid
from pathlib import Path
from typing import List

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from ..auth import get_principal
from ..config import settings
from ..schemas import UploadManyOut, UploadOut

log = logging.getLogger("buildstate.uploads")

router = APIRouter(prefix="/uploads", tags=["uploads"])

ALLOWED_CONTENT_TYPES = {
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "application/pdf",
}
CHUNK = 1024 * 1024


def safe_filename(filename: str) -> str:
    return re.sub(r"[^A-Za-z0-9._-]", "_", filename)


def upload_root() -> Path:
    root = Path(settings.upload_dir)
    root.mkdir(parents=True, exist_ok=True)
    return root


def _check_type(file: UploadFile) -> None:
    if (file.content_type or "").lower() not in ALLOWED_CONTENT_TYPES:
        raise HTTPException(status_code=400, detail=f"Unsupported file type: {file.content_type}")


def _public_url(name: str) -> str:
    return f"{settings.upload_public_prefix.rstrip('/')}/{name}"


def _store(file: UploadFile) -> str:
    """Streams one file to disk and returns its stored name."""
    _check_type(file)

    name = f"{uuid.uuid4().hex}-{safe_filename(file.filename or 'upload')}"
    dest = upload_root() / name

    written = 0
    with dest.open("wb") as out:
        while True:
            chunk = file.file.read(CHUNK)
            if not chunk:
                break
            written += len(chunk)
            if written > settings.upload_max_bytes:
                out.close()
                dest.unlink(missing_ok=True)
                raise HTTPException(status_code=400, detail="File too large")
            out.write(chunk)

    return name


@router.post("/single", response_model=UploadOut)
def upload_single(file: UploadFile = File(...), p=Depends(get_principal)):
    url = _public_url(_store(file))
    log.info("file uploaded", extra={"user_id": p.user_id})
    return UploadOut(success=True, url=url)


@router.post("/multiple", response_model=UploadManyOut)
def upload_multiple(files: List[UploadFile] = File(...), p=Depends(get_principal)):
    if len(files) > settings.upload_max_files:
        raise HTTPException(status_code=400, detail=f"At most {settings.upload_max_files} files per upload")
    # reject the batch before anything is written
    for f in files:
        _check_type(f)

    stored: list[str] = []
    try:
        for f in files:
            stored.append(_store(f))
    except HTTPException:
        for name in stored:
            (upload_root() / name).unlink(missing_ok=True)
        raise

    urls = [_public_url(n) for n in stored]
    log.info("files uploaded", extra={"user_id": p.user_id})
    return UploadManyOut(success=True, urls=urls)
