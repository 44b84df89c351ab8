"""
File manager business logic: uploads from the operator UI dropzone.
"""

from __future__ import annotations

import hashlib
import logging
import os

from fastapi import HTTPException, UploadFile

from core.entities import Implant, UploadedFile
from store.entities import Relation
from store.repository import Repository

logger = logging.getLogger(__name__)


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def max_upload_bytes() -> int:
    return _env_int("FILES_MAX_UPLOAD_BYTES", 10 * 1024 * 1024)


def list_files(files: Repository[UploadedFile], *, implant_id: int | None = None) -> list[UploadedFile]:
    return [
        f
        for f in files.get_all()
        if implant_id is None or (f.implant is not None and f.implant.target_id == implant_id)
    ]


def get_file(files: Repository[UploadedFile], file_id: int) -> UploadedFile:
    return files.get_by_id(file_id)


def store_upload(
    files: Repository[UploadedFile],
    implants: Repository[Implant],
    upload: UploadFile,
    *,
    implant_id: int | None = None,
) -> UploadedFile:
    filename = os.path.basename((upload.filename or "").strip())
    if not filename:
        raise HTTPException(status_code=400, detail="Uploaded file has no name.")

    limit = max_upload_bytes()
    # Read one byte past the limit to detect oversize uploads without buffering them.
    content = upload.file.read(limit + 1)
    if len(content) > limit:
        raise HTTPException(status_code=413, detail=f"File exceeds {limit} bytes.")

    implant = implants.get_by_id(implant_id) if implant_id is not None else None
    record = files.add(
        UploadedFile(
            filename=filename,
            content_type=(upload.content_type or "application/octet-stream").strip(),
            size_bytes=len(content),
            sha256=hashlib.sha256(content).hexdigest(),
            implant=Relation.to(implant) if implant is not None else None,
            content=content,
        )
    )
    files.store.commit()

    logger.info(
        "file_uploaded file_id=%s filename=%s size_bytes=%s implant_id=%s",
        record.id,
        record.filename,
        record.size_bytes,
        implant_id,
    )
    return record


def remove_file(files: Repository[UploadedFile], file_id: int) -> None:
    files.remove(file_id)
    files.store.commit()
