"""
File manager API endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile

from core.dependencies import repository
from core.entities import Implant, UploadedFile
from cors.middleware import cors_policy
from cors.policies import CorsPolicyType
from store import serialization
from store.repository import Repository

from . import service

router = APIRouter()

file_repository = repository(UploadedFile)
implant_repository = repository(Implant)


@router.get("/files")
@cors_policy(CorsPolicyType.MINIMAL_GET)
def list_files(
    implant_id: int | None = Query(default=None, ge=1),
    files: Repository[UploadedFile] = Depends(file_repository),
) -> dict:
    rows = service.list_files(files, implant_id=implant_id)
    return {"files": serialization.dump(rows), "count": len(rows)}


@router.get("/files/{file_id}/content")
@cors_policy(CorsPolicyType.MINIMAL_GET)
def download_file(
    file_id: int,
    files: Repository[UploadedFile] = Depends(file_repository),
) -> Response:
    record = service.get_file(files, file_id)
    filename = record.filename.replace('"', "")
    return Response(
        content=record.content,
        media_type=record.content_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/files", status_code=201)
@cors_policy(CorsPolicyType.DROPZONE_UPLOAD)
def upload_file(
    file: UploadFile = File(...),
    implant_id: int | None = Form(default=None),
    files: Repository[UploadedFile] = Depends(file_repository),
    implants: Repository[Implant] = Depends(implant_repository),
) -> dict:
    """
    Multipart upload (dropzone). Keep responses small; content is not echoed.
    """
    record = service.store_upload(files, implants, file, implant_id=implant_id)
    return serialization.dump(record)


@router.delete("/files/{file_id}")
@cors_policy(CorsPolicyType.MINIMAL_POST)
def delete_file(
    file_id: int,
    files: Repository[UploadedFile] = Depends(file_repository),
) -> dict:
    service.remove_file(files, file_id)
    return {"ok": True, "file_id": file_id}
