from typing import Any, List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import FileResponse as FileDownload
from sqlalchemy.orm import Session

from app.api import deps
from app.core.config import settings
from app.models.auth import User
from app.schemas import FileResponse, FileUpdate, dump, dump_list, ok
from app.services.base import PageParams
from app.services.file_service import FileService

router = APIRouter()


@router.post("/upload", status_code=201)
def upload_file(
    file: UploadFile = File(...),
    entity_type: str = Form(..., alias="entityType"),
    entity_id: str = Form(..., alias="entityId"),
    file_type: str = Form("document", alias="fileType"),
    description: Optional[str] = Form(None),
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.school_staff),
) -> Any:
    record = FileService(db, settings).upload(file, entity_type, entity_id, file_type, description, current_user)
    return ok(dump(FileResponse, record), "File uploaded successfully")


@router.post("/upload/multiple", status_code=201)
def upload_files(
    files: List[UploadFile] = File(...),
    entity_type: str = Form(..., alias="entityType"),
    entity_id: str = Form(..., alias="entityId"),
    file_type: str = Form("document", alias="fileType"),
    description: Optional[str] = Form(None),
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.school_staff),
) -> Any:
    result = FileService(db, settings).upload_many(files, entity_type, entity_id, file_type, description, current_user)
    data = {"files": dump_list(FileResponse, result["files"]), "errors": result["errors"]}
    return ok(data, f"{len(result['files'])} file(s) uploaded")


@router.get("/stats")
def file_statistics(
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    return ok(FileService(db, settings).statistics())


@router.get("/entity/{entity_type}/{entity_id}")
def list_entity_files(
    entity_type: str,
    entity_id: str,
    params: PageParams = Depends(deps.page_params),
    file_type: Optional[str] = Query(None, alias="fileType"),
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.school_staff),
) -> Any:
    records, meta = FileService(db, settings).list_for_entity(entity_type, entity_id, params, file_type=file_type)
    return ok(dump_list(FileResponse, records), pagination=meta)


@router.get("/{file_id}")
def read_file(
    file_id: str,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.school_staff),
) -> Any:
    return ok(dump(FileResponse, FileService(db, settings).get_active(file_id)))


@router.get("/{file_id}/download")
def download_file(
    file_id: str,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.school_staff),
) -> Any:
    record, path = FileService(db, settings).download_path(file_id)
    return FileDownload(
        path,
        media_type=record.mime_type or "application/octet-stream",
        filename=record.original_name,
    )


@router.put("/{file_id}")
def update_file(
    file_id: str,
    file_in: FileUpdate,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.school_staff),
) -> Any:
    record = FileService(db, settings).update(file_id, file_in.model_dump(exclude_unset=True), current_user)
    return ok(dump(FileResponse, record), "File updated successfully")


@router.delete("/{file_id}")
def delete_file(
    file_id: str,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.school_staff),
) -> Any:
    FileService(db, settings).delete(file_id, current_user)
    return ok(None, "File deleted successfully")
