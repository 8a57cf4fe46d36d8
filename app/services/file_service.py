import logging
import os
import shutil
from typing import Dict, List, Optional, Tuple

from fastapi import UploadFile
from sqlalchemy import func

from app.core import security
from app.core.config import Settings
from app.core.errors import AppError
from app.models.auth import User
from app.models.enums import UserRole
from app.models.files import FileRecord
from app.services.base import BaseService, PageParams
from app.utils.dates import utcnow

logger = logging.getLogger(__name__)

ENTITY_TYPES = ("student", "teacher", "staff", "parent", "class", "general")


class FileService(BaseService):
    model = FileRecord
    entity_name = "File"
    sort_fields = {
        "original_name": FileRecord.original_name,
        "file_size": FileRecord.file_size,
        "created_at": FileRecord.created_at,
    }

    def __init__(self, db, config: Settings):
        super().__init__(db)
        self.config = config

    def _store(self, upload: UploadFile, entity_type: str, entity_id: str, file_type: str,
               description: Optional[str], actor: User) -> FileRecord:
        if entity_type not in ENTITY_TYPES:
            raise AppError(f"Invalid entity type. Allowed: {', '.join(ENTITY_TYPES)}", 400)
        if not security.validate_file_extension(upload.filename, self.config.ALLOWED_UPLOAD_EXTENSIONS):
            raise AppError(f"File type not allowed: {upload.filename}", 400)

        stored_name = security.generate_secure_filename(upload.filename)
        directory = os.path.join(self.config.UPLOAD_DIR, entity_type)
        os.makedirs(directory, exist_ok=True)
        path = os.path.join(directory, stored_name)
        with open(path, "wb") as buffer:
            shutil.copyfileobj(upload.file, buffer)

        size = os.path.getsize(path)
        if size > self.config.MAX_UPLOAD_SIZE_MB * 1024 * 1024:
            os.remove(path)
            raise AppError(f"File exceeds the {self.config.MAX_UPLOAD_SIZE_MB}MB limit: {upload.filename}", 400)

        record = FileRecord(
            entity_type=entity_type,
            entity_id=str(entity_id),
            file_type=file_type,
            original_name=upload.filename,
            stored_name=stored_name,
            file_path=path,
            mime_type=upload.content_type,
            file_size=size,
            description=description,
            uploaded_by=actor.id,
            is_active=True,
        )
        self.db.add(record)
        return record

    def upload(self, upload: UploadFile, entity_type: str, entity_id: str, file_type: str,
               description: Optional[str], actor: User) -> FileRecord:
        record = self._store(upload, entity_type, entity_id, file_type, description, actor)
        self.db.commit()
        self.db.refresh(record)
        logger.info("Stored %s for %s %s (%d bytes)", record.original_name, entity_type, entity_id, record.file_size)
        return record

    def upload_many(self, uploads: List[UploadFile], entity_type: str, entity_id: str, file_type: str,
                    description: Optional[str], actor: User) -> Dict:
        stored, errors = [], []
        for upload in uploads:
            try:
                stored.append(self._store(upload, entity_type, entity_id, file_type, description, actor))
            except AppError as e:
                errors.append({"filename": upload.filename, "error": e.message})
        self.db.commit()
        for record in stored:
            self.db.refresh(record)
        return {"files": stored, "errors": errors}

    def get_active(self, file_id: str) -> FileRecord:
        return self.get_or_404(file_id, active_only=True)

    def download_path(self, file_id: str) -> Tuple[FileRecord, str]:
        record = self.get_active(file_id)
        if not os.path.isfile(record.file_path):
            logger.warning("File %s missing on disk at %s", record.id, record.file_path)
            raise AppError("File not found on disk", 404)
        return record, record.file_path

    def list_for_entity(
        self, entity_type: str, entity_id: str, params: PageParams, file_type: Optional[str] = None
    ) -> Tuple[List[FileRecord], Dict]:
        query = self.db.query(FileRecord).filter(
            FileRecord.entity_type == entity_type,
            FileRecord.entity_id == str(entity_id),
            FileRecord.is_active.is_(True),
        )
        if file_type:
            query = query.filter(FileRecord.file_type == file_type)
        return self.paginate(query, params, default_sort=FileRecord.created_at)

    def _assert_owner(self, record: FileRecord, actor: User) -> None:
        if actor.role != UserRole.admin and record.uploaded_by != actor.id:
            raise AppError("You can only modify files you uploaded", 403)

    def update(self, file_id: str, data: Dict, actor: User) -> FileRecord:
        record = self.get_active(file_id)
        self._assert_owner(record, actor)
        self.apply_updates(record, data, allowed=("description", "file_type"))
        self.db.commit()
        self.db.refresh(record)
        return record

    def delete(self, file_id: str, actor: User) -> None:
        record = self.get_active(file_id)
        self._assert_owner(record, actor)
        record.is_active = False
        record.updated_at = utcnow()
        self.db.commit()

    def statistics(self) -> Dict:
        base = self.db.query(FileRecord).filter(FileRecord.is_active.is_(True))
        total_files = base.count()
        total_size = (
            self.db.query(func.coalesce(func.sum(FileRecord.file_size), 0))
            .filter(FileRecord.is_active.is_(True))
            .scalar()
        )
        by_entity = (
            self.db.query(FileRecord.entity_type, func.count(FileRecord.id), func.sum(FileRecord.file_size))
            .filter(FileRecord.is_active.is_(True))
            .group_by(FileRecord.entity_type)
            .all()
        )
        by_type = (
            self.db.query(FileRecord.file_type, func.count(FileRecord.id))
            .filter(FileRecord.is_active.is_(True))
            .group_by(FileRecord.file_type)
            .all()
        )
        return {
            "totalFiles": total_files,
            "totalSize": int(total_size or 0),
            "totalSizeMb": round((total_size or 0) / (1024 * 1024), 2),
            "byEntityType": [
                {"entityType": entity, "count": count, "totalSize": int(size or 0)} for entity, count, size in by_entity
            ],
            "byFileType": [{"fileType": file_type, "count": count} for file_type, count in by_type],
        }
