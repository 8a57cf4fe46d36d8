from datetime import datetime
from typing import List, Optional
from uuid import UUID

from app.schemas.common import CamelModel


class FileUpdate(CamelModel):
    description: Optional[str] = None
    file_type: Optional[str] = None


class FileResponse(CamelModel):
    id: UUID
    entity_type: str
    entity_id: str
    file_type: str
    original_name: str
    mime_type: Optional[str] = None
    file_size: int
    description: Optional[str] = None
    uploaded_by: Optional[UUID] = None
    created_at: Optional[datetime] = None


class ExportRequest(CamelModel):
    format: str = "pdf"
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    class_id: Optional[UUID] = None
    semester_id: Optional[UUID] = None


class ExportEmailRequest(ExportRequest):
    recipients: List[str]
    message: Optional[str] = None
