from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Integer, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
import uuid
from app.core.database import Base


class FileRecord(Base):
    __tablename__ = "files"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    entity_type = Column(String, nullable=False, index=True)  # student, teacher, staff, ...
    entity_id = Column(String, nullable=False, index=True)
    file_type = Column(String, nullable=False)  # document, profile_picture, ...
    original_name = Column(String, nullable=False)
    stored_name = Column(String, nullable=False, unique=True)
    file_path = Column(String, nullable=False)
    mime_type = Column(String)
    file_size = Column(Integer, nullable=False, default=0)
    description = Column(Text)
    uploaded_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
