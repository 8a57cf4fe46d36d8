import logging
from typing import Dict, List, Optional, Tuple

from app.core.errors import AppError
from app.models.exams import AssessmentType, Grade
from app.services.base import BaseService, PageParams, parse_uuid
from app.services.cache_service import CacheKeys
from app.utils.dates import utcnow

logger = logging.getLogger(__name__)


class AssessmentTypeService(BaseService):
    model = AssessmentType
    entity_name = "Assessment type"
    sort_fields = {
        "name": AssessmentType.name,
        "weightage": AssessmentType.weightage,
        "created_at": AssessmentType.created_at,
    }

    def _name_taken(self, name: str, exclude_id=None) -> bool:
        criteria = [AssessmentType.name.ilike(name)]
        if exclude_id is not None:
            criteria.append(AssessmentType.id != exclude_id)
        return self.exists(AssessmentType, *criteria)

    def create(self, data: Dict) -> AssessmentType:
        if self._name_taken(data["name"]):
            raise AppError("Assessment type with this name already exists", 409)
        assessment_type = AssessmentType(is_active=True, **data)
        self.db.add(assessment_type)
        self.db.commit()
        self.db.refresh(assessment_type)
        self.invalidate(f"{CacheKeys.ASSESSMENT_TYPES}*")
        return assessment_type

    def list(
        self, params: PageParams, is_active: Optional[bool] = True, search: Optional[str] = None
    ) -> Tuple[List[AssessmentType], Dict]:
        query = self.db.query(AssessmentType)
        if is_active is not None:
            query = query.filter(AssessmentType.is_active.is_(is_active))
        if search:
            query = query.filter(AssessmentType.name.ilike(f"%{search}%"))
        return self.paginate(query, params, default_sort=AssessmentType.name)

    def update(self, type_id: str, data: Dict) -> AssessmentType:
        assessment_type = self.get_or_404(type_id)
        changes = {k: v for k, v in data.items() if v is not None}
        if not changes:
            raise AppError("No valid fields to update", 400)
        if "name" in changes and self._name_taken(changes["name"], exclude_id=assessment_type.id):
            raise AppError("Assessment type with this name already exists", 409)
        for key, value in changes.items():
            setattr(assessment_type, key, value)
        assessment_type.updated_at = utcnow()
        self.db.commit()
        self.db.refresh(assessment_type)
        self.invalidate(f"{CacheKeys.ASSESSMENT_TYPES}*")
        return assessment_type

    def delete(self, type_id: str) -> Dict:
        """Hard delete when no grade uses the type, otherwise deactivate it."""
        assessment_type = self.get_or_404(type_id)
        if self.exists(Grade, Grade.assessment_type_id == assessment_type.id):
            assessment_type.is_active = False
            assessment_type.updated_at = utcnow()
            self.db.commit()
            outcome = {"deleted": False, "deactivated": True}
        else:
            self.db.delete(assessment_type)
            self.db.commit()
            outcome = {"deleted": True, "deactivated": False}
        self.invalidate(f"{CacheKeys.ASSESSMENT_TYPES}*")
        return outcome

    def reactivate(self, type_id: str) -> AssessmentType:
        assessment_type = self.db.query(AssessmentType).filter(
            AssessmentType.id == parse_uuid(type_id), AssessmentType.is_active.is_(False)
        ).first()
        if assessment_type is None:
            raise AppError("Assessment type not found or already active", 404)
        assessment_type.is_active = True
        assessment_type.updated_at = utcnow()
        self.db.commit()
        self.db.refresh(assessment_type)
        self.invalidate(f"{CacheKeys.ASSESSMENT_TYPES}*")
        return assessment_type
