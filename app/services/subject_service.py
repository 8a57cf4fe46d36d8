from typing import Dict, List, Optional, Tuple

from sqlalchemy import or_

from app.core.errors import AppError
from app.models.academics import Class, ClassSubject, Subject
from app.services.base import BaseService, PageParams
from app.services.cache_service import CacheKeys, CacheTTL


class SubjectService(BaseService):
    model = Subject
    entity_name = "Subject"
    sort_fields = {
        "name": Subject.name,
        "code": Subject.code,
        "credit_hours": Subject.credit_hours,
        "created_at": Subject.created_at,
    }

    def create(self, data: Dict) -> Subject:
        code = data["code"].upper()
        if self.exists(Subject, Subject.code == code):
            raise AppError("Subject with this code already exists", 409)
        subject = Subject(alt_id=self.next_alt_id(), **{**data, "code": code})
        self.db.add(subject)
        self.db.commit()
        self.db.refresh(subject)
        self.invalidate(f"{CacheKeys.SUBJECTS}*")
        return subject

    def list(
        self,
        params: PageParams,
        search: Optional[str] = None,
        is_active: Optional[bool] = True,
    ) -> Tuple[List[Subject], Dict]:
        query = self.db.query(Subject)
        if is_active is not None:
            query = query.filter(Subject.is_active.is_(is_active))
        if search:
            term = f"%{search}%"
            query = query.filter(or_(Subject.name.ilike(term), Subject.code.ilike(term)))
        return self.paginate(query, params, default_sort=Subject.name)

    def list_cached(self, params: PageParams, search: Optional[str], is_active: Optional[bool], serialize) -> Dict:
        def load():
            items, meta = self.list(params, search, is_active)
            return {"items": serialize(items), "pagination": meta}

        parts = (params.page, params.limit, params.sort_by, params.sort_order, search, is_active)
        return self.cached(CacheKeys.SUBJECTS, parts, load, CacheTTL.MEDIUM)

    def update(self, subject_id: str, data: Dict) -> Subject:
        subject = self.get_or_404(subject_id)
        if data.get("code"):
            data["code"] = data["code"].upper()
            if data["code"] != subject.code and self.exists(
                Subject, Subject.code == data["code"], Subject.id != subject.id
            ):
                raise AppError("Subject with this code already exists", 409)
        self.apply_updates(subject, data)
        self.db.commit()
        self.db.refresh(subject)
        self.invalidate(f"{CacheKeys.SUBJECTS}*")
        return subject

    def delete(self, subject_id: str) -> None:
        subject = self.get_or_404(subject_id, active_only=True)
        in_use = (
            self.db.query(ClassSubject.id)
            .join(Class, Class.id == ClassSubject.class_id)
            .filter(ClassSubject.subject_id == subject.id, Class.is_active.is_(True))
            .first()
        )
        if in_use:
            raise AppError("Cannot delete subject assigned to active classes", 409)
        subject.is_active = False
        self.db.commit()
        self.invalidate(f"{CacheKeys.SUBJECTS}*")
