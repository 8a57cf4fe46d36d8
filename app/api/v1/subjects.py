from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api import deps
from app.models.auth import User
from app.schemas import SubjectCreate, SubjectResponse, SubjectUpdate, dump, dump_list, ok
from app.services.base import PageParams
from app.services.subject_service import SubjectService

router = APIRouter()


@router.post("/", status_code=201)
def create_subject(
    subject_in: SubjectCreate,
    db: Session = Depends(deps.get_db),
    cache=Depends(deps.get_cache),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    subject = SubjectService(db, cache).create(subject_in.model_dump())
    return ok(dump(SubjectResponse, subject), "Subject created successfully")


@router.get("/")
def list_subjects(
    params: PageParams = Depends(deps.page_params),
    search: Optional[str] = None,
    is_active: Optional[bool] = Query(True, alias="isActive"),
    db: Session = Depends(deps.get_db),
    cache=Depends(deps.get_cache),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    result = SubjectService(db, cache).list_cached(
        params, search, is_active, serialize=lambda items: dump_list(SubjectResponse, items)
    )
    return ok(result["items"], pagination=result["pagination"])


@router.get("/{subject_id}")
def read_subject(
    subject_id: str,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    return ok(dump(SubjectResponse, SubjectService(db).get_or_404(subject_id)))


@router.put("/{subject_id}")
def update_subject(
    subject_id: str,
    subject_in: SubjectUpdate,
    db: Session = Depends(deps.get_db),
    cache=Depends(deps.get_cache),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    subject = SubjectService(db, cache).update(subject_id, subject_in.model_dump(exclude_unset=True))
    return ok(dump(SubjectResponse, subject), "Subject updated successfully")


@router.delete("/{subject_id}")
def delete_subject(
    subject_id: str,
    db: Session = Depends(deps.get_db),
    cache=Depends(deps.get_cache),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    SubjectService(db, cache).delete(subject_id)
    return ok(None, "Subject deactivated successfully")
