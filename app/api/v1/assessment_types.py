from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api import deps
from app.models.auth import User
from app.schemas import AssessmentTypeCreate, AssessmentTypeResponse, AssessmentTypeUpdate, dump, dump_list, ok
from app.services.assessment_type_service import AssessmentTypeService
from app.services.base import PageParams
from app.services.cache_service import CacheKeys, CacheTTL

router = APIRouter()


@router.post("/", status_code=201)
def create_assessment_type(
    type_in: AssessmentTypeCreate,
    db: Session = Depends(deps.get_db),
    cache=Depends(deps.get_cache),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    assessment_type = AssessmentTypeService(db, cache).create(type_in.model_dump())
    return ok(dump(AssessmentTypeResponse, assessment_type), "Assessment type created successfully")


@router.get("/")
def list_assessment_types(
    params: PageParams = Depends(deps.page_params),
    is_active: Optional[bool] = Query(True, alias="isActive"),
    search: Optional[str] = None,
    db: Session = Depends(deps.get_db),
    cache=Depends(deps.get_cache),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    service = AssessmentTypeService(db, cache)

    def load():
        types, meta = service.list(params, is_active=is_active, search=search)
        return {"items": dump_list(AssessmentTypeResponse, types), "pagination": meta}

    parts = (params.page, params.limit, params.sort_by, params.sort_order, is_active, search)
    result = service.cached(CacheKeys.ASSESSMENT_TYPES, parts, load, CacheTTL.LONG)
    return ok(result["items"], pagination=result["pagination"])


@router.get("/{type_id}")
def read_assessment_type(
    type_id: str,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    return ok(dump(AssessmentTypeResponse, AssessmentTypeService(db).get_or_404(type_id)))


@router.put("/{type_id}")
def update_assessment_type(
    type_id: str,
    type_in: AssessmentTypeUpdate,
    db: Session = Depends(deps.get_db),
    cache=Depends(deps.get_cache),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    assessment_type = AssessmentTypeService(db, cache).update(type_id, type_in.model_dump(exclude_unset=True))
    return ok(dump(AssessmentTypeResponse, assessment_type), "Assessment type updated successfully")


@router.delete("/{type_id}")
def delete_assessment_type(
    type_id: str,
    db: Session = Depends(deps.get_db),
    cache=Depends(deps.get_cache),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    outcome = AssessmentTypeService(db, cache).delete(type_id)
    message = "Assessment type deleted successfully" if outcome["deleted"] else (
        "Assessment type is in use and has been deactivated"
    )
    return ok(outcome, message)


@router.patch("/{type_id}/reactivate")
def reactivate_assessment_type(
    type_id: str,
    db: Session = Depends(deps.get_db),
    cache=Depends(deps.get_cache),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    assessment_type = AssessmentTypeService(db, cache).reactivate(type_id)
    return ok(dump(AssessmentTypeResponse, assessment_type), "Assessment type reactivated successfully")
