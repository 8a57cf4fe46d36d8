from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api import deps
from app.models.auth import User
from app.schemas import AcademicYearCreate, AcademicYearResponse, AcademicYearUpdate, dump, dump_list, ok
from app.services.academic_service import AcademicYearService
from app.services.base import PageParams
from app.services.cache_service import CacheKeys, CacheTTL

router = APIRouter()


@router.post("/", status_code=201)
def create_academic_year(
    year_in: AcademicYearCreate,
    db: Session = Depends(deps.get_db),
    cache=Depends(deps.get_cache),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    year = AcademicYearService(db, cache).create(year_in.model_dump())
    return ok(dump(AcademicYearResponse, year), "Academic year created successfully")


@router.get("/")
def list_academic_years(
    params: PageParams = Depends(deps.page_params),
    is_active: Optional[bool] = Query(None, alias="isActive"),
    db: Session = Depends(deps.get_db),
    cache=Depends(deps.get_cache),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    service = AcademicYearService(db, cache)

    def load():
        years, meta = service.list(params, is_active=is_active)
        return {"items": dump_list(AcademicYearResponse, years), "pagination": meta}

    parts = (params.page, params.limit, params.sort_by, params.sort_order, is_active)
    result = service.cached(CacheKeys.ACADEMIC_YEARS, parts, load, CacheTTL.LONG)
    return ok(result["items"], pagination=result["pagination"])


@router.get("/current")
def read_current_academic_year(
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    return ok(dump(AcademicYearResponse, AcademicYearService(db).get_current()))


@router.get("/{year_id}")
def read_academic_year(
    year_id: str,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    return ok(dump(AcademicYearResponse, AcademicYearService(db).get_or_404(year_id)))


@router.put("/{year_id}")
def update_academic_year(
    year_id: str,
    year_in: AcademicYearUpdate,
    db: Session = Depends(deps.get_db),
    cache=Depends(deps.get_cache),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    year = AcademicYearService(db, cache).update(year_id, year_in.model_dump(exclude_unset=True))
    return ok(dump(AcademicYearResponse, year), "Academic year updated successfully")


@router.patch("/{year_id}/activate")
def activate_academic_year(
    year_id: str,
    db: Session = Depends(deps.get_db),
    cache=Depends(deps.get_cache),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    year = AcademicYearService(db, cache).activate(year_id)
    return ok(dump(AcademicYearResponse, year), "Academic year activated successfully")


@router.delete("/{year_id}")
def delete_academic_year(
    year_id: str,
    db: Session = Depends(deps.get_db),
    cache=Depends(deps.get_cache),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    AcademicYearService(db, cache).delete(year_id)
    return ok(None, "Academic year deleted successfully")
