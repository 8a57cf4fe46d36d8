from typing import Any, Optional

from fastapi import APIRouter, Depends

from app.api import deps
from app.core.errors import AppError
from app.models.auth import User
from app.schemas import ok

router = APIRouter()


def _require(cache):
    if cache is None:
        raise AppError("Cache is not available", 503, code="CACHE_UNAVAILABLE")
    return cache


@router.get("/stats")
def cache_stats(
    cache=Depends(deps.get_cache),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    return ok(_require(cache).stats())


@router.delete("/")
def clear_cache(
    pattern: Optional[str] = None,
    cache=Depends(deps.get_cache),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    cache = _require(cache)
    if pattern:
        removed = cache.delete_pattern(pattern)
        return ok({"removed": removed}, f"Removed {removed} cache entries matching '{pattern}'")
    cache.flush()
    return ok(None, "Cache cleared successfully")
