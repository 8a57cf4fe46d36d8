import logging
import math
import re
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Query, Session

from app.core.errors import AppError
from app.utils.dates import utcnow

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


def to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def to_snake(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


def camelize(data: Any) -> Any:
    """Recursively rename dict keys from snake_case to camelCase."""
    if isinstance(data, dict):
        return {to_camel(k) if isinstance(k, str) else k: camelize(v) for k, v in data.items()}
    if isinstance(data, list):
        return [camelize(item) for item in data]
    return data


def parse_uuid(value: Any) -> Optional[uuid.UUID]:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        return None


def to_float(value: Any) -> float:
    return float(value) if value is not None else 0.0


class PageParams:
    """page/limit/sort request values clamped to the supported range."""

    def __init__(
        self,
        page: Optional[int] = 1,
        limit: Optional[int] = DEFAULT_PAGE_SIZE,
        sort_by: Optional[str] = None,
        sort_order: Optional[str] = "desc",
    ):
        self.page = max(1, page if page is not None else 1)
        self.limit = min(max(1, limit if limit is not None else DEFAULT_PAGE_SIZE), MAX_PAGE_SIZE)
        self.offset = (self.page - 1) * self.limit
        self.sort_by = sort_by
        self.sort_order = "asc" if (sort_order or "").lower() == "asc" else "desc"

    def meta(self, total: int) -> Dict[str, int]:
        return {
            "page": self.page,
            "limit": self.limit,
            "total": total,
            "totalPages": math.ceil(total / self.limit) if total else 0,
        }


class BaseService:
    """Shared lookup, update and transaction helpers for the domain services."""

    model = None
    entity_name = "Resource"
    sort_fields: Dict[str, Any] = {}

    def __init__(self, db: Session, cache=None):
        self.db = db
        self.cache = cache

    @contextmanager
    def transaction(self):
        try:
            yield self.db
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def get_or_404(
        self,
        identifier: Any,
        model=None,
        name: Optional[str] = None,
        active_only: bool = False,
    ):
        """Look an entity up by UUID, or by numeric alt_id when the model has one."""
        model = model or self.model
        name = name or self.entity_name
        obj = None
        entity_id = parse_uuid(identifier)
        if entity_id is not None:
            obj = self.db.query(model).filter(model.id == entity_id).first()
        elif str(identifier).isdigit() and hasattr(model, "alt_id"):
            obj = self.db.query(model).filter(model.alt_id == int(identifier)).first()

        if obj is None or (active_only and not obj.is_active):
            suffix = " or inactive" if active_only else ""
            raise AppError(f"{name} not found{suffix}", 404)
        return obj

    def exists(self, model, *criteria) -> bool:
        return self.db.query(model.id).filter(*criteria).first() is not None

    def next_alt_id(self, model=None) -> int:
        model = model or self.model
        current = self.db.query(func.max(model.alt_id)).scalar()
        return (current or 0) + 1

    def apply_updates(self, obj, data: Dict[str, Any], allowed: Optional[Iterable[str]] = None) -> Dict[str, Any]:
        """Set every non-None field in ``data`` on ``obj``; fails when nothing is left."""
        allowed = set(allowed) if allowed is not None else None
        changes = {
            key: value
            for key, value in data.items()
            if value is not None and (allowed is None or key in allowed)
        }
        if not changes:
            raise AppError("No fields to update", 400)
        for key, value in changes.items():
            setattr(obj, key, value)
        if hasattr(obj, "updated_at"):
            obj.updated_at = utcnow()
        return changes

    def paginate(self, query: Query, params: PageParams, default_sort=None) -> Tuple[List[Any], Dict[str, int]]:
        total = query.order_by(None).count()
        column = None
        if params.sort_by:
            column = self.sort_fields.get(to_snake(params.sort_by))
        if column is None:
            column = default_sort
        if column is not None:
            query = query.order_by(column.asc() if params.sort_order == "asc" else column.desc())
        items = query.offset(params.offset).limit(params.limit).all()
        return items, params.meta(total)

    def invalidate(self, *patterns: str) -> None:
        if not self.cache:
            return
        for pattern in patterns:
            self.cache.delete_pattern(pattern)

    def cached(self, prefix: str, parts: Iterable[Any], load, ttl: Optional[int] = None):
        """Cache-aside read; runs ``load`` directly when no cache is injected."""
        if not self.cache:
            return load()
        return self.cache.get_or_set(self.cache.generate_key(prefix, *parts), load, ttl)
