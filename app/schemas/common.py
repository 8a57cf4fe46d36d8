from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Accepts snake_case or camelCase input; dumps camelCase with ``by_alias``."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


def dump(schema: Type[BaseModel], obj: Any) -> Dict[str, Any]:
    return schema.model_validate(obj).model_dump(by_alias=True, mode="json")


def dump_list(schema: Type[BaseModel], objs: List[Any]) -> List[Dict[str, Any]]:
    return [dump(schema, obj) for obj in objs]


def ok(data: Any = None, message: Optional[str] = None, pagination: Optional[Dict] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": True}
    if message:
        body["message"] = message
    body["data"] = data
    if pagination is not None:
        body["pagination"] = pagination
    return body
