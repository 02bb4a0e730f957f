"""
Response envelope shared by every endpoint.

Every response, success or failure, has the shape
``{success, data, message, code, timestamp}``. List endpoints put a page
``{items, pagination: {current, pageSize, total, pages}}`` in ``data``.
"""
import math
from collections.abc import Sequence
from datetime import datetime
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from crm_admin.core import timeutils


T = TypeVar("T")


class CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class Envelope(BaseModel, Generic[T]):
    success: bool = True
    data: Optional[T] = None
    message: str = "success"
    code: int = 200
    timestamp: datetime = Field(default_factory=timeutils.utcnow)


class Pagination(CamelModel):
    current: int
    page_size: int
    total: int
    pages: int


class Page(CamelModel, Generic[T]):
    items: list[T]
    pagination: Pagination


def ok(data: Any = None, message: str = "success", code: int = 200) -> dict[str, Any]:
    """Successful envelope as a dict; the route's response_model shapes ``data``."""
    return {
        "success": True,
        "data": data,
        "message": message,
        "code": code,
        "timestamp": timeutils.utcnow(),
    }


def fail(message: str, code: int, data: Any = None) -> dict[str, Any]:
    return {
        "success": False,
        "data": data,
        "message": message,
        "code": code,
        "timestamp": timeutils.utcnow(),
    }


def paginate(items: Sequence[Any], page: int, limit: int) -> dict[str, Any]:
    """Slice ``items`` to one page. ``page`` is 1-based."""
    total = len(items)
    start = (page - 1) * limit
    return {
        "items": list(items[start:start + limit]),
        "pagination": {
            "current": page,
            "page_size": limit,
            "total": total,
            "pages": math.ceil(total / limit) if limit else 0,
        },
    }
