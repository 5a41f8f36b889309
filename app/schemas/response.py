from pydantic import BaseModel, Field
from typing import Any, Generic, List, Optional, TypeVar
import math
import uuid

T = TypeVar("T")


def _rid():
    return uuid.uuid4().hex


class SuccessResponse(BaseModel):
    """Simple success response wrapper with just data, success, and request_id"""
    success: Optional[bool] = Field(default=True)
    request_id: str = Field(default_factory=_rid)
    data: Optional[Any] = None


class PageResponse(BaseModel, Generic[T]):
    """One page of results plus the paging metadata clients need to walk the rest."""
    content: List[T]
    page: int
    size: int
    total_elements: int
    total_pages: int
    first: bool
    last: bool

    @classmethod
    def build(cls, content: List[T], page: int, size: int, total_elements: int) -> "PageResponse[T]":
        total_pages = math.ceil(total_elements / size) if size else 0
        return cls(
            content=content,
            page=page,
            size=size,
            total_elements=total_elements,
            total_pages=total_pages,
            first=page == 0,
            last=page >= total_pages - 1,
        )
