from typing import Generic, List, Optional, TypeVar
import math

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CamelModel(BaseModel):
    """Accepts and emits camelCase field names"""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class Pagination(CamelModel):
    current: int
    pages: int
    total: int

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        return cls(current=page, pages=math.ceil(total / limit) if limit else 0, total=total)


class ApiResponse(CamelModel, Generic[T]):
    """Envelope shared by every endpoint"""
    success: bool = True
    message: Optional[str] = None
    data: Optional[T] = None
    errors: Optional[List[str]] = None
    pagination: Optional[Pagination] = None
