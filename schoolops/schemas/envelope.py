"""Response envelope shared by every endpoint: ``{data, meta, error}``."""

from __future__ import annotations

import math
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class ErrorBody(BaseModel):
    code: str
    message: str
    details: Any | None = None


class Envelope(BaseModel, Generic[T]):
    data: T | None = None
    meta: dict[str, Any] | None = None
    error: ErrorBody | None = None


class ListQuery(BaseModel):
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)
    q: str = ""

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def pagination_meta(query: ListQuery, total: int) -> dict[str, int]:
    return {
        "page": query.page,
        "limit": query.limit,
        "total": total,
        "pages": math.ceil(total / query.limit) if total else 0,
    }


def ok(data: Any, meta: dict[str, Any] | None = None) -> dict[str, Any]:
    return {"data": data, "meta": meta, "error": None}
