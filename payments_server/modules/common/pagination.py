"""Pagination envelope used by every admin listing."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from .exceptions import ValidationError

T = TypeVar("T")

MAX_PAGE_SIZE = 200


@dataclass(slots=True, frozen=True)
class PageRequest:
    page: int = 1
    limit: int = 50

    def __post_init__(self) -> None:
        if self.page < 1:
            raise ValidationError("page must be >= 1", field="page")
        if self.limit < 1 or self.limit > MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}", field="limit")

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


@dataclass(slots=True)
class Page(Generic[T]):
    items: list[T]
    page: int
    limit: int
    total: int
    pages: int = field(init=False)

    def __post_init__(self) -> None:
        self.pages = math.ceil(self.total / self.limit) if self.limit else 0

    @classmethod
    def build(cls, items: list[T], request: PageRequest, total: int) -> "Page[T]":
        return cls(items=items, page=request.page, limit=request.limit, total=total)

    def pagination(self) -> dict[str, int]:
        return {"page": self.page, "limit": self.limit, "total": self.total, "pages": self.pages}
