"""
Pagination schemas shared by list operations.
"""

import math

from pydantic import BaseModel, Field

from purchase_ledger.config import get_settings

settings = get_settings()


class Pagination(BaseModel):
    """Page request. limit is capped at MAX_PAGE_SIZE."""
    page: int = Field(default=1, ge=1)
    limit: int = Field(
        default=settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE
    )

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class PageMeta(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_more: bool

    @classmethod
    def build(cls, pagination: Pagination, total: int, returned: int) -> "PageMeta":
        return cls(
            page=pagination.page,
            limit=pagination.limit,
            total=total,
            total_pages=math.ceil(total / pagination.limit),
            has_more=pagination.offset + returned < total,
        )
