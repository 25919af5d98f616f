"""Common types shared across all models."""

from typing import Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class Page(BaseModel, Generic[T]):
    """One page of results plus pagination metadata."""

    items: list[T]
    total: int = Field(..., ge=0)
    limit: int = Field(..., ge=0)
    offset: int = Field(..., ge=0)
    has_more: bool = False

    @classmethod
    def build(cls, items: list[T], total: int, limit: int, offset: int) -> "Page[T]":
        """Build a page, deriving has_more from the totals."""
        return cls(
            items=items,
            total=total,
            limit=limit,
            offset=offset,
            has_more=total > offset + limit,
        )
