"""Shared Pydantic schemas for common API elements."""
from __future__ import annotations

from typing import Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class Page(BaseModel, Generic[T]):
    """A page of list results."""

    items: list[T]
    total: int
    limit: int
    offset: int
    has_more: bool = Field(..., description="True when more items follow this page.")
