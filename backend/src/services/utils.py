"""Shared utility functions for service layer."""
import math
from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


def escape_ilike(value: str) -> str:
    r"""
    Escape special ILIKE characters for safe use in LIKE/ILIKE patterns.

    PostgreSQL LIKE/ILIKE treats these characters specially:
    - % matches any sequence of characters
    - _ matches any single character
    - \\ is the escape character

    This function escapes them so they match literally.
    """
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


MAX_PAGE_SIZE = 100


@dataclass
class Page(Generic[T]):
    """One page of a listing plus the totals needed to render pagination."""

    items: list[T]
    total: int
    page: int
    pages: int


def normalize_pagination(page: int | None, limit: int | None, default_limit: int) -> tuple[int, int]:  # noqa: E501
    """
    Coerce user-supplied paging parameters into a usable (page, limit) pair.

    page below 1 becomes 1; limit below 1 falls back to default_limit and
    limit above MAX_PAGE_SIZE is clamped.
    """
    page = page if page is not None and page >= 1 else 1
    if limit is None or limit < 1:
        limit = default_limit
    return page, min(limit, MAX_PAGE_SIZE)


def page_count(total: int, limit: int) -> int:
    """Number of pages needed to show total items at limit per page."""
    return math.ceil(total / limit) if total else 0
