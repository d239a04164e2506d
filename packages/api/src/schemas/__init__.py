# This project was developed with assistance from AI tools.
"""Shared schema components."""

from pydantic import BaseModel


class Pagination(BaseModel):
    """Page-based pagination metadata for list responses.

    ``offset`` is derived from ``page`` and ``limit`` so clients may use
    either style when walking a result set.
    """

    total: int
    page: int
    limit: int
    offset: int
    has_more: bool

    @classmethod
    def for_page(cls, total: int, page: int, limit: int) -> "Pagination":
        offset = (page - 1) * limit
        return cls(
            total=total,
            page=page,
            limit=limit,
            offset=offset,
            has_more=offset + limit < total,
        )
