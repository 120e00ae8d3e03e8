"""Search criteria and paginated result wrappers."""

from datetime import datetime
from enum import Enum
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class SearchCriteria(BaseModel):
    """Filters shared by every repository search.

    ``kind`` is the entity's classification column (coffee type, service type,
    company type, requested coffee type, order type). ``date_from``/``date_to``
    bound the entity's primary date (submission date for RFQs, order date for
    orders, last update otherwise).
    """

    status: Optional[List[str]] = None
    kind: Optional[List[str]] = None
    client_id: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    text: Optional[str] = Field(default=None, max_length=200)
    sort_by: Optional[str] = None
    sort_order: SortOrder = SortOrder.DESC
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=200)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class SearchResult(BaseModel, Generic[T]):
    """One page of search hits."""

    items: List[T]
    total: int = Field(description="Total number of items matching the query")
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit

    @property
    def has_more(self) -> bool:
        return self.page * self.limit < self.total

    @classmethod
    def create(cls, items: List[T], total: int, criteria: SearchCriteria) -> "SearchResult[T]":
        return cls(items=items, total=total, page=criteria.page, limit=criteria.limit)


def paginate_query(query, criteria: SearchCriteria):
    """
    Apply pagination to a SQLAlchemy query.

    Returns:
        Tuple of (page of rows, total count)
    """
    total = query.count()
    rows = query.offset(criteria.offset).limit(criteria.limit).all()
    return rows, total
