"""Pydantic schemas for data validation and serialization.

These schemas are used for:
- Validating input data for users, books and loans
- Describing list queries (search, sort, paging)
- Serializing responses for the API and CLI
"""

from enum import Enum
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

T = TypeVar("T")

MIN_SCORE = 1
MAX_SCORE = 10
MIN_AMENDED_SCORE = 0

# Sentinel stored in Book.average_score until the first score arrives
UNSCORED = -1.0


class SortOrder(str, Enum):
    """Sort direction for listings."""

    ASC = "ASC"
    DESC = "DESC"


class UserSortField(str, Enum):
    """Columns a user listing may be sorted by."""

    ID = "id"
    NAME = "name"


class BookSortField(str, Enum):
    """Columns a book listing may be sorted by."""

    ID = "id"
    NAME = "name"
    AVERAGE_SCORE = "average_score"


# ============================================================================
# Input Schemas
# ============================================================================


class UserCreate(BaseModel):
    """Schema for creating a user."""

    name: str = Field(..., min_length=3, max_length=100)

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v):
        """Trim surrounding whitespace before length checks."""
        return v.strip() if isinstance(v, str) else v


class BookCreate(BaseModel):
    """Schema for creating a book."""

    name: str = Field(..., min_length=1, max_length=255)

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v):
        """Trim surrounding whitespace before length checks."""
        return v.strip() if isinstance(v, str) else v


class ReturnRequest(BaseModel):
    """Body of a return request."""

    model_config = ConfigDict(strict=True)

    score: int = Field(..., ge=MIN_SCORE, le=MAX_SCORE)


class ScoreAmendment(BaseModel):
    """Body of a score amendment request."""

    model_config = ConfigDict(strict=True, populate_by_name=True)

    new_score: int = Field(..., ge=MIN_AMENDED_SCORE, le=MAX_SCORE, alias="newScore")


class ListQuery(BaseModel, Generic[T]):
    """Search, sort and paging parameters for a listing.

    ``sort_by`` is parameterised by a sort-field enum so only known columns
    ever reach the query builder.
    """

    search: Optional[str] = None
    sort_by: Optional[T] = None
    order: SortOrder = SortOrder.ASC
    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=100)

    @field_validator("order", mode="before")
    @classmethod
    def normalize_order(cls, v):
        """Accept lowercase directions."""
        return v.upper() if isinstance(v, str) else v

    @property
    def skip(self) -> int:
        """Number of rows to skip for the requested page."""
        return (self.page - 1) * self.limit


class UserListQuery(ListQuery[UserSortField]):
    """List query for users."""


class BookListQuery(ListQuery[BookSortField]):
    """List query for books."""


# ============================================================================
# Response Schemas
# ============================================================================


class UserResponse(BaseModel):
    """Schema for user responses."""

    id: int
    name: str

    model_config = ConfigDict(from_attributes=True)


class BookResponse(BaseModel):
    """Schema for book responses."""

    id: int
    name: str
    average_score: float = Field(UNSCORED, serialization_alias="averageScore")

    model_config = ConfigDict(from_attributes=True)


class BookDetail(BaseModel):
    """A single book with its average score."""

    id: int
    name: str
    score: float


class PastLoan(BaseModel):
    """A returned book in a user's history."""

    name: str
    user_score: Optional[int] = Field(None, serialization_alias="userScore")


class PresentLoan(BaseModel):
    """A book the user currently holds. Active loans carry no score."""

    name: str


class UserBooks(BaseModel):
    """A user's borrowing history split by loan state."""

    past: list[PastLoan] = Field(default_factory=list)
    present: list[PresentLoan] = Field(default_factory=list)


class UserDetail(BaseModel):
    """A single user with their past and present loans."""

    id: int
    name: str
    books: UserBooks


class Page(BaseModel, Generic[T]):
    """One page of a listing."""

    items: list[T]
    total: int
    page: int
    limit: int
