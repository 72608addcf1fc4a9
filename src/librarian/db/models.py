"""SQLAlchemy ORM models for the library store.

Tables:
- users: Library members
- books: Catalogue entries with their aggregated score
- loan_records: Individual borrow/return records
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, Float, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from .schemas import UNSCORED


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utcnow() -> datetime:
    """Current time in UTC."""
    return datetime.now(timezone.utc)


class User(Base):
    """User model - a library member."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)

    loan_records: Mapped[list["LoanRecord"]] = relationship(
        "LoanRecord", back_populates="user", passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, name='{self.name}')>"


class Book(Base):
    """Book model - a catalogue entry."""

    __tablename__ = "books"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    average_score: Mapped[float] = mapped_column(
        Float, nullable=False, default=UNSCORED, server_default=text(str(UNSCORED))
    )

    loan_records: Mapped[list["LoanRecord"]] = relationship(
        "LoanRecord", back_populates="book", passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"<Book(id={self.id}, name='{self.name}', average_score={self.average_score})>"


# Active loans are those not yet returned. The partial unique indexes make
# the store reject a second active loan for a book even when two borrows
# race past the application-level checks.
_ACTIVE = text("returned_date IS NULL")


class LoanRecord(Base):
    """Loan record model - one borrow of one book by one user."""

    __tablename__ = "loan_records"
    __table_args__ = (
        Index(
            "uq_loan_records_active_book",
            "book_id",
            unique=True,
            sqlite_where=_ACTIVE,
            postgresql_where=_ACTIVE,
        ),
        Index(
            "uq_loan_records_active_user_book",
            "user_id",
            "book_id",
            unique=True,
            sqlite_where=_ACTIVE,
            postgresql_where=_ACTIVE,
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    user_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), index=True
    )
    book_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("books.id", ondelete="SET NULL"), index=True
    )

    borrowed_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    returned_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    score: Mapped[Optional[int]] = mapped_column(Integer)

    # Relationships
    user: Mapped[Optional["User"]] = relationship("User", back_populates="loan_records")
    book: Mapped[Optional["Book"]] = relationship("Book", back_populates="loan_records")

    def __repr__(self) -> str:
        return (
            f"<LoanRecord(id={self.id}, user_id={self.user_id}, book_id={self.book_id}, "
            f"returned={self.returned_date is not None}, score={self.score})>"
        )

    @property
    def is_active(self) -> bool:
        """Check if the book is still out on this loan."""
        return self.returned_date is None
