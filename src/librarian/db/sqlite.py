"""SQLite database operations.

Handles database connection, session management and the storage operations
the loan and catalog managers are written against.
"""

import os
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Generator, Optional

from sqlalchemy import create_engine, delete, event, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .models import Base, Book, LoanRecord, User
from .schemas import BookListQuery, BookSortField, SortOrder, UserListQuery, UserSortField
from ..config import DEFAULT_DB_PATH

# Sort fields map onto columns here and only here
USER_SORT_COLUMNS = {
    UserSortField.ID: User.id,
    UserSortField.NAME: User.name,
}
BOOK_SORT_COLUMNS = {
    BookSortField.ID: Book.id,
    BookSortField.NAME: Book.name,
    BookSortField.AVERAGE_SCORE: Book.average_score,
}


@dataclass(frozen=True)
class LoanFilter:
    """Composable predicate over loan records.

    Attributes:
        user_id: Only records of this user
        book_id: Only records of this book
        returned: None for any record, False for active loans only,
                  True for closed loans only
        scored: Only records carrying a score
        newest_first: Order by most recent activity first
    """

    user_id: Optional[int] = None
    book_id: Optional[int] = None
    returned: Optional[bool] = None
    scored: bool = False
    newest_first: bool = True

    def apply(self, stmt):
        """Add this filter's WHERE and ORDER BY clauses to a select."""
        if self.user_id is not None:
            stmt = stmt.where(LoanRecord.user_id == self.user_id)
        if self.book_id is not None:
            stmt = stmt.where(LoanRecord.book_id == self.book_id)
        if self.returned is False:
            stmt = stmt.where(LoanRecord.returned_date.is_(None))
        elif self.returned is True:
            stmt = stmt.where(LoanRecord.returned_date.isnot(None))
        if self.scored:
            stmt = stmt.where(LoanRecord.score.isnot(None))

        if self.newest_first:
            if self.returned is True:
                stmt = stmt.order_by(LoanRecord.returned_date.desc(), LoanRecord.id.desc())
            else:
                stmt = stmt.order_by(LoanRecord.borrowed_date.desc(), LoanRecord.id.desc())
        else:
            stmt = stmt.order_by(LoanRecord.id)
        return stmt


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    """Turn on FK enforcement so ON DELETE SET NULL applies."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Database connection and operations manager."""

    def __init__(self, db_path: Optional[str] = None):
        """Initialize database connection.

        Args:
            db_path: Path to SQLite database file, or ":memory:". If None,
                     uses LIBRARIAN_DB_PATH env var or default location.
        """
        if db_path is None:
            db_path = os.environ.get("LIBRARIAN_DB_PATH", str(DEFAULT_DB_PATH))

        self.db_path = Path(db_path)
        self._is_memory = str(db_path) == ":memory:"

        if not self._is_memory:
            self._ensure_directory()

        # For in-memory databases, use StaticPool to reuse the same connection
        # This ensures all sessions share the same in-memory database
        if self._is_memory:
            self.engine: Engine = create_engine(
                "sqlite:///:memory:",
                echo=False,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            self.engine = create_engine(
                f"sqlite:///{self.db_path}",
                echo=False,
                connect_args={"check_same_thread": False},
            )
        event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)
        self.SessionLocal = sessionmaker(bind=self.engine, autocommit=False, autoflush=False)

    def _ensure_directory(self) -> None:
        """Ensure the database directory exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def create_tables(self) -> None:
        """Create all database tables."""
        Base.metadata.create_all(self.engine)

    def drop_tables(self) -> None:
        """Drop all database tables. Use with caution!"""
        Base.metadata.drop_all(self.engine)

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """Get a database session context manager."""
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ========================================================================
    # User Operations
    # ========================================================================

    def create_user(self, name: str, session: Optional[Session] = None) -> User:
        """Create a new user record."""

        def _create(s: Session) -> User:
            user = User(name=name)
            s.add(user)
            s.flush()
            return user

        if session:
            return _create(session)
        else:
            with self.get_session() as s:
                user = _create(s)
                s.expunge(user)
                return user

    def get_user(self, user_id: int, session: Optional[Session] = None) -> Optional[User]:
        """Get a user by ID."""

        def _get(s: Session) -> Optional[User]:
            return s.get(User, user_id)

        if session:
            return _get(session)
        else:
            with self.get_session() as s:
                user = _get(s)
                if user:
                    s.expunge(user)
                return user

    def list_users(
        self, query: UserListQuery, session: Optional[Session] = None
    ) -> tuple[list[User], int]:
        """List users matching a query. Returns the page and the total count."""

        def _list(s: Session) -> tuple[list[User], int]:
            stmt = select(User)
            if query.search:
                stmt = stmt.where(User.name.contains(query.search, autoescape=True))
            total = s.execute(select(func.count()).select_from(stmt.subquery())).scalar() or 0

            column = USER_SORT_COLUMNS[query.sort_by or UserSortField.ID]
            ordering = column.desc() if query.order == SortOrder.DESC else column.asc()
            stmt = stmt.order_by(ordering, User.id).offset(query.skip).limit(query.limit)
            return list(s.execute(stmt).scalars().all()), total

        if session:
            return _list(session)
        else:
            with self.get_session() as s:
                users, total = _list(s)
                for user in users:
                    s.expunge(user)
                return users, total

    def delete_user(self, user_id: int, session: Optional[Session] = None) -> int:
        """Delete a user record. Returns the number of rows removed."""

        def _delete(s: Session) -> int:
            return s.execute(delete(User).where(User.id == user_id)).rowcount

        if session:
            return _delete(session)
        else:
            with self.get_session() as s:
                return _delete(s)

    # ========================================================================
    # Book Operations
    # ========================================================================

    def create_book(self, name: str, session: Optional[Session] = None) -> Book:
        """Create a new book record."""

        def _create(s: Session) -> Book:
            book = Book(name=name)
            s.add(book)
            s.flush()
            s.refresh(book)
            return book

        if session:
            return _create(session)
        else:
            with self.get_session() as s:
                book = _create(s)
                s.expunge(book)
                return book

    def get_book(self, book_id: int, session: Optional[Session] = None) -> Optional[Book]:
        """Get a book by ID."""

        def _get(s: Session) -> Optional[Book]:
            return s.get(Book, book_id)

        if session:
            return _get(session)
        else:
            with self.get_session() as s:
                book = _get(s)
                if book:
                    s.expunge(book)
                return book

    def list_books(
        self, query: BookListQuery, session: Optional[Session] = None
    ) -> tuple[list[Book], int]:
        """List books matching a query. Returns the page and the total count."""

        def _list(s: Session) -> tuple[list[Book], int]:
            stmt = select(Book)
            if query.search:
                stmt = stmt.where(Book.name.contains(query.search, autoescape=True))
            total = s.execute(select(func.count()).select_from(stmt.subquery())).scalar() or 0

            column = BOOK_SORT_COLUMNS[query.sort_by or BookSortField.ID]
            ordering = column.desc() if query.order == SortOrder.DESC else column.asc()
            stmt = stmt.order_by(ordering, Book.id).offset(query.skip).limit(query.limit)
            return list(s.execute(stmt).scalars().all()), total

        if session:
            return _list(session)
        else:
            with self.get_session() as s:
                books, total = _list(s)
                for book in books:
                    s.expunge(book)
                return books, total

    def update_book(self, book: Book, session: Optional[Session] = None) -> Book:
        """Persist changes made to a book."""

        def _update(s: Session) -> Book:
            merged = s.merge(book)
            s.flush()
            return merged

        if session:
            return _update(session)
        else:
            with self.get_session() as s:
                merged = _update(s)
                s.expunge(merged)
                return merged

    def delete_book(self, book_id: int, session: Optional[Session] = None) -> int:
        """Delete a book record. Returns the number of rows removed."""

        def _delete(s: Session) -> int:
            return s.execute(delete(Book).where(Book.id == book_id)).rowcount

        if session:
            return _delete(session)
        else:
            with self.get_session() as s:
                return _delete(s)

    # ========================================================================
    # Loan Record Operations
    # ========================================================================

    def create_loan(
        self,
        user_id: int,
        book_id: int,
        borrowed_date: datetime,
        session: Optional[Session] = None,
    ) -> LoanRecord:
        """Create a new, active loan record."""

        def _create(s: Session) -> LoanRecord:
            loan = LoanRecord(
                user_id=user_id,
                book_id=book_id,
                borrowed_date=borrowed_date,
                returned_date=None,
                score=None,
            )
            s.add(loan)
            s.flush()
            return loan

        if session:
            return _create(session)
        else:
            with self.get_session() as s:
                loan = _create(s)
                s.expunge(loan)
                return loan

    def find_loan(
        self, loan_filter: LoanFilter, session: Optional[Session] = None
    ) -> Optional[LoanRecord]:
        """Get the first loan record matching a filter."""

        def _find(s: Session) -> Optional[LoanRecord]:
            stmt = loan_filter.apply(select(LoanRecord)).limit(1)
            return s.execute(stmt).scalars().first()

        if session:
            return _find(session)
        else:
            with self.get_session() as s:
                loan = _find(s)
                if loan:
                    s.expunge(loan)
                return loan

    def find_loans(
        self, loan_filter: LoanFilter, session: Optional[Session] = None
    ) -> list[LoanRecord]:
        """Get all loan records matching a filter."""

        def _find(s: Session) -> list[LoanRecord]:
            stmt = loan_filter.apply(select(LoanRecord))
            return list(s.execute(stmt).scalars().all())

        if session:
            return _find(session)
        else:
            with self.get_session() as s:
                loans = _find(s)
                for loan in loans:
                    s.expunge(loan)
                return loans

    def get_scores(self, book_id: int, session: Optional[Session] = None) -> list[int]:
        """Get every non-null score recorded against a book."""

        def _get(s: Session) -> list[int]:
            stmt = select(LoanRecord.score).where(
                LoanRecord.book_id == book_id,
                LoanRecord.score.isnot(None),
            )
            return list(s.execute(stmt).scalars().all())

        if session:
            return _get(session)
        else:
            with self.get_session() as s:
                return _get(s)

    def update_loan(self, loan: LoanRecord, session: Optional[Session] = None) -> LoanRecord:
        """Persist changes made to a loan record."""

        def _update(s: Session) -> LoanRecord:
            merged = s.merge(loan)
            s.flush()
            return merged

        if session:
            return _update(session)
        else:
            with self.get_session() as s:
                merged = _update(s)
                s.expunge(merged)
                return merged

    def delete_loan(self, loan_id: int, session: Optional[Session] = None) -> int:
        """Delete a loan record. Returns the number of rows removed."""

        def _delete(s: Session) -> int:
            return s.execute(delete(LoanRecord).where(LoanRecord.id == loan_id)).rowcount

        if session:
            return _delete(session)
        else:
            with self.get_session() as s:
                return _delete(s)


# Global database instance
_db: Optional[Database] = None


def get_db(db_path: Optional[str] = None) -> Database:
    """Get or create the global database instance."""
    global _db
    if _db is None:
        _db = Database(db_path)
        _db.create_tables()
    return _db


def reset_db() -> None:
    """Reset the global database instance. Used for testing."""
    global _db
    _db = None
