"""Catalog manager for users, books and borrowing history."""

import logging
from typing import Optional

from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..db.schemas import (
    BookCreate,
    BookDetail,
    BookListQuery,
    BookResponse,
    Page,
    PastLoan,
    PresentLoan,
    UserBooks,
    UserCreate,
    UserDetail,
    UserListQuery,
    UserResponse,
)
from ..db.sqlite import Database, LoanFilter, get_db
from ..errors import (
    ConflictError,
    InvalidError,
    NotFoundError,
    StorageError,
    describe_validation_error,
)

logger = logging.getLogger(__name__)


class CatalogManager:
    """Creates, lists and describes users and books."""

    def __init__(self, db: Optional[Database] = None):
        """Initialize catalog manager.

        Args:
            db: Database instance
        """
        self.db = db or get_db()

    # -------------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------------

    def create_user(self, name: str) -> UserResponse:
        """Register a new user.

        Raises:
            InvalidError: If the name is shorter than 3 characters
            ConflictError: If a user with the same name exists
        """
        try:
            data = UserCreate(name=name)
        except ValidationError as e:
            raise InvalidError(describe_validation_error(e)) from e

        try:
            user = self.db.create_user(data.name)
        except IntegrityError as e:
            logger.warning("Duplicate user name: %s", data.name)
            raise ConflictError("A user with the same name already exists.") from e
        except SQLAlchemyError as e:
            logger.error("Error creating new user: %s", e)
            raise StorageError("Error creating new user") from e

        logger.info("New user created: %s", user.id)
        return UserResponse.model_validate(user)

    def list_users(self, query: Optional[UserListQuery] = None) -> Page[UserResponse]:
        """List users by name search, sort field and page."""
        query = query or UserListQuery()
        try:
            users, total = self.db.list_users(query)
        except SQLAlchemyError as e:
            logger.error("Error fetching users: %s", e)
            raise StorageError("Error fetching users") from e

        return Page[UserResponse](
            items=[UserResponse.model_validate(u) for u in users],
            total=total,
            page=query.page,
            limit=query.limit,
        )

    def get_user(self, user_id: int) -> UserDetail:
        """Get a user with their past and present loans.

        Past loans carry the score the user gave; present loans never do.
        Records whose book has since been deleted are left out.

        Raises:
            NotFoundError: If the user does not exist
        """
        try:
            with self.db.get_session() as session:
                user = self.db.get_user(user_id, session=session)
                if user is None:
                    raise NotFoundError("User not found", missing=("user",))

                books = UserBooks()
                loans = self.db.find_loans(
                    LoanFilter(user_id=user_id, newest_first=False), session=session
                )
                for loan in loans:
                    if loan.book is None:
                        continue
                    if loan.is_active:
                        books.present.append(PresentLoan(name=loan.book.name))
                    else:
                        books.past.append(PastLoan(name=loan.book.name, user_score=loan.score))

                return UserDetail(id=user.id, name=user.name, books=books)
        except SQLAlchemyError as e:
            logger.error("Error fetching user %s: %s", user_id, e)
            raise StorageError("Error fetching user") from e

    # -------------------------------------------------------------------------
    # Books
    # -------------------------------------------------------------------------

    def create_book(self, name: str) -> BookResponse:
        """Add a book to the catalogue.

        Raises:
            InvalidError: If the name is empty
            ConflictError: If a book with the same name exists
        """
        try:
            data = BookCreate(name=name)
        except ValidationError as e:
            raise InvalidError(describe_validation_error(e)) from e

        try:
            book = self.db.create_book(data.name)
        except IntegrityError as e:
            logger.warning("Duplicate book name: %s", data.name)
            raise ConflictError("A book with the same name already exists.") from e
        except SQLAlchemyError as e:
            logger.error("Error creating new book: %s", e)
            raise StorageError("Error creating new book") from e

        logger.info("New book created: %s", book.id)
        return BookResponse.model_validate(book)

    def list_books(self, query: Optional[BookListQuery] = None) -> Page[BookResponse]:
        """List books by name search, sort field and page."""
        query = query or BookListQuery()
        try:
            books, total = self.db.list_books(query)
        except SQLAlchemyError as e:
            logger.error("Error fetching books: %s", e)
            raise StorageError("Error fetching books") from e

        return Page[BookResponse](
            items=[BookResponse.model_validate(b) for b in books],
            total=total,
            page=query.page,
            limit=query.limit,
        )

    def get_book(self, book_id: int) -> BookDetail:
        """Get a book with its average score.

        Raises:
            NotFoundError: If the book does not exist
        """
        try:
            book = self.db.get_book(book_id)
        except SQLAlchemyError as e:
            logger.error("Error fetching book %s: %s", book_id, e)
            raise StorageError("Error fetching book") from e

        if book is None:
            raise NotFoundError("Book not found", missing=("book",))
        return BookDetail(id=book.id, name=book.name, score=book.average_score)
