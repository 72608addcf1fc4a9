"""Loan manager for borrow, return and loan record operations."""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Generator, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..db.models import Book, LoanRecord, User
from ..db.schemas import MAX_SCORE, MIN_AMENDED_SCORE, MIN_SCORE
from ..db.sqlite import Database, LoanFilter, get_db
from ..errors import (
    ConflictError,
    InvalidError,
    NotFoundError,
    StorageError,
    missing_entities,
)
from .rating import RatingAggregator

logger = logging.getLogger(__name__)

ALREADY_BORROWED = "User already borrowed this book"
BORROWED_BY_OTHER = "This book is currently borrowed by another user"


def validate_score(score, minimum: int = MIN_SCORE, maximum: int = MAX_SCORE) -> int:
    """Check that a score is an integer within range.

    Raises:
        InvalidError: If the score is not an int or out of range
    """
    if isinstance(score, bool) or not isinstance(score, int):
        raise InvalidError(f"Score must be an integer between {minimum} and {maximum}")
    if not minimum <= score <= maximum:
        raise InvalidError(f"Score must be an integer between {minimum} and {maximum}")
    return score


def validate_id(value, label: str) -> int:
    """Check that an id is a positive integer."""
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise InvalidError(f"{label} ID must be a positive integer")
    return value


def race_conflict_message(error: IntegrityError) -> str:
    """Pick the borrow conflict matching the active-loan index that failed.

    SQLite names the indexed columns ("loan_records.user_id, loan_records.book_id")
    and PostgreSQL names the index, so either text identifies the per-user index.
    """
    detail = str(error.orig)
    if "uq_loan_records_active_user_book" in detail or "user_id" in detail:
        return ALREADY_BORROWED
    return BORROWED_BY_OTHER


class LoanManager:
    """Manages the loan lifecycle: borrow, return, rate and delete.

    Each public method runs in a single transaction. The primary write and
    the rating recompute it triggers either commit together or not at all.
    """

    def __init__(
        self,
        db: Optional[Database] = None,
        aggregator: Optional[RatingAggregator] = None,
    ):
        """Initialize loan manager.

        Args:
            db: Database instance
            aggregator: Rating aggregator sharing the same database
        """
        self.db = db or get_db()
        self.aggregator = aggregator or RatingAggregator(self.db)

    @contextmanager
    def _transaction(
        self, action: str, guards_active_loans: bool = False
    ) -> Generator[Session, None, None]:
        """Open a session and translate store failures into library errors.

        Args:
            action: Description used in log and error messages
            guards_active_loans: Report unique-index violations as borrow
                conflicts instead of storage failures
        """
        try:
            with self.db.get_session() as session:
                yield session
        except IntegrityError as e:
            if not guards_active_loans:
                logger.error("Integrity violation while trying to %s: %s", action, e.orig)
                raise StorageError(f"Error trying to {action}") from e
            # A racing borrow tripped one of the active-loan unique indexes
            logger.warning("Integrity violation while trying to %s: %s", action, e.orig)
            raise ConflictError(race_conflict_message(e)) from e
        except SQLAlchemyError as e:
            logger.error("Storage failure while trying to %s: %s", action, e)
            raise StorageError(f"Error trying to {action}") from e

    def _load_pair(
        self, session: Session, user_id: int, book_id: int
    ) -> tuple[User, Book]:
        validate_id(user_id, "User")
        validate_id(book_id, "Book")
        user = self.db.get_user(user_id, session=session)
        book = self.db.get_book(book_id, session=session)
        error = missing_entities(user, book)
        if error:
            raise error
        return user, book

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def borrow(self, user_id: int, book_id: int) -> LoanRecord:
        """Lend a book to a user.

        Args:
            user_id: Borrowing user
            book_id: Book to borrow

        Returns:
            The new active loan record

        Raises:
            NotFoundError: If the user and/or book does not exist
            ConflictError: If the user already holds the book, or another
                user does
        """
        with self._transaction("borrow book", guards_active_loans=True) as session:
            self._load_pair(session, user_id, book_id)

            own = self.db.find_loan(
                LoanFilter(user_id=user_id, book_id=book_id, returned=False),
                session=session,
            )
            if own:
                logger.warning("User %s tried to borrow book %s twice", user_id, book_id)
                raise ConflictError(ALREADY_BORROWED)

            other = self.db.find_loan(
                LoanFilter(book_id=book_id, returned=False), session=session
            )
            if other:
                logger.warning(
                    "User %s tried to borrow book %s held by user %s",
                    user_id,
                    book_id,
                    other.user_id,
                )
                raise ConflictError(BORROWED_BY_OTHER)

            loan = self.db.create_loan(
                user_id, book_id, datetime.now(timezone.utc), session=session
            )
            session.commit()
            session.refresh(loan)
            session.expunge(loan)

        logger.info("User %s borrowed book %s (loan %s)", user_id, book_id, loan.id)
        return loan

    def return_book(self, user_id: int, book_id: int, score: int) -> LoanRecord:
        """Close a user's active loan of a book and record their score.

        Raises:
            InvalidError: If the score is not an integer from 1 to 10
            NotFoundError: If the user/book is missing or there is no
                active loan for the pair
        """
        validate_score(score)

        with self._transaction("return book") as session:
            self._load_pair(session, user_id, book_id)

            loan = self.db.find_loan(
                LoanFilter(user_id=user_id, book_id=book_id, returned=False),
                session=session,
            )
            if not loan:
                raise NotFoundError("No active loan found for this book and user")

            loan.returned_date = datetime.now(timezone.utc)
            loan.score = score
            self.db.update_loan(loan, session=session)

            self.aggregator.recompute(book_id, session=session)
            session.commit()
            session.refresh(loan)
            session.expunge(loan)

        logger.info("User %s returned book %s with score %s", user_id, book_id, score)
        return loan

    def amend_score(self, user_id: int, book_id: int, new_score: int) -> LoanRecord:
        """Change the score on the user's most recent closed loan of a book.

        Raises:
            InvalidError: If the score is not an integer from 0 to 10
            NotFoundError: If the user/book is missing or the pair has no
                closed loan
        """
        validate_score(new_score, minimum=MIN_AMENDED_SCORE)

        with self._transaction("update score") as session:
            self._load_pair(session, user_id, book_id)

            loan = self.db.find_loan(
                LoanFilter(user_id=user_id, book_id=book_id, returned=True),
                session=session,
            )
            if not loan:
                raise NotFoundError("Borrow record not found")

            loan.score = new_score
            self.db.update_loan(loan, session=session)

            self.aggregator.recompute(book_id, session=session)
            session.commit()
            session.refresh(loan)
            session.expunge(loan)

        logger.info("User %s changed score for book %s to %s", user_id, book_id, new_score)
        return loan

    def delete_loan_record(self, user_id: int, book_id: int) -> LoanRecord:
        """Delete the pair's most recently borrowed loan record.

        Active and closed records alike may be deleted. The book's average
        is recomputed only if the removed record carried a score.

        Returns:
            The deleted record (detached)

        Raises:
            NotFoundError: If the user/book is missing or the pair has no
                loan record
        """
        with self._transaction("delete loan record") as session:
            self._load_pair(session, user_id, book_id)

            loan = self.db.find_loan(
                LoanFilter(user_id=user_id, book_id=book_id), session=session
            )
            if not loan:
                raise NotFoundError("No loan record found for this book and user")

            had_score = loan.score is not None
            session.expunge(loan)

            if self.db.delete_loan(loan.id, session=session) == 0:
                raise NotFoundError("Loan record not found")

            if had_score:
                self.aggregator.recompute(book_id, session=session)

        logger.info(
            "Deleted loan record %s (user %s, book %s, scored=%s)",
            loan.id,
            user_id,
            book_id,
            had_score,
        )
        return loan

    # -------------------------------------------------------------------------
    # Guarded Deletion
    # -------------------------------------------------------------------------

    def delete_user(self, user_id: int) -> None:
        """Delete a user who holds no book.

        Closed loan records survive with their user reference cleared, so
        the scores they carry keep counting towards book averages.

        Raises:
            NotFoundError: If the user does not exist
            ConflictError: If the user has an active loan
        """
        validate_id(user_id, "User")

        with self._transaction("delete user") as session:
            if self.db.get_user(user_id, session=session) is None:
                raise NotFoundError("User not found", missing=("user",))

            if self.db.find_loan(LoanFilter(user_id=user_id, returned=False), session=session):
                logger.warning("Refused to delete user %s with an active loan", user_id)
                raise ConflictError("Cannot delete user with active loans")

            if self.db.delete_user(user_id, session=session) == 0:
                raise NotFoundError("User not found", missing=("user",))

        logger.info("Deleted user %s", user_id)

    def delete_book(self, book_id: int) -> None:
        """Delete a book that is not on loan.

        Raises:
            NotFoundError: If the book does not exist
            ConflictError: If the book has an active loan
        """
        validate_id(book_id, "Book")

        with self._transaction("delete book") as session:
            if self.db.get_book(book_id, session=session) is None:
                raise NotFoundError("Book not found", missing=("book",))

            if self.db.find_loan(LoanFilter(book_id=book_id, returned=False), session=session):
                logger.warning("Refused to delete book %s while it is on loan", book_id)
                raise ConflictError("Cannot delete book while it is on loan")

            if self.db.delete_book(book_id, session=session) == 0:
                raise NotFoundError("Book not found", missing=("book",))

        logger.info("Deleted book %s", book_id)
