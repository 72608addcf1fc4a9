"""Book rating aggregation."""

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from sqlalchemy.orm import Session

from ..db.schemas import UNSCORED
from ..db.sqlite import Database, get_db

logger = logging.getLogger(__name__)

_CENTS = Decimal("0.01")


def average_score(scores: list[int]) -> float:
    """Mean of the scores rounded half-up to 2 decimals, or the sentinel.

    >>> average_score([8, 10, 6])
    8.0
    >>> average_score([1, 2, 2])
    1.67
    >>> average_score([])
    -1.0
    """
    if not scores:
        return UNSCORED
    mean = Decimal(sum(scores)) / Decimal(len(scores))
    return float(mean.quantize(_CENTS, rounding=ROUND_HALF_UP))


class RatingAggregator:
    """Keeps ``Book.average_score`` in step with the book's loan scores.

    The average is always re-derived from every surviving score rather than
    maintained incrementally, so amendments and deletions of historical
    records cannot make it drift.
    """

    def __init__(self, db: Optional[Database] = None):
        self.db = db or get_db()

    def recompute(self, book_id: int, session: Optional[Session] = None) -> Optional[float]:
        """Recalculate and store a book's average score.

        Args:
            book_id: Book ID
            session: Session of the mutation that triggered the recompute.
                     When given, the new average commits with it.

        Returns:
            The stored average, or None if the book no longer exists
        """
        if session is None:
            with self.db.get_session() as s:
                return self.recompute(book_id, session=s)

        book = self.db.get_book(book_id, session=session)
        if book is None:
            return None

        scores = self.db.get_scores(book_id, session=session)
        book.average_score = average_score(scores)
        self.db.update_book(book, session=session)

        logger.debug(
            "Book %s average score is now %s over %d rating(s)",
            book_id,
            book.average_score,
            len(scores),
        )
        return book.average_score
