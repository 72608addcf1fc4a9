"""Loan lifecycle and rating module.

Provides functionality for:
- Borrowing and returning books
- Scoring returned loans and amending scores
- Deleting loan records, users and books without breaking loan invariants
- Keeping each book's average score consistent with its loan records
"""

from .manager import LoanManager
from .rating import RatingAggregator, average_score

__all__ = [
    "LoanManager",
    "RatingAggregator",
    "average_score",
]
