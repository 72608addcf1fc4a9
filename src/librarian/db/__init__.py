"""Database module for local SQLite storage."""

from .models import Book, LoanRecord, User
from .schemas import BookCreate, BookListQuery, UserCreate, UserListQuery
from .sqlite import Database, LoanFilter, get_db

__all__ = [
    "Book",
    "LoanRecord",
    "User",
    "BookCreate",
    "BookListQuery",
    "UserCreate",
    "UserListQuery",
    "Database",
    "LoanFilter",
    "get_db",
]
