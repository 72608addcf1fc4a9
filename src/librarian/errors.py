"""Error taxonomy for library operations.

Every engine failure is raised as a ``LibraryError`` subclass. The ``kind``
tag lets outer layers (API, CLI) map failures onto their own transport
without inspecting exception types.
"""

from typing import Optional

from pydantic import ValidationError


class LibraryError(Exception):
    """Base class for all library errors."""

    kind = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(LibraryError):
    """A referenced user, book or loan record does not exist."""

    kind = "not_found"

    def __init__(self, message: str, missing: Optional[tuple[str, ...]] = None):
        super().__init__(message)
        self.missing = missing or ()


class ConflictError(LibraryError):
    """A loan invariant or uniqueness rule would be violated."""

    kind = "conflict"


class InvalidError(LibraryError):
    """Malformed input (score, id, name or list query)."""

    kind = "invalid"


class StorageError(LibraryError):
    """The underlying store failed. Not retried."""

    kind = "storage"


def missing_entities(user: object, book: object) -> Optional[NotFoundError]:
    """Build the not-found error for a user/book lookup pair.

    Returns None when both were found. When both are absent a single error
    naming both sides is returned.
    """
    if user is None and book is None:
        return NotFoundError("User and Book not found", missing=("user", "book"))
    if user is None:
        return NotFoundError("User not found", missing=("user",))
    if book is None:
        return NotFoundError("Book not found", missing=("book",))
    return None


def describe_validation_error(error: ValidationError) -> str:
    """First pydantic validation problem as ``field: message``."""
    details = error.errors()
    if not details:
        return str(error)
    first = details[0]
    field = ".".join(str(part) for part in first.get("loc", ()))
    return f"{field}: {first['msg']}" if field else first["msg"]
