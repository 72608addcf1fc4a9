"""Tests for CatalogManager."""

import pytest

from librarian.catalog import CatalogManager
from librarian.db.schemas import BookListQuery, BookSortField, SortOrder, UserListQuery
from librarian.errors import ConflictError, InvalidError, NotFoundError
from librarian.loans import LoanManager


class TestUsers:
    """Tests for user management."""

    def test_create_user(self, catalog: CatalogManager):
        """Test creating a user."""
        user = catalog.create_user("Alice")
        assert user.id is not None
        assert user.name == "Alice"

    def test_create_user_trims_name(self, catalog: CatalogManager):
        """Test names are stored trimmed."""
        assert catalog.create_user("  Alice ").name == "Alice"

    def test_short_name(self, catalog: CatalogManager):
        """Test names under 3 characters are invalid."""
        with pytest.raises(InvalidError):
            catalog.create_user("Al")

    def test_missing_name(self, catalog: CatalogManager):
        """Test a missing name is invalid."""
        with pytest.raises(InvalidError):
            catalog.create_user(None)

    def test_duplicate_name(self, catalog: CatalogManager):
        """Test duplicate names conflict."""
        catalog.create_user("Alice")
        with pytest.raises(ConflictError, match="same name already exists"):
            catalog.create_user("Alice")

    def test_list_users(self, catalog: CatalogManager, users: list[int]):
        """Test listing all users."""
        page = catalog.list_users()
        assert page.total == 4
        assert [u.name for u in page.items] == ["Alice", "Bob", "Carol", "Dave"]

    def test_list_users_search_sort_page(self, catalog: CatalogManager, users: list[int]):
        """Test search, sort and paging together."""
        query = UserListQuery(search="a", sort_by="name", order=SortOrder.DESC, limit=2)
        page = catalog.list_users(query)
        # LIKE ignores ASCII case on SQLite, so "Alice" matches
        assert page.total == 3
        assert [u.name for u in page.items] == ["Dave", "Carol"]
        assert page.page == 1
        assert page.limit == 2

    def test_get_user_unknown(self, catalog: CatalogManager):
        """Test fetching an unknown user."""
        with pytest.raises(NotFoundError):
            catalog.get_user(999)


class TestUserHistory:
    """Tests for the past/present view of a user's loans."""

    def test_no_loans(self, catalog: CatalogManager, user_id: int):
        """Test a new user has empty history."""
        detail = catalog.get_user(user_id)
        assert detail.name == "Alice"
        assert detail.books.past == []
        assert detail.books.present == []

    def test_past_and_present(
        self, catalog: CatalogManager, loans: LoanManager, user_id: int, books: list[int]
    ):
        """Test returned books carry scores and held books do not."""
        loans.borrow(user_id, books[0])
        loans.return_book(user_id, books[0], 8)
        loans.borrow(user_id, books[1])

        detail = catalog.get_user(user_id)

        assert [(p.name, p.user_score) for p in detail.books.past] == [("Dune", 8)]
        assert [p.name for p in detail.books.present] == ["Emma"]
        dumped = detail.model_dump(by_alias=True)
        assert dumped["books"]["past"] == [{"name": "Dune", "userScore": 8}]
        assert dumped["books"]["present"] == [{"name": "Emma"}]

    def test_only_own_loans(
        self, catalog: CatalogManager, loans: LoanManager, users: list[int], book_id: int
    ):
        """Test other users' loans do not appear."""
        loans.borrow(users[1], book_id)
        assert catalog.get_user(users[0]).books.present == []


class TestBooks:
    """Tests for book management."""

    def test_create_book(self, catalog: CatalogManager):
        """Test creating a book starts it unscored."""
        book = catalog.create_book("Dune")
        assert book.name == "Dune"
        assert book.average_score == -1

    def test_empty_name(self, catalog: CatalogManager):
        """Test an empty name is invalid."""
        with pytest.raises(InvalidError):
            catalog.create_book("")

    def test_duplicate_name(self, catalog: CatalogManager):
        """Test duplicate book names conflict."""
        catalog.create_book("Dune")
        with pytest.raises(ConflictError):
            catalog.create_book("Dune")

    def test_get_book(self, catalog: CatalogManager, loans: LoanManager, users, book_id: int):
        """Test a book reports its average score."""
        for user, score in zip(users, [9, 6]):
            loans.borrow(user, book_id)
            loans.return_book(user, book_id, score)

        detail = catalog.get_book(book_id)
        assert detail.name == "Dune"
        assert detail.score == 7.5

    def test_get_book_unknown(self, catalog: CatalogManager):
        """Test fetching an unknown book."""
        with pytest.raises(NotFoundError, match="Book not found"):
            catalog.get_book(999)

    def test_list_books_by_score(
        self, catalog: CatalogManager, loans: LoanManager, user_id: int, books: list[int]
    ):
        """Test books sort by average score."""
        loans.borrow(user_id, books[1])
        loans.return_book(user_id, books[1], 9)
        loans.borrow(user_id, books[2])
        loans.return_book(user_id, books[2], 4)

        query = BookListQuery(sort_by=BookSortField.AVERAGE_SCORE, order=SortOrder.DESC)
        page = catalog.list_books(query)
        assert [(b.name, b.average_score) for b in page.items] == [
            ("Emma", 9.0),
            ("Ulysses", 4.0),
            ("Dune", -1.0),
        ]

    def test_list_books_search(self, catalog: CatalogManager, books: list[int]):
        """Test book name search."""
        page = catalog.list_books(BookListQuery(search="ss"))
        assert [b.name for b in page.items] == ["Ulysses"]
        assert page.total == 1
