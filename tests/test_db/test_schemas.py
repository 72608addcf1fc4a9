"""Tests for Pydantic schemas."""

import pytest
from pydantic import ValidationError

from librarian.db.schemas import (
    BookCreate,
    BookListQuery,
    BookResponse,
    BookSortField,
    PresentLoan,
    ReturnRequest,
    ScoreAmendment,
    SortOrder,
    UserCreate,
    UserListQuery,
)


class TestUserCreate:
    """Tests for UserCreate schema."""

    def test_valid_name(self):
        """Test a plain name is accepted."""
        assert UserCreate(name="Alice").name == "Alice"

    def test_name_is_trimmed(self):
        """Test surrounding whitespace is removed."""
        assert UserCreate(name="  Bob  ").name == "Bob"

    def test_short_name_rejected(self):
        """Test names under 3 characters are rejected."""
        with pytest.raises(ValidationError):
            UserCreate(name="Al")

    def test_whitespace_padding_does_not_count(self):
        """Test padding cannot satisfy the minimum length."""
        with pytest.raises(ValidationError):
            UserCreate(name="  a  ")


class TestBookCreate:
    """Tests for BookCreate schema."""

    def test_empty_name_rejected(self):
        """Test that an empty name is rejected."""
        with pytest.raises(ValidationError):
            BookCreate(name="   ")

    def test_single_character_name(self):
        """Test one-character titles are allowed."""
        assert BookCreate(name="V").name == "V"


class TestScores:
    """Tests for return and amendment bodies."""

    @pytest.mark.parametrize("score", [1, 5, 10])
    def test_return_score_in_range(self, score):
        """Test scores 1-10 are accepted on return."""
        assert ReturnRequest(score=score).score == score

    @pytest.mark.parametrize("score", [0, 11, -3])
    def test_return_score_out_of_range(self, score):
        """Test scores outside 1-10 are rejected on return."""
        with pytest.raises(ValidationError):
            ReturnRequest(score=score)

    def test_return_score_must_be_integer(self):
        """Test fractional and string scores are rejected."""
        with pytest.raises(ValidationError):
            ReturnRequest(score=7.5)
        with pytest.raises(ValidationError):
            ReturnRequest.model_validate({"score": "7"})

    def test_amendment_allows_zero(self):
        """Test an amendment may set the score to 0."""
        assert ScoreAmendment.model_validate({"newScore": 0}).new_score == 0

    def test_amendment_upper_bound(self):
        """Test an amendment above 10 is rejected."""
        with pytest.raises(ValidationError):
            ScoreAmendment.model_validate({"newScore": 11})


class TestListQuery:
    """Tests for listing parameters."""

    def test_defaults(self):
        """Test default paging and order."""
        query = UserListQuery()
        assert query.page == 1
        assert query.limit == 10
        assert query.order == SortOrder.ASC
        assert query.sort_by is None
        assert query.skip == 0

    def test_skip(self):
        """Test skip is derived from page and limit."""
        assert BookListQuery(page=3, limit=20).skip == 40

    def test_lowercase_order(self):
        """Test order is case-insensitive."""
        assert BookListQuery.model_validate({"order": "desc"}).order == SortOrder.DESC

    def test_sort_field_from_string(self):
        """Test sort fields are parsed from their column names."""
        query = BookListQuery.model_validate({"sort_by": "average_score"})
        assert query.sort_by == BookSortField.AVERAGE_SCORE

    def test_unknown_sort_field_rejected(self):
        """Test arbitrary column names cannot reach the query."""
        with pytest.raises(ValidationError):
            UserListQuery.model_validate({"sort_by": "name; DROP TABLE users"})

    def test_user_query_rejects_book_field(self):
        """Test book-only fields are not valid for users."""
        with pytest.raises(ValidationError):
            UserListQuery.model_validate({"sort_by": "average_score"})

    def test_page_must_be_positive(self):
        """Test page 0 is rejected."""
        with pytest.raises(ValidationError):
            UserListQuery(page=0)

    def test_limit_cap(self):
        """Test limit above 100 is rejected."""
        with pytest.raises(ValidationError):
            UserListQuery(limit=101)


class TestResponses:
    """Tests for response schemas."""

    def test_book_response_alias(self):
        """Test average score serializes in camel case."""
        book = BookResponse(id=1, name="Dune", average_score=7.5)
        assert book.model_dump(by_alias=True) == {"id": 1, "name": "Dune", "averageScore": 7.5}

    def test_book_response_default_sentinel(self):
        """Test an unscored book reports -1."""
        assert BookResponse(id=1, name="Dune").average_score == -1

    def test_present_loan_has_no_score(self):
        """Test active loans expose no score field."""
        assert "user_score" not in PresentLoan.model_fields
        assert PresentLoan(name="Dune").model_dump() == {"name": "Dune"}
