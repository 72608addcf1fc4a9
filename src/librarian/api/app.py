"""Flask JSON API for the library service."""

import logging
from typing import Optional

from flask import Flask, jsonify, request
from pydantic import ValidationError

from ..catalog import CatalogManager
from ..config import Config, get_config
from ..db.schemas import BookListQuery, ReturnRequest, ScoreAmendment, UserListQuery
from ..db.sqlite import Database, get_db
from ..errors import InvalidError, LibraryError, describe_validation_error
from ..loans import LoanManager

logger = logging.getLogger(__name__)

STATUS_CODES = {
    "invalid": 400,
    "not_found": 404,
    "conflict": 409,
    "storage": 500,
}


def _parse_id(raw: str, label: str) -> int:
    """Parse a positive integer path parameter."""
    if not (raw.isascii() and raw.isdigit()) or int(raw) < 1:
        raise InvalidError(f"{label} ID must be a positive integer")
    return int(raw)


def _list_query(model, config: Config):
    """Build a list query from the request's query string."""
    args = request.args.to_dict()
    args.setdefault("limit", str(config.page_limit))
    try:
        query = model.model_validate(args)
    except ValidationError as e:
        raise InvalidError(describe_validation_error(e)) from e
    if query.limit > config.max_page_limit:
        raise InvalidError(f"limit must be at most {config.max_page_limit}")
    return query


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise InvalidError("Request body must be a JSON object")
    return data


def create_app(config: Optional[Config] = None, db: Optional[Database] = None) -> Flask:
    """Create and configure the Flask application."""
    config = config or get_config()
    db = db or get_db(str(config.db_path))

    catalog = CatalogManager(db)
    loans = LoanManager(db)

    app = Flask(__name__)

    @app.errorhandler(LibraryError)
    def handle_library_error(error: LibraryError):
        """Map engine failures onto status codes."""
        return jsonify({"message": error.message}), STATUS_CODES.get(error.kind, 500)

    # ------------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------------

    @app.route("/users", methods=["POST"])
    def create_user():
        """Register a user."""
        data = _json_body()
        user = catalog.create_user(data.get("name"))
        return jsonify(user.model_dump()), 201

    @app.route("/users", methods=["GET"])
    def list_users():
        """List users."""
        page = catalog.list_users(_list_query(UserListQuery, config))
        return jsonify(page.model_dump(mode="json"))

    @app.route("/users/<user_id>", methods=["GET"])
    def get_user(user_id: str):
        """Get a user with their past and present books."""
        detail = catalog.get_user(_parse_id(user_id, "User"))
        return jsonify(detail.model_dump(by_alias=True))

    @app.route("/users/<user_id>", methods=["DELETE"])
    def delete_user(user_id: str):
        """Delete a user without active loans."""
        loans.delete_user(_parse_id(user_id, "User"))
        return "", 204

    # ------------------------------------------------------------------------
    # Books
    # ------------------------------------------------------------------------

    @app.route("/books", methods=["POST"])
    def create_book():
        """Add a book."""
        data = _json_body()
        book = catalog.create_book(data.get("name"))
        return jsonify(book.model_dump(by_alias=True)), 201

    @app.route("/books", methods=["GET"])
    def list_books():
        """List books."""
        page = catalog.list_books(_list_query(BookListQuery, config))
        return jsonify(page.model_dump(mode="json", by_alias=True))

    @app.route("/books/<book_id>", methods=["GET"])
    def get_book(book_id: str):
        """Get a book with its average score."""
        detail = catalog.get_book(_parse_id(book_id, "Book"))
        return jsonify(detail.model_dump())

    @app.route("/books/<book_id>", methods=["DELETE"])
    def delete_book(book_id: str):
        """Delete a book that is not on loan."""
        loans.delete_book(_parse_id(book_id, "Book"))
        return "", 204

    # ------------------------------------------------------------------------
    # Loans
    # ------------------------------------------------------------------------

    @app.route("/users/<user_id>/borrow/<book_id>", methods=["POST"])
    def borrow_book(user_id: str, book_id: str):
        """Borrow a book."""
        loans.borrow(_parse_id(user_id, "User"), _parse_id(book_id, "Book"))
        return "", 204

    @app.route("/users/<user_id>/return/<book_id>", methods=["POST"])
    def return_book(user_id: str, book_id: str):
        """Return a borrowed book with a score."""
        uid, bid = _parse_id(user_id, "User"), _parse_id(book_id, "Book")
        try:
            body = ReturnRequest.model_validate(_json_body())
        except ValidationError as e:
            raise InvalidError("Score must be an integer between 1 and 10") from e
        loans.return_book(uid, bid, body.score)
        return "", 204

    @app.route("/users/<user_id>/books/<book_id>/score", methods=["PUT"])
    def update_score(user_id: str, book_id: str):
        """Change the score of a returned book."""
        uid, bid = _parse_id(user_id, "User"), _parse_id(book_id, "Book")
        try:
            body = ScoreAmendment.model_validate(_json_body())
        except ValidationError as e:
            raise InvalidError("Score must be an integer between 0 and 10") from e
        loans.amend_score(uid, bid, body.new_score)
        return jsonify({"message": "Score updated successfully"})

    @app.route("/loan-records/users/<user_id>/books/<book_id>", methods=["DELETE"])
    def delete_loan_record(user_id: str, book_id: str):
        """Delete a user's loan record for a book."""
        loans.delete_loan_record(_parse_id(user_id, "User"), _parse_id(book_id, "Book"))
        return "", 204

    return app


def run_server(host: str = "127.0.0.1", port: int = 5000, debug: bool = False) -> None:
    """Run the library API server."""
    app = create_app()
    logger.info("Library API running at http://%s:%s", host, port)
    app.run(host=host, port=port, debug=debug)
