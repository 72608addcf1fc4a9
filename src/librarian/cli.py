"""Command-line interface for librarian.

Built with Typer for commands and Rich for output.
"""

from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from .catalog import CatalogManager
from .config import get_config
from .db import get_db
from .db.schemas import (
    UNSCORED,
    BookListQuery,
    BookSortField,
    SortOrder,
    UserListQuery,
    UserSortField,
)
from .errors import LibraryError
from .loans import LoanManager
from .log import setup_logging

# Create the main app
app = typer.Typer(
    name="librarian",
    help="Manage library users, books, loans and ratings.",
    no_args_is_help=True,
)

# Create sub-apps for command groups
user_app = typer.Typer(help="Manage library users.")
app.add_typer(user_app, name="user")

book_app = typer.Typer(help="Manage the book catalogue.")
app.add_typer(book_app, name="book")

# Rich console for pretty output
console = Console()


# ============================================================================
# Helper Functions
# ============================================================================


def print_error(message: str) -> None:
    """Print an error message."""
    console.print(f"[bold red]Error:[/bold red] {message}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[bold green]Success:[/bold green] {message}")


def format_score(score: float) -> str:
    """Render an average score, showing the sentinel as a dash."""
    return "-" if score == UNSCORED else f"{score:.2f}"


def _managers() -> tuple[CatalogManager, LoanManager]:
    db = get_db(str(get_config().db_path))
    return CatalogManager(db), LoanManager(db)


def _fail(error: LibraryError) -> None:
    print_error(error.message)
    raise typer.Exit(1)


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
) -> None:
    """Manage library users, books, loans and ratings."""
    setup_logging("DEBUG" if verbose else get_config().log_level)


# ============================================================================
# Setup Commands
# ============================================================================


@app.command("init-db")
def init_db() -> None:
    """Create the database tables."""
    config = get_config()
    errors = config.validate()
    if errors:
        for error in errors:
            print_error(error)
        raise typer.Exit(1)

    get_db(str(config.db_path)).create_tables()
    print_success(f"Database ready at {config.db_path}")


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Interface to bind"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port to listen on"),
    debug: bool = typer.Option(False, "--debug", help="Run Flask in debug mode"),
) -> None:
    """Run the HTTP API."""
    from .api import run_server

    config = get_config()
    run_server(host=host or config.host, port=port or config.port, debug=debug)


# ============================================================================
# User Commands
# ============================================================================


@user_app.command("add")
def user_add(name: str = typer.Argument(..., help="User name (at least 3 characters)")) -> None:
    """Register a new user."""
    catalog, _ = _managers()
    try:
        user = catalog.create_user(name)
    except LibraryError as e:
        _fail(e)
    print_success(f"Created user #{user.id}: {user.name}")


@user_app.command("list")
def user_list(
    search: Optional[str] = typer.Option(None, "--search", "-s", help="Name contains"),
    sort_by: UserSortField = typer.Option(UserSortField.ID, "--sort", help="Sort field"),
    order: SortOrder = typer.Option(SortOrder.ASC, "--order", "-o", help="Sort direction"),
    page: int = typer.Option(1, "--page", min=1, help="Page number"),
    limit: int = typer.Option(10, "--limit", "-l", min=1, max=100, help="Page size"),
) -> None:
    """List users."""
    catalog, _ = _managers()
    query = UserListQuery(search=search, sort_by=sort_by, order=order, page=page, limit=limit)
    try:
        result = catalog.list_users(query)
    except LibraryError as e:
        _fail(e)

    if not result.items:
        console.print("[dim]No users found.[/dim]")
        return

    table = Table(title=f"Users ({result.total})", show_header=True, header_style="bold magenta")
    table.add_column("ID", style="cyan", justify="right")
    table.add_column("Name", style="green")
    for user in result.items:
        table.add_row(str(user.id), user.name)
    console.print(table)


@user_app.command("show")
def user_show(user_id: int = typer.Argument(..., help="User ID")) -> None:
    """Show a user's past and present books."""
    catalog, _ = _managers()
    try:
        detail = catalog.get_user(user_id)
    except LibraryError as e:
        _fail(e)

    console.print(f"[bold]{detail.name}[/bold] [dim](#{detail.id})[/dim]")

    if detail.books.present:
        console.print("\n[bold]Currently borrowed:[/bold]")
        for loan in detail.books.present:
            console.print(f"  • {loan.name}")

    if detail.books.past:
        table = Table(title="Returned", show_header=True, header_style="bold")
        table.add_column("Book", style="cyan")
        table.add_column("Score", justify="center")
        for loan in detail.books.past:
            table.add_row(loan.name, "-" if loan.user_score is None else str(loan.user_score))
        console.print(table)

    if not detail.books.present and not detail.books.past:
        console.print("[dim]No loans yet.[/dim]")


@user_app.command("delete")
def user_delete(user_id: int = typer.Argument(..., help="User ID")) -> None:
    """Delete a user with no active loans."""
    _, loans = _managers()
    try:
        loans.delete_user(user_id)
    except LibraryError as e:
        _fail(e)
    print_success(f"Deleted user #{user_id}")


# ============================================================================
# Book Commands
# ============================================================================


@book_app.command("add")
def book_add(name: str = typer.Argument(..., help="Book name")) -> None:
    """Add a book to the catalogue."""
    catalog, _ = _managers()
    try:
        book = catalog.create_book(name)
    except LibraryError as e:
        _fail(e)
    print_success(f"Created book #{book.id}: {book.name}")


@book_app.command("list")
def book_list(
    search: Optional[str] = typer.Option(None, "--search", "-s", help="Name contains"),
    sort_by: BookSortField = typer.Option(BookSortField.ID, "--sort", help="Sort field"),
    order: SortOrder = typer.Option(SortOrder.ASC, "--order", "-o", help="Sort direction"),
    page: int = typer.Option(1, "--page", min=1, help="Page number"),
    limit: int = typer.Option(10, "--limit", "-l", min=1, max=100, help="Page size"),
) -> None:
    """List books with their average scores."""
    catalog, _ = _managers()
    query = BookListQuery(search=search, sort_by=sort_by, order=order, page=page, limit=limit)
    try:
        result = catalog.list_books(query)
    except LibraryError as e:
        _fail(e)

    if not result.items:
        console.print("[dim]No books found.[/dim]")
        return

    table = Table(title=f"Books ({result.total})", show_header=True, header_style="bold magenta")
    table.add_column("ID", style="cyan", justify="right")
    table.add_column("Name", style="green", max_width=50)
    table.add_column("Avg score", justify="center")
    for book in result.items:
        table.add_row(str(book.id), book.name, format_score(book.average_score))
    console.print(table)


@book_app.command("show")
def book_show(book_id: int = typer.Argument(..., help="Book ID")) -> None:
    """Show a book and its average score."""
    catalog, _ = _managers()
    try:
        detail = catalog.get_book(book_id)
    except LibraryError as e:
        _fail(e)
    console.print(f"[bold]{detail.name}[/bold] [dim](#{detail.id})[/dim]")
    console.print(f"Average score: {format_score(detail.score)}")


@book_app.command("delete")
def book_delete(book_id: int = typer.Argument(..., help="Book ID")) -> None:
    """Delete a book that is not on loan."""
    _, loans = _managers()
    try:
        loans.delete_book(book_id)
    except LibraryError as e:
        _fail(e)
    print_success(f"Deleted book #{book_id}")


# ============================================================================
# Loan Commands
# ============================================================================


@app.command()
def borrow(
    user_id: int = typer.Argument(..., help="User ID"),
    book_id: int = typer.Argument(..., help="Book ID"),
) -> None:
    """Lend a book to a user."""
    _, loans = _managers()
    try:
        loans.borrow(user_id, book_id)
    except LibraryError as e:
        _fail(e)
    print_success(f"User #{user_id} borrowed book #{book_id}")


@app.command("return")
def return_book(
    user_id: int = typer.Argument(..., help="User ID"),
    book_id: int = typer.Argument(..., help="Book ID"),
    score: int = typer.Option(..., "--score", "-s", help="Score from 1 to 10"),
) -> None:
    """Return a borrowed book and score it."""
    _, loans = _managers()
    try:
        loans.return_book(user_id, book_id, score)
    except LibraryError as e:
        _fail(e)
    print_success(f"User #{user_id} returned book #{book_id} with score {score}")


@app.command()
def rate(
    user_id: int = typer.Argument(..., help="User ID"),
    book_id: int = typer.Argument(..., help="Book ID"),
    score: int = typer.Argument(..., help="New score from 0 to 10"),
) -> None:
    """Change the score of a returned book."""
    _, loans = _managers()
    try:
        loans.amend_score(user_id, book_id, score)
    except LibraryError as e:
        _fail(e)
    print_success(f"Score updated to {score}")


@app.command("delete-loan")
def delete_loan(
    user_id: int = typer.Argument(..., help="User ID"),
    book_id: int = typer.Argument(..., help="Book ID"),
) -> None:
    """Delete a user's loan record for a book."""
    _, loans = _managers()
    try:
        loans.delete_loan_record(user_id, book_id)
    except LibraryError as e:
        _fail(e)
    print_success(f"Deleted loan record of user #{user_id} for book #{book_id}")


@app.command()
def version() -> None:
    """Show version information."""
    from . import __version__

    console.print(f"librarian version {__version__}")


# ============================================================================
# Main Entry Point
# ============================================================================


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
