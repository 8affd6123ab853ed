"""Command-line interface for bibliodesk.

Built with Typer for commands and Rich for beautiful output.
"""

from dataclasses import dataclass, replace
from datetime import date
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .config import get_config
from .db import Database, SqlBookStore, SqlLoanStore, SqlMemberStore
from .lending import Book, LendingError, LendingManager, Loan, Member, StorageError
from .log import setup_logging

# Create the main app
app = typer.Typer(
    name="bibliodesk",
    help="Lend books to library members and track returns.",
    no_args_is_help=True,
)

# Create sub-apps for command groups
book_app = typer.Typer(help="Manage the book catalogue.")
app.add_typer(book_app, name="book")

member_app = typer.Typer(help="Manage library members.")
app.add_typer(member_app, name="member")

loan_app = typer.Typer(help="Borrow and return books.")
app.add_typer(loan_app, name="loan")

# Rich console for pretty output
console = Console()


@dataclass
class AppContext:
    """Objects shared by every command of one invocation."""

    db: Database
    books: SqlBookStore
    members: SqlMemberStore
    loans: SqlLoanStore
    manager: LendingManager


# ============================================================================
# Helper Functions
# ============================================================================


def print_error(message: str) -> None:
    """Print an error message."""
    console.print(f"[bold red]Error:[/bold red] {message}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[bold green]Success:[/bold green] {message}")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[dim]{message}[/dim]")


def describe_invalid(error: ValidationError) -> str:
    """Summarize a pydantic validation error on one line."""
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in error.errors()
    )


def format_loan_table(loans: list[Loan], title: str = "Loans") -> Table:
    """Create a rich table for displaying loans."""
    today = date.today()
    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim", max_width=8)
    table.add_column("ISBN", style="cyan")
    table.add_column("Member", justify="right")
    table.add_column("Borrowed")
    table.add_column("Due")
    table.add_column("Status")

    for loan in loans:
        if loan.is_overdue(today):
            status_str = f"[bold red]OVERDUE ({loan.days_overdue(today)}d)[/bold red]"
        elif loan.is_active:
            status_str = "[green]active[/green]"
        else:
            status_str = f"[dim]returned {loan.returned_on} ({loan.penalty or 0:.2f})[/dim]"

        table.add_row(
            loan.id[:8],
            loan.book_isbn,
            str(loan.member_id),
            loan.borrowed_on.isoformat(),
            loan.due_on.isoformat(),
            status_str,
        )

    return table


def get_context(ctx: typer.Context) -> AppContext:
    return ctx.obj


# ============================================================================
# Main Callback
# ============================================================================


@app.callback()
def main_callback(
    ctx: typer.Context,
    db_path: Optional[Path] = typer.Option(
        None, "--db", help="SQLite database file (default: BIBLIODESK_DB_PATH)"
    ),
) -> None:
    """Lend books to library members and track returns."""
    if ctx.invoked_subcommand == "version" or ctx.resilient_parsing:
        return

    config = get_config()
    if db_path is not None:
        config = replace(config, db_path=db_path)

    errors = config.validate()
    if errors:
        for error in errors:
            print_error(error)
        raise typer.Exit(1)

    setup_logging(config.log_level)

    db = Database(str(config.db_path))
    db.create_tables()
    ctx.call_on_close(db.close)

    books = SqlBookStore(db)
    members = SqlMemberStore(db)
    loans = SqlLoanStore(db)
    ctx.obj = AppContext(
        db=db,
        books=books,
        members=members,
        loans=loans,
        manager=LendingManager(books, members, loans),
    )


# ============================================================================
# Book Commands
# ============================================================================


@book_app.command("add")
def book_add(
    ctx: typer.Context,
    isbn: str = typer.Argument(..., help="ISBN of the book"),
    title: str = typer.Option(..., "--title", "-t", help="Book title"),
    author: str = typer.Option(..., "--author", "-a", help="Author name"),
    year: Optional[int] = typer.Option(None, "--year", "-y", help="Publication year"),
) -> None:
    """Add a book to the catalogue."""
    app_ctx = get_context(ctx)
    try:
        book = app_ctx.books.add(
            Book(isbn=isbn, title=title, author=author, publication_year=year)
        )
    except ValidationError as e:
        print_error(f"Invalid book: {describe_invalid(e)}")
        raise typer.Exit(1)
    except StorageError as e:
        print_error(str(e))
        raise typer.Exit(1)

    print_success(f"Added: {book.title} ({book.isbn})")


@book_app.command("list")
def book_list(
    ctx: typer.Context,
    available: bool = typer.Option(False, "--available", help="Show only available books"),
) -> None:
    """List books in the catalogue."""
    try:
        books = get_context(ctx).books.list_all(available_only=available)
    except StorageError as e:
        print_error(e.message)
        raise typer.Exit(1)

    if not books:
        print_info("No books found")
        return

    table = Table(title="Books", show_header=True, header_style="bold magenta")
    table.add_column("ISBN", style="dim")
    table.add_column("Title", style="cyan", no_wrap=False, max_width=40)
    table.add_column("Author", style="green", max_width=25)
    table.add_column("Year", justify="right")
    table.add_column("Available", justify="center")

    for book in books:
        table.add_row(
            book.isbn,
            book.title,
            book.author,
            str(book.publication_year or "-"),
            "[green]yes[/green]" if book.available else "[red]no[/red]",
        )

    console.print(table)


@book_app.command("update")
def book_update(
    ctx: typer.Context,
    isbn: str = typer.Argument(..., help="ISBN of the book"),
    title: Optional[str] = typer.Option(None, "--title", "-t", help="New title"),
    author: Optional[str] = typer.Option(None, "--author", "-a", help="New author"),
    year: Optional[int] = typer.Option(None, "--year", "-y", help="New publication year"),
) -> None:
    """Correct the details of a book."""
    changes = {
        key: value
        for key, value in {"title": title, "author": author, "publication_year": year}.items()
        if value is not None
    }
    if not changes:
        print_error("Nothing to update. Use --title, --author or --year.")
        raise typer.Exit(1)

    books = get_context(ctx).books
    try:
        book = books.find_by_id(isbn)
        if book is None:
            print_error(f"Book {isbn} not found")
            raise typer.Exit(1)
        book = Book.model_validate({**book.model_dump(), **changes})
        books.update(book)
    except ValidationError as e:
        print_error(f"Invalid book: {describe_invalid(e)}")
        raise typer.Exit(1)
    except StorageError as e:
        print_error(e.message)
        raise typer.Exit(1)

    print_success(f"Updated: {book.title} ({book.isbn})")


@book_app.command("remove")
def book_remove(
    ctx: typer.Context,
    isbn: str = typer.Argument(..., help="ISBN of the book"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Remove a book that is not on loan from the catalogue."""
    if not yes and not typer.confirm(f"Remove book {isbn}?"):
        print_info("Cancelled")
        return

    try:
        get_context(ctx).manager.remove_book(isbn)
    except LendingError as e:
        print_error(e.message)
        raise typer.Exit(1)

    print_success(f"Removed book {isbn}")


# ============================================================================
# Member Commands
# ============================================================================


@member_app.command("add")
def member_add(
    ctx: typer.Context,
    first_name: str = typer.Argument(..., help="First name"),
    last_name: str = typer.Argument(..., help="Last name"),
    email: Optional[str] = typer.Option(None, "--email", "-e", help="E-mail address"),
) -> None:
    """Register a new member."""
    try:
        member = get_context(ctx).members.add(first_name, last_name, email=email)
    except ValidationError as e:
        print_error(f"Invalid member: {describe_invalid(e)}")
        raise typer.Exit(1)
    except StorageError as e:
        print_error(str(e))
        raise typer.Exit(1)

    print_success(f"Registered member {member.id}: {member.full_name}")


@member_app.command("list")
def member_list(
    ctx: typer.Context,
    active: bool = typer.Option(False, "--active", help="Show only active members"),
) -> None:
    """List members."""
    try:
        members = get_context(ctx).members.list_all(active_only=active)
    except StorageError as e:
        print_error(e.message)
        raise typer.Exit(1)

    if not members:
        print_info("No members found")
        return

    table = Table(title="Members", show_header=True, header_style="bold magenta")
    table.add_column("ID", justify="right")
    table.add_column("Name", style="cyan")
    table.add_column("E-mail")
    table.add_column("Status")

    for member in members:
        table.add_row(
            str(member.id),
            member.full_name,
            member.email or "-",
            "[green]active[/green]" if member.active else "[dim]inactive[/dim]",
        )

    console.print(table)


@member_app.command("show")
def member_show(
    ctx: typer.Context,
    member_id: int = typer.Argument(..., help="Member ID"),
) -> None:
    """Show a member and their loans."""
    app_ctx = get_context(ctx)
    try:
        member = app_ctx.members.find_by_id(member_id)
        if member is None:
            print_error(f"Member {member_id} not found")
            raise typer.Exit(1)
        loans = app_ctx.manager.get_loan_history_for_member(member_id)
    except StorageError as e:
        print_error(e.message)
        raise typer.Exit(1)

    table = Table(title=f"Member {member.id}", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Name", member.full_name)
    table.add_row("E-mail", member.email or "-")
    table.add_row("Status", "active" if member.active else "inactive")
    table.add_row("Active loans", str(sum(1 for loan in loans if loan.is_active)))

    console.print(table)
    if loans:
        console.print(format_loan_table(loans, title="History"))


@member_app.command("update")
def member_update(
    ctx: typer.Context,
    member_id: int = typer.Argument(..., help="Member ID"),
    first_name: Optional[str] = typer.Option(None, "--first-name", "-f", help="New first name"),
    last_name: Optional[str] = typer.Option(None, "--last-name", "-l", help="New last name"),
    email: Optional[str] = typer.Option(None, "--email", "-e", help="New e-mail address"),
) -> None:
    """Correct a member's name or e-mail."""
    changes = {
        key: value
        for key, value in {"first_name": first_name, "last_name": last_name, "email": email}.items()
        if value is not None
    }
    if not changes:
        print_error("Nothing to update. Use --first-name, --last-name or --email.")
        raise typer.Exit(1)

    members = get_context(ctx).members
    try:
        member = members.find_by_id(member_id)
        if member is None:
            print_error(f"Member {member_id} not found")
            raise typer.Exit(1)
        member = Member.model_validate({**member.model_dump(), **changes})
        members.update(member)
    except ValidationError as e:
        print_error(f"Invalid member: {describe_invalid(e)}")
        raise typer.Exit(1)
    except StorageError as e:
        print_error(e.message)
        raise typer.Exit(1)

    print_success(f"Updated member {member.id}: {member.full_name}")


def _set_member_active(ctx: typer.Context, member_id: int, active: bool) -> None:
    try:
        member = get_context(ctx).members.set_active(member_id, active)
    except StorageError as e:
        print_error(e.message)
        raise typer.Exit(1)
    if member is None:
        print_error(f"Member {member_id} not found")
        raise typer.Exit(1)
    state = "activated" if active else "deactivated"
    print_success(f"Member {member.id} {state}")


@member_app.command("activate")
def member_activate(
    ctx: typer.Context,
    member_id: int = typer.Argument(..., help="Member ID"),
) -> None:
    """Allow a member to borrow again."""
    _set_member_active(ctx, member_id, True)


@member_app.command("deactivate")
def member_deactivate(
    ctx: typer.Context,
    member_id: int = typer.Argument(..., help="Member ID"),
) -> None:
    """Stop a member from borrowing. Current loans can still be returned."""
    _set_member_active(ctx, member_id, False)


# ============================================================================
# Loan Commands
# ============================================================================


@loan_app.command("borrow")
def loan_borrow(
    ctx: typer.Context,
    isbn: str = typer.Argument(..., help="ISBN of the book to lend"),
    member_id: int = typer.Argument(..., help="Borrowing member ID"),
) -> None:
    """Lend a book to a member."""
    try:
        loan = get_context(ctx).manager.borrow(isbn, member_id)
    except LendingError as e:
        print_error(e.message)
        raise typer.Exit(1)

    print_success(f"Book {loan.book_isbn} lent to member {loan.member_id}")
    print_info(f"Due: {loan.due_on.isoformat()}")


@loan_app.command("return")
def loan_return(
    ctx: typer.Context,
    isbn: str = typer.Argument(..., help="ISBN of the returned book"),
    member_id: int = typer.Argument(..., help="Returning member ID"),
) -> None:
    """Take back a book and compute any late penalty."""
    try:
        loan = get_context(ctx).manager.return_loan(isbn, member_id)
    except LendingError as e:
        print_error(e.message)
        raise typer.Exit(1)

    print_success(f"Book {loan.book_isbn} returned")
    if loan.penalty:
        console.print(f"[bold yellow]Penalty:[/bold yellow] {loan.penalty:.2f}")
    else:
        print_info("No penalty")


@loan_app.command("list")
def loan_list(
    ctx: typer.Context,
    member_id: Optional[int] = typer.Option(None, "--member", "-m", help="Only this member"),
    active: bool = typer.Option(False, "--active", "-a", help="Show only active loans"),
) -> None:
    """List loan records."""
    app_ctx = get_context(ctx)
    try:
        if member_id is not None:
            loans = app_ctx.manager.get_loan_history_for_member(member_id)
        else:
            loans = app_ctx.loans.find_all()
    except StorageError as e:
        print_error(e.message)
        raise typer.Exit(1)

    if active:
        loans = [loan for loan in loans if loan.is_active]

    if not loans:
        print_info("No loans found")
        return

    console.print(format_loan_table(loans))


@loan_app.command("overdue")
def loan_overdue(ctx: typer.Context) -> None:
    """Show overdue loans."""
    try:
        report = get_context(ctx).manager.get_overdue_report()
    except StorageError as e:
        print_error(e.message)
        raise typer.Exit(1)

    if not report.loans:
        print_success("No overdue loans!")
        return

    console.print(Panel(
        f"[bold red]Overdue Loans: {report.total_overdue}[/bold red]\n"
        f"Oldest: {report.oldest_overdue_days} days overdue",
        style="red",
    ))
    console.print(format_loan_table(report.loans, title="Overdue"))


# ============================================================================
# Info Commands
# ============================================================================


@app.command()
def version() -> None:
    """Show version information."""
    from . import __version__

    console.print(f"bibliodesk version {__version__}")


# ============================================================================
# Main Entry Point
# ============================================================================


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
