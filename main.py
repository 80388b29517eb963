import subprocess
import sys
import uuid
from typing import Optional

import typer
from rich.console import Console

from book import Book
from config import configure_logging, settings
from context import background
from database import build_datastore
from datastore import DataStore
from errors import LibraryError
from pagination import Paginator
from ui_helpers import print_book, print_page, print_reviews, set_output_mode
from validators import validate_book

APP_NAME = "Library CLI"

console = Console(stderr=True)


class StoreManager:
    """Lazily builds the configured data store once per process."""

    _instance: Optional[DataStore] = None

    @classmethod
    def get_instance(cls) -> DataStore:
        if cls._instance is None:
            store = build_datastore(settings.datastore, settings.database_file)
            store.init(background())
            cls._instance = store
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        if cls._instance is not None:
            cls._instance.close(background())
        cls._instance = None


def _fail(err: LibraryError) -> None:
    console.print(f"[bold red]Error:[/] {err.message}")
    raise typer.Exit(code=1)


def _paginator() -> Paginator:
    return Paginator(settings.default_limit, settings.default_offset, settings.default_maximum_limit)


def _page_query(offset: Optional[str], limit: Optional[str]) -> dict:
    return {k: v for k, v in (("offset", offset), ("limit", limit)) if v is not None}


# --- Typer CLI application ---
app = typer.Typer(help=APP_NAME)


@app.callback()
def _global_options(
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    )
):
    """Global options for the CLI (e.g. output mode)."""
    configure_logging(settings)
    if output:
        set_output_mode(output)


@app.command("list")
def cli_list(
    offset: Optional[str] = typer.Option(None, "--offset", help="Number of books to skip"),
    limit: Optional[str] = typer.Option(None, "--limit", help="Maximum number of books to show"),
):
    """List books one page at a time."""
    paginator = _paginator()
    try:
        page_offset, page_limit = paginator.get_pagination_values(_page_query(offset, limit))
    except LibraryError as e:
        _fail(e)
    books, total = StoreManager.get_instance().get_books(background(), page_offset, page_limit)
    print_page(paginator.build_page(books, page_offset, page_limit, total))


@app.command("add")
def cli_add(
    title: str,
    author: str,
    synopsis: Optional[str] = typer.Option(None, "--synopsis", help="Short description of the book"),
):
    """Add a book to the catalog."""
    book = Book(title=title, author=author, synopsis=synopsis)
    try:
        validate_book(book)
    except LibraryError as e:
        _fail(e)
    book.assign_id(str(uuid.uuid4()))
    StoreManager.get_instance().add_book(background(), book)
    print(f"Successfully added: {book.title} by {book.author} ({book.id})")


@app.command("show")
def cli_show(book_id: str):
    """Show a book and its checkout history."""
    try:
        book = StoreManager.get_instance().get_book(background(), book_id)
    except LibraryError as e:
        _fail(e)
    print_book(book)


@app.command("checkout")
def cli_checkout(book_id: str, name: str):
    """Lend a book to NAME."""
    try:
        book = StoreManager.get_instance().checkout_book(background(), book_id, name)
    except LibraryError as e:
        _fail(e)
    print(f"{book.title} checked out by {name}.")


@app.command("checkin")
def cli_checkin(book_id: str, score: int = typer.Argument(..., help="Review score from 1 to 5")):
    """Return a book with a review score."""
    try:
        book = StoreManager.get_instance().checkin_book(background(), book_id, score)
    except LibraryError as e:
        _fail(e)
    print(f"{book.title} checked in with review {score}.")


@app.command("reviews")
def cli_reviews(
    book_id: str,
    offset: Optional[str] = typer.Option(None, "--offset", help="Number of reviews to skip"),
    limit: Optional[str] = typer.Option(None, "--limit", help="Maximum number of reviews to show"),
):
    """List the reviews of a book one page at a time."""
    paginator = _paginator()
    store = StoreManager.get_instance()
    try:
        page_offset, page_limit = paginator.get_pagination_values(_page_query(offset, limit))
        store.get_book(background(), book_id)
    except LibraryError as e:
        _fail(e)
    reviews, total = store.get_reviews(background(), book_id, page_offset, page_limit)
    print_reviews(paginator.build_page(reviews, page_offset, page_limit, total))


@app.command("serve")
def cli_serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address (default: API_HOST)"),
    port: Optional[int] = typer.Option(None, "--port", help="Bind port (default: API_PORT)"),
):
    """Start the HTTP API with uvicorn."""
    host = host or settings.api_host
    port = port or int(settings.api_port)
    print(f"Starting API on http://{host}:{port}/")
    args = [
        sys.executable,
        "-m", "uvicorn",
        "api:app",
        "--host", host,
        "--port", str(port),
        "--log-level", settings.log_level.lower(),
    ]
    subprocess.run(args, check=False)


if __name__ == "__main__":
    app()
