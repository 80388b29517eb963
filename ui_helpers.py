import json
import os
from typing import Any, Dict, List

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from book import Book
from checkout import current_checkout
from review import Review

# Environment variable controlling CLI output mode.
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "LIB_CLI_OUTPUT"

_console = Console()


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def _status(book: Book) -> str:
    entry = current_checkout(book)
    return f"checked out by {entry.who}" if entry else "available"


def print_page(page: Dict[str, Any]) -> None:
    """Print a page of books.

    - plain: 'ID - Title by Author [status]' lines, then a count line
    - json: the page envelope
    - rich: a table
    """
    books: List[Book] = page["items"]
    mode = get_output_mode()

    if mode == "json":
        print(json.dumps({**page, "items": [b.to_dict() for b in books]}, ensure_ascii=False))
        return

    if not books:
        print("No books in library.")
        return

    if mode == "rich":
        table = Table(title="Books", show_lines=True, header_style="bold cyan")
        table.add_column("ID", style="magenta", no_wrap=True)
        table.add_column("Title", style="white")
        table.add_column("Author", style="white")
        table.add_column("Status", style="green")
        for b in books:
            table.add_row(b.id, b.title, b.author, _status(b))
        _console.print(table)
    else:
        for b in books:
            print(f"{b.id} - {b.title} by {b.author} [{_status(b)}]")
    print(f"Showing {page['count']} of {page['total_count']} (offset {page['offset']})")


def print_book(book: Book) -> None:
    mode = get_output_mode()

    if mode == "json":
        print(json.dumps(book.to_dict(), ensure_ascii=False))
        return

    lines = [f"Title: {book.title}", f"Author: {book.author}", f"ID: {book.id}", f"Status: {_status(book)}"]
    if book.synopsis:
        lines.append(f"Synopsis: {book.synopsis}")
    for entry in book.history:
        returned = entry.checked_in.isoformat() if entry.checked_in else "-"
        review = entry.review if entry.review is not None else "-"
        lines.append(f"History: {entry.who} out {entry.out.isoformat()} in {returned} review {review}")

    if mode == "rich":
        _console.print(Panel.fit("\n".join(lines), title="Book", border_style="blue"))
    else:
        for line in lines:
            print(line)


def print_reviews(page: Dict[str, Any]) -> None:
    """Print a page of reviews in the current output mode."""
    reviews: List[Review] = page["items"]
    mode = get_output_mode()

    if mode == "json":
        print(json.dumps({**page, "items": [r.to_dict() for r in reviews]}, ensure_ascii=False))
        return

    if not reviews:
        print("No reviews for this book.")
        return

    if mode == "rich":
        table = Table(title="Reviews", show_lines=True, header_style="bold cyan")
        table.add_column("Reviewer", style="magenta")
        table.add_column("Message", style="white")
        for r in reviews:
            table.add_row(f"{r.user.forenames} {r.user.surname}", r.message)
        _console.print(table)
    else:
        for r in reviews:
            print(f"{r.user.forenames} {r.user.surname}: {r.message}")
    print(f"Showing {page['count']} of {page['total_count']} (offset {page['offset']})")
