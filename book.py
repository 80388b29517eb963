from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def parse_timestamp(value) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


@dataclass
class Checkout:
    """One borrow/return cycle of a book.

    ``checked_in`` is ``None`` while the book is still out; ``review`` is
    only set when the book comes back.
    """

    who: str
    out: datetime
    checked_in: Optional[datetime] = None
    review: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "who": self.who,
            "out": format_timestamp(self.out),
            "in": format_timestamp(self.checked_in),
            "review": self.review,
        }

    @staticmethod
    def from_dict(data: dict) -> "Checkout":
        return Checkout(
            who=data["who"],
            out=parse_timestamp(data["out"]),
            checked_in=parse_timestamp(data.get("in")),
            review=data.get("review"),
        )


@dataclass
class BookLinks:
    self: str
    reviews: str

    @staticmethod
    def for_book(book_id: str) -> "BookLinks":
        return BookLinks(self=f"/books/{book_id}", reviews=f"/books/{book_id}/reviews")


class Book:
    """A catalog entry together with its checkout history."""

    def __init__(self, title: str, author: str, synopsis: str | None = None, id: str = "",
                 links: BookLinks | None = None, history: List[Checkout] | None = None) -> None:
        self.id = id
        self.title = (title or "").strip()
        self.author = (author or "").strip()
        self.synopsis = synopsis
        self.links = links
        self.history: List[Checkout] = list(history or [])

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.title} by {self.author} ({self.id})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Book):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def assign_id(self, book_id: str) -> None:
        """Set the server-generated identifier and the links derived from it."""
        self.id = book_id
        self.links = BookLinks.for_book(book_id)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "synopsis": self.synopsis,
            "links": {"self": self.links.self, "reviews": self.links.reviews} if self.links else None,
            "history": [c.to_dict() for c in self.history],
        }

    @staticmethod
    def from_dict(data: dict) -> "Book":
        links = data.get("links")
        return Book(
            id=data.get("id", ""),
            title=data.get("title", ""),
            author=data.get("author", ""),
            synopsis=data.get("synopsis"),
            links=BookLinks(self=links["self"], reviews=links["reviews"]) if links else None,
            history=[Checkout.from_dict(c) for c in data.get("history") or []],
        )
