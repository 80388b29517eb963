from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from book import format_timestamp, parse_timestamp, utcnow


@dataclass
class User:
    forenames: str = ""
    surname: str = ""

    def to_dict(self) -> dict:
        return {"forenames": self.forenames, "surname": self.surname}


@dataclass
class ReviewLinks:
    self: str
    book: str


@dataclass
class Review:
    """A user-submitted comment tied to a book."""

    message: str = ""
    user: User = field(default_factory=User)
    id: str = ""
    book_id: str = ""
    links: Optional[ReviewLinks] = None
    last_updated: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "book_id": self.book_id,
            "message": self.message,
            "user": self.user.to_dict(),
            "links": {"self": self.links.self, "book": self.links.book} if self.links else None,
            "last_updated": format_timestamp(self.last_updated),
        }

    @staticmethod
    def from_dict(data: dict) -> "Review":
        user = data.get("user") or {}
        links = data.get("links")
        return Review(
            id=data.get("id", ""),
            book_id=data.get("book_id", ""),
            message=data.get("message", ""),
            user=User(forenames=user.get("forenames", ""), surname=user.get("surname", "")),
            links=ReviewLinks(self=links["self"], book=links["book"]) if links else None,
            last_updated=parse_timestamp(data.get("last_updated")),
        )


def new_review(book_id: str, message: str = "", user: Optional[User] = None) -> Review:
    """Create a review for ``book_id`` with a fresh id, links and timestamp."""
    review_id = str(uuid.uuid4())
    return Review(
        id=review_id,
        book_id=book_id,
        message=message,
        user=user or User(),
        links=ReviewLinks(self=f"/books/{book_id}/reviews/{review_id}", book=f"/books/{book_id}"),
        last_updated=utcnow(),
    )


def merge_review(current: Review, partial: Review) -> Review:
    """Return ``current`` with the non-empty fields of ``partial`` applied.

    Empty strings mean "no change", so a field can never be cleared through
    a partial update. ``last_updated`` is always refreshed.
    """
    return Review(
        id=current.id,
        book_id=current.book_id,
        message=partial.message or current.message,
        user=User(
            forenames=partial.user.forenames or current.user.forenames,
            surname=partial.user.surname or current.user.surname,
        ),
        links=current.links,
        last_updated=utcnow(),
    )
