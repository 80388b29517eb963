"""Checkout state machine for a single book.

A book is either available or checked out. The state is never stored: it
is read from the last entry of the append-only ``history``. Earlier entries
are never inspected.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from book import Book, Checkout, utcnow
from errors import ErrorKind, LibraryError

MIN_REVIEW_SCORE = 1
MAX_REVIEW_SCORE = 5


def current_checkout(book: Book) -> Optional[Checkout]:
    """Return the open checkout of ``book``, or ``None`` when it is available."""
    if not book.history:
        return None
    last = book.history[-1]
    return last if last.checked_in is None else None


def is_checked_out(book: Book) -> bool:
    return current_checkout(book) is not None


def checkout(book: Book, borrower: str, now: Optional[datetime] = None) -> Checkout:
    """Lend ``book`` to ``borrower`` by appending a new open checkout."""
    if is_checked_out(book):
        raise LibraryError(ErrorKind.BOOK_ALREADY_CHECKED_OUT)
    if not borrower or not borrower.strip():
        raise LibraryError(ErrorKind.BORROWER_NAME_MISSING)

    entry = Checkout(who=borrower, out=now or utcnow())
    book.history.append(entry)
    return entry


def checkin(book: Book, review: int, now: Optional[datetime] = None) -> Checkout:
    """Return ``book``, closing its open checkout with a 1-5 review score.

    Never-borrowed and already-returned books both fail with
    ``BOOK_NOT_CHECKED_OUT``.
    """
    open_entry = current_checkout(book)
    if open_entry is None:
        raise LibraryError(ErrorKind.BOOK_NOT_CHECKED_OUT)
    if isinstance(review, bool) or not isinstance(review, int) or not MIN_REVIEW_SCORE <= review <= MAX_REVIEW_SCORE:
        raise LibraryError(ErrorKind.REVIEW_SCORE_REQUIRED)

    closed = Checkout(
        who=open_entry.who,
        out=open_entry.out,
        checked_in=now or utcnow(),
        review=review,
    )
    book.history[-1] = closed
    return closed
