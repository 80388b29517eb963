"""Persistence contract consumed by the HTTP layer and the CLI.

Implementations must report missing entities as ``LibraryError`` with
``BOOK_NOT_FOUND``/``REVIEW_NOT_FOUND`` rather than returning ``None``, and
must wrap engine failures in ``DataStoreError``.
"""

from __future__ import annotations

import copy
import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Tuple

import checkout as checkout_machine
from book import Book
from context import RequestContext
from errors import DataStoreError, ErrorKind, LibraryError
from review import Review, merge_review

logger = logging.getLogger(__name__)


class DataStore(ABC):
    """Capability interface for storing books and reviews."""

    def init(self, ctx: RequestContext) -> None:
        """Prepare the store for use (create tables, open files)."""

    def close(self, ctx: RequestContext) -> None:
        """Release any resources held by the store."""

    @abstractmethod
    def healthcheck(self, ctx: RequestContext) -> None:
        """Raise ``DataStoreError`` when the store cannot serve requests."""

    @abstractmethod
    def add_book(self, ctx: RequestContext, book: Book) -> None: ...

    @abstractmethod
    def get_book(self, ctx: RequestContext, book_id: str) -> Book: ...

    @abstractmethod
    def get_books(self, ctx: RequestContext, offset: int, limit: int) -> Tuple[List[Book], int]: ...

    @abstractmethod
    def checkout_book(self, ctx: RequestContext, book_id: str, borrower: str) -> Book:
        """Atomically apply a checkout to the stored book and return it."""

    @abstractmethod
    def checkin_book(self, ctx: RequestContext, book_id: str, review: int) -> Book:
        """Atomically apply a check-in to the stored book and return it."""

    @abstractmethod
    def add_review(self, ctx: RequestContext, review: Review) -> None: ...

    @abstractmethod
    def get_review(self, ctx: RequestContext, review_id: str) -> Review: ...

    @abstractmethod
    def get_reviews(self, ctx: RequestContext, book_id: str, offset: int, limit: int) -> Tuple[List[Review], int]: ...

    @abstractmethod
    def update_review(self, ctx: RequestContext, review_id: str, partial: Review) -> None:
        """Apply the non-empty fields of ``partial`` and refresh ``last_updated``."""


class InMemoryDataStore(DataStore):
    """Dict-backed store for tests and the ``DATASTORE=memory`` setting.

    Every read and write holds ``self._lock`` so concurrent checkouts of the
    same book are linearized. Entities are deep-copied on the way in and out.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._books: Dict[str, Book] = {}
        self._reviews: Dict[str, Review] = {}

    def healthcheck(self, ctx: RequestContext) -> None:
        return None

    # ------------------------- Books ------------------------- #
    def add_book(self, ctx: RequestContext, book: Book) -> None:
        with self._lock:
            if book.id in self._books:
                raise DataStoreError(f"duplicate book id {book.id}")
            self._books[book.id] = copy.deepcopy(book)
        logger.debug(ctx.describe(f"book {book.id} stored in memory"))

    def get_book(self, ctx: RequestContext, book_id: str) -> Book:
        with self._lock:
            return copy.deepcopy(self._get_book_locked(book_id))

    def get_books(self, ctx: RequestContext, offset: int, limit: int) -> Tuple[List[Book], int]:
        with self._lock:
            books = list(self._books.values())
            return copy.deepcopy(books[offset:offset + limit]), len(books)

    def checkout_book(self, ctx: RequestContext, book_id: str, borrower: str) -> Book:
        with self._lock:
            book = copy.deepcopy(self._get_book_locked(book_id))
            checkout_machine.checkout(book, borrower)
            self._books[book_id] = book
            return copy.deepcopy(book)

    def checkin_book(self, ctx: RequestContext, book_id: str, review: int) -> Book:
        with self._lock:
            book = copy.deepcopy(self._get_book_locked(book_id))
            checkout_machine.checkin(book, review)
            self._books[book_id] = book
            return copy.deepcopy(book)

    def _get_book_locked(self, book_id: str) -> Book:
        try:
            return self._books[book_id]
        except KeyError:
            raise LibraryError(ErrorKind.BOOK_NOT_FOUND) from None

    # ------------------------- Reviews ------------------------- #
    def add_review(self, ctx: RequestContext, review: Review) -> None:
        with self._lock:
            if review.id in self._reviews:
                raise DataStoreError(f"duplicate review id {review.id}")
            self._reviews[review.id] = copy.deepcopy(review)

    def get_review(self, ctx: RequestContext, review_id: str) -> Review:
        with self._lock:
            return copy.deepcopy(self._get_review_locked(review_id))

    def get_reviews(self, ctx: RequestContext, book_id: str, offset: int, limit: int) -> Tuple[List[Review], int]:
        with self._lock:
            reviews = [r for r in self._reviews.values() if r.book_id == book_id]
            return copy.deepcopy(reviews[offset:offset + limit]), len(reviews)

    def update_review(self, ctx: RequestContext, review_id: str, partial: Review) -> None:
        with self._lock:
            current = self._get_review_locked(review_id)
            self._reviews[review_id] = merge_review(current, partial)

    def _get_review_locked(self, review_id: str) -> Review:
        try:
            return self._reviews[review_id]
        except KeyError:
            raise LibraryError(ErrorKind.REVIEW_NOT_FOUND) from None
