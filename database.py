"""SQLite-backed document store.

Each book and review is kept as a JSON document in its own table, keyed by
its id. Checkout, check-in and review updates are read-modify-write cycles
run inside ``BEGIN IMMEDIATE`` transactions: SQLite's write lock makes them
atomic across threads and processes without an in-process lock.

A connection is opened per operation, so ``database_file`` must be a real
path; ``:memory:`` would give every operation an empty database.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional, Tuple

import checkout as checkout_machine
from book import Book
from context import RequestContext
from datastore import DataStore, InMemoryDataStore
from errors import DataStoreError, ErrorKind, LibraryError
from review import Review, merge_review

logger = logging.getLogger(__name__)

BUSY_TIMEOUT_SECONDS = 10.0
# Largest value sqlite3 can bind as an INTEGER parameter
SQLITE_MAX_INTEGER = 2**63 - 1


class SQLiteDataStore(DataStore):
    def __init__(self, database_file: str) -> None:
        self.database_file = database_file

    # ------------------------- Connections ------------------------- #
    def get_db_connection(self) -> sqlite3.Connection:
        """Open a connection in autocommit mode; transactions are explicit."""
        conn = sqlite3.connect(self.database_file, timeout=BUSY_TIMEOUT_SECONDS, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        return conn

    @contextmanager
    def _connection(self, ctx: RequestContext) -> Iterator[sqlite3.Connection]:
        try:
            conn = self.get_db_connection()
        except sqlite3.Error as e:
            raise DataStoreError(f"cannot open database {self.database_file}: {e}") from e
        try:
            yield conn
        except sqlite3.Error as e:
            logger.error(ctx.describe(f"sqlite operation failed: {e}"))
            raise DataStoreError(str(e)) from e
        finally:
            conn.close()

    @contextmanager
    def _transaction(self, ctx: RequestContext) -> Iterator[sqlite3.Connection]:
        """Hold the database write lock for the duration of the block."""
        with self._connection(ctx) as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    # ------------------------- Lifecycle ------------------------- #
    def init(self, ctx: RequestContext) -> None:
        """Create the document tables if they do not exist."""
        with self._connection(ctx) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS books (
                    id TEXT PRIMARY KEY,
                    doc TEXT NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS reviews (
                    id TEXT PRIMARY KEY,
                    book_id TEXT NOT NULL,
                    doc TEXT NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_reviews_book_id ON reviews(book_id)")
        logger.info(ctx.describe(f"sqlite data store ready at {self.database_file}"))

    def healthcheck(self, ctx: RequestContext) -> None:
        with self._connection(ctx) as conn:
            conn.execute("SELECT 1")

    # ------------------------- Books ------------------------- #
    def add_book(self, ctx: RequestContext, book: Book) -> None:
        with self._connection(ctx) as conn:
            conn.execute("INSERT INTO books (id, doc) VALUES (?, ?)", (book.id, _dumps(book.to_dict())))
        logger.debug(ctx.describe(f"book {book.id} inserted"))

    def get_book(self, ctx: RequestContext, book_id: str) -> Book:
        with self._connection(ctx) as conn:
            return self._load_book(conn, book_id)

    def get_books(self, ctx: RequestContext, offset: int, limit: int) -> Tuple[List[Book], int]:
        with self._connection(ctx) as conn:
            total = conn.execute("SELECT COUNT(*) FROM books").fetchone()[0]
            if offset > SQLITE_MAX_INTEGER:
                return [], total
            rows = conn.execute(
                "SELECT doc FROM books ORDER BY rowid LIMIT ? OFFSET ?",
                (min(limit, SQLITE_MAX_INTEGER), offset),
            ).fetchall()
        return [Book.from_dict(json.loads(row["doc"])) for row in rows], total

    def checkout_book(self, ctx: RequestContext, book_id: str, borrower: str) -> Book:
        return self._update_book(ctx, book_id, lambda book: checkout_machine.checkout(book, borrower))

    def checkin_book(self, ctx: RequestContext, book_id: str, review: int) -> Book:
        return self._update_book(ctx, book_id, lambda book: checkout_machine.checkin(book, review))

    def _update_book(self, ctx: RequestContext, book_id: str, apply: Callable[[Book], object]) -> Book:
        with self._transaction(ctx) as conn:
            book = self._load_book(conn, book_id)
            apply(book)
            conn.execute("UPDATE books SET doc = ? WHERE id = ?", (_dumps(book.to_dict()), book_id))
        return book

    @staticmethod
    def _load_book(conn: sqlite3.Connection, book_id: str) -> Book:
        row = conn.execute("SELECT doc FROM books WHERE id = ?", (book_id,)).fetchone()
        if row is None:
            raise LibraryError(ErrorKind.BOOK_NOT_FOUND)
        return Book.from_dict(json.loads(row["doc"]))

    # ------------------------- Reviews ------------------------- #
    def add_review(self, ctx: RequestContext, review: Review) -> None:
        with self._connection(ctx) as conn:
            conn.execute(
                "INSERT INTO reviews (id, book_id, doc) VALUES (?, ?, ?)",
                (review.id, review.book_id, _dumps(review.to_dict())),
            )

    def get_review(self, ctx: RequestContext, review_id: str) -> Review:
        with self._connection(ctx) as conn:
            return self._load_review(conn, review_id)

    def get_reviews(self, ctx: RequestContext, book_id: str, offset: int, limit: int) -> Tuple[List[Review], int]:
        with self._connection(ctx) as conn:
            total = conn.execute("SELECT COUNT(*) FROM reviews WHERE book_id = ?", (book_id,)).fetchone()[0]
            if offset > SQLITE_MAX_INTEGER:
                return [], total
            rows = conn.execute(
                "SELECT doc FROM reviews WHERE book_id = ? ORDER BY rowid LIMIT ? OFFSET ?",
                (book_id, min(limit, SQLITE_MAX_INTEGER), offset),
            ).fetchall()
        return [Review.from_dict(json.loads(row["doc"])) for row in rows], total

    def update_review(self, ctx: RequestContext, review_id: str, partial: Review) -> None:
        with self._transaction(ctx) as conn:
            updated = merge_review(self._load_review(conn, review_id), partial)
            conn.execute("UPDATE reviews SET doc = ? WHERE id = ?", (_dumps(updated.to_dict()), review_id))

    @staticmethod
    def _load_review(conn: sqlite3.Connection, review_id: str) -> Review:
        row = conn.execute("SELECT doc FROM reviews WHERE id = ?", (review_id,)).fetchone()
        if row is None:
            raise LibraryError(ErrorKind.REVIEW_NOT_FOUND)
        return Review.from_dict(json.loads(row["doc"]))


def _dumps(doc: dict) -> str:
    return json.dumps(doc, ensure_ascii=False)


def build_datastore(backend: str, database_file: Optional[str] = None) -> DataStore:
    """Create the data store named by the ``DATASTORE`` setting."""
    if backend == "memory":
        return InMemoryDataStore()
    if backend == "sqlite":
        return SQLiteDataStore(database_file or "library.db")
    raise ValueError(f"Unknown data store backend: {backend!r}")
