"""Error taxonomy shared by the validators, the checkout state machine,
the paginator, the data stores and the HTTP layer.

Every expected failure is a ``LibraryError`` carrying an ``ErrorKind``.
``handle_error`` is the single place that turns an exception into an HTTP
status and a client-facing message; anything that is not a ``LibraryError``
becomes a generic 500 so storage details never reach the client.
"""

from __future__ import annotations

import logging
from enum import Enum
from http import HTTPStatus
from typing import Dict, Optional, Tuple

logger = logging.getLogger(__name__)

MAX_REVIEW_LENGTH = 200
INTERNAL_SERVER_ERROR = "internal server error"


class ErrorKind(Enum):
    REQUIRED_FIELD_MISSING = "required_field_missing"
    EMPTY_REQUEST_BODY = "empty_request_body"
    MALFORMED_REQUEST_BODY = "malformed_request_body"
    EMPTY_BOOK_ID = "empty_book_id"
    EMPTY_REVIEW_ID = "empty_review_id"
    INVALID_REVIEW = "invalid_review"
    EMPTY_REVIEW_MESSAGE = "empty_review_message"
    EMPTY_REVIEW_USER = "empty_review_user"
    REVIEW_MESSAGE_TOO_LONG = "review_message_too_long"
    INVALID_OFFSET_PARAMETER = "invalid_offset_parameter"
    INVALID_LIMIT_PARAMETER = "invalid_limit_parameter"
    LIMIT_EXCEEDS_MAXIMUM = "limit_exceeds_maximum"
    BOOK_ALREADY_CHECKED_OUT = "book_already_checked_out"
    BORROWER_NAME_MISSING = "borrower_name_missing"
    BOOK_NOT_CHECKED_OUT = "book_not_checked_out"
    REVIEW_SCORE_REQUIRED = "review_score_required"
    BOOK_NOT_FOUND = "book_not_found"
    REVIEW_NOT_FOUND = "review_not_found"


MESSAGES: Dict[ErrorKind, str] = {
    ErrorKind.REQUIRED_FIELD_MISSING: "invalid book. Missing required field",
    ErrorKind.EMPTY_REQUEST_BODY: "empty request body",
    ErrorKind.MALFORMED_REQUEST_BODY: "failed to parse json body",
    ErrorKind.EMPTY_BOOK_ID: "empty book ID in request",
    ErrorKind.EMPTY_REVIEW_ID: "empty review ID in request",
    ErrorKind.INVALID_REVIEW: "invalid review",
    ErrorKind.EMPTY_REVIEW_MESSAGE: "empty review message",
    ErrorKind.EMPTY_REVIEW_USER: "review user must have forenames and surname",
    ErrorKind.REVIEW_MESSAGE_TOO_LONG: f"review message is too long (maximum {MAX_REVIEW_LENGTH} characters)",
    ErrorKind.INVALID_OFFSET_PARAMETER: "invalid query parameter: offset",
    ErrorKind.INVALID_LIMIT_PARAMETER: "invalid query parameter: limit",
    ErrorKind.LIMIT_EXCEEDS_MAXIMUM: "invalid query parameter: limit exceeds the maximum",
    ErrorKind.BOOK_ALREADY_CHECKED_OUT: "this book is currently checked out",
    ErrorKind.BORROWER_NAME_MISSING: "a name must be provided for checkout",
    ErrorKind.BOOK_NOT_CHECKED_OUT: "this book is not currently checked out",
    ErrorKind.REVIEW_SCORE_REQUIRED: "a review between 1 and 5 must be provided",
    ErrorKind.BOOK_NOT_FOUND: "book not found",
    ErrorKind.REVIEW_NOT_FOUND: "review not found",
}

_NOT_FOUND = {ErrorKind.BOOK_NOT_FOUND, ErrorKind.REVIEW_NOT_FOUND}

STATUSES: Dict[ErrorKind, HTTPStatus] = {
    kind: (HTTPStatus.NOT_FOUND if kind in _NOT_FOUND else HTTPStatus.BAD_REQUEST)
    for kind in ErrorKind
}


class LibraryError(Exception):
    """An expected, user-correctable failure identified by its kind."""

    def __init__(self, kind: ErrorKind, message: Optional[str] = None) -> None:
        self.kind = kind
        self.message = message or MESSAGES[kind]
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"LibraryError({self.kind.name}, {self.message!r})"


class DataStoreError(Exception):
    """Unexpected failure inside a data store implementation."""


def status_for(kind: ErrorKind) -> HTTPStatus:
    return STATUSES[kind]


def handle_error(err: BaseException) -> Tuple[int, str]:
    """Map an exception to ``(status_code, client_message)``."""
    if isinstance(err, LibraryError):
        status = status_for(err.kind)
        logger.info(f"request unsuccessful: {err.kind.name} ({int(status)}): {err.message}")
        return int(status), err.message

    logger.error("request unsuccessful: internal error", exc_info=(type(err), err, err.__traceback__))
    return int(HTTPStatus.INTERNAL_SERVER_ERROR), INTERNAL_SERVER_ERROR
