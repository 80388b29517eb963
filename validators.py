from book import Book
from errors import MAX_REVIEW_LENGTH, ErrorKind, LibraryError
from review import Review


def _is_blank(text) -> bool:
    return text is None or not str(text).strip()


def validate_book(book: Book) -> None:
    """Raise ``REQUIRED_FIELD_MISSING`` unless the book has a title and an author."""
    if _is_blank(book.title) or _is_blank(book.author):
        raise LibraryError(ErrorKind.REQUIRED_FIELD_MISSING)


def validate_review(review: Review) -> None:
    """Check a review's content; only the first failing check is reported.

    Order: empty message, incomplete user, message too long.
    """
    if _is_blank(review.message):
        raise LibraryError(ErrorKind.EMPTY_REVIEW_MESSAGE)
    if review.user is None or _is_blank(review.user.forenames) or _is_blank(review.user.surname):
        raise LibraryError(ErrorKind.EMPTY_REVIEW_USER)
    if len(review.message) > MAX_REVIEW_LENGTH:
        raise LibraryError(ErrorKind.REVIEW_MESSAGE_TOO_LONG)
