"""HTTP API for the lending library.

``create_app`` wires a ``DataStore`` and a ``Paginator`` into a FastAPI
application; the module-level ``app`` is built from the environment so the
service can be started with ``uvicorn api:app``. Route handlers delegate to
the validators, the checkout state machine and the store, and every failure
goes through ``errors.handle_error``.
"""

from __future__ import annotations

import json
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional, Type, TypeVar

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, StrictInt, ValidationError

from book import Book
from config import Settings, configure_logging, settings
from context import REQUEST_ID_HEADER, RequestContext, background
from database import build_datastore
from datastore import DataStore
from errors import DataStoreError, ErrorKind, LibraryError, handle_error
from pagination import Paginator
from review import Review, User, merge_review, new_review
from validators import validate_book, validate_review

logger = logging.getLogger(__name__)


# --- Models ---
class BookLinksModel(BaseModel):
    self_link: str = Field(alias="self")
    reviews: str


class CheckoutModel(BaseModel):
    who: str
    out: datetime
    checked_in: Optional[datetime] = Field(default=None, alias="in")
    review: Optional[int] = None


class BookModel(BaseModel):
    id: str
    title: str
    author: str
    synopsis: Optional[str] = None
    links: Optional[BookLinksModel] = None
    history: List[CheckoutModel] = Field(default_factory=list)


class BookCreateModel(BaseModel):
    title: str = ""
    author: str = ""
    synopsis: Optional[str] = None


class UserModel(BaseModel):
    forenames: str = ""
    surname: str = ""


class ReviewLinksModel(BaseModel):
    self_link: str = Field(alias="self")
    book: str


class ReviewModel(BaseModel):
    id: str
    book_id: str
    message: str
    user: UserModel
    links: Optional[ReviewLinksModel] = None
    last_updated: Optional[datetime] = None


class ReviewBodyModel(BaseModel):
    """Body of a review create or partial update; empty strings mean "not supplied"."""

    message: str = ""
    user: UserModel = Field(default_factory=UserModel)

    def to_review(self) -> Review:
        return Review(message=self.message, user=User(forenames=self.user.forenames, surname=self.user.surname))


class CheckoutRequestModel(BaseModel):
    who: str = ""


class CheckinRequestModel(BaseModel):
    review: StrictInt = 0


class BooksPageModel(BaseModel):
    items: List[BookModel]
    count: int
    offset: int
    limit: int
    total_count: int


class ReviewsPageModel(BaseModel):
    items: List[ReviewModel]
    count: int
    offset: int
    limit: int
    total_count: int


class HealthModel(BaseModel):
    status: str
    timestamp: str
    version: str
    datastore: str


# --- Dependencies ---
def get_store(request: Request) -> DataStore:
    return request.app.state.store


def get_paginator(request: Request) -> Paginator:
    return request.app.state.paginator


def get_request_context(request: Request) -> RequestContext:
    return request.state.ctx


async def read_body(request: Request) -> bytes:
    return await request.body()


# --- Helper functions ---
ModelT = TypeVar("ModelT", bound=BaseModel)


def _parse_body(raw: bytes, model: Type[ModelT], malformed: ErrorKind, allow_empty: bool = False) -> ModelT:
    """Decode a JSON object body into ``model``.

    A missing body or ``{}`` is ``EMPTY_REQUEST_BODY`` unless ``allow_empty``;
    anything unparsable or wrongly typed is reported as ``malformed``.
    """
    if not raw.strip():
        if allow_empty:
            return model()
        raise LibraryError(ErrorKind.EMPTY_REQUEST_BODY)
    try:
        data = json.loads(raw)
    except ValueError:
        raise LibraryError(malformed) from None
    if not isinstance(data, dict):
        raise LibraryError(malformed)
    if not data and not allow_empty:
        raise LibraryError(ErrorKind.EMPTY_REQUEST_BODY)
    try:
        return model.model_validate(data)
    except ValidationError:
        raise LibraryError(malformed) from None


def _require_id(value: str, kind: ErrorKind) -> str:
    if not value or not value.strip():
        raise LibraryError(kind)
    return value


def _get_book_review(ctx: RequestContext, store: DataStore, book_id: str, review_id: str) -> Review:
    """Fetch a review after checking that its parent book exists and owns it."""
    store.get_book(ctx, book_id)
    review = store.get_review(ctx, review_id)
    if review.book_id != book_id:
        raise LibraryError(ErrorKind.REVIEW_NOT_FOUND)
    return review


router = APIRouter()


# --- Health check ---
@router.get("/health", response_model=HealthModel)
def health(request: Request, ctx: RequestContext = Depends(get_request_context),
           store: DataStore = Depends(get_store)):
    """Lightweight health endpoint: reports whether the data store answers."""
    status_code, store_state = 200, "ok"
    try:
        store.healthcheck(ctx)
    except DataStoreError as e:
        logger.warning(ctx.describe(f"data store health check failed: {e}"))
        status_code, store_state = 503, "unavailable"
    payload = HealthModel(
        status="healthy" if status_code == 200 else "unhealthy",
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=request.app.version,
        datastore=store_state,
    )
    return JSONResponse(status_code=status_code, content=payload.model_dump())


# --- Books ---
@router.post("/books", response_model=BookModel, status_code=201)
def add_book(body: bytes = Depends(read_body), ctx: RequestContext = Depends(get_request_context),
             store: DataStore = Depends(get_store)):
    """Create a book from ``{title, author, synopsis?}``."""
    payload = _parse_body(body, BookCreateModel, ErrorKind.MALFORMED_REQUEST_BODY)
    book = Book(title=payload.title, author=payload.author, synopsis=payload.synopsis)
    validate_book(book)

    book.assign_id(str(uuid.uuid4()))
    store.add_book(ctx, book)
    logger.info(ctx.describe(f"book {book.id} created"))
    return book.to_dict()


@router.get("/books", response_model=BooksPageModel)
def list_books(request: Request, ctx: RequestContext = Depends(get_request_context),
               store: DataStore = Depends(get_store), paginator: Paginator = Depends(get_paginator)):
    offset, limit = paginator.get_pagination_values(request.query_params)
    books, total = store.get_books(ctx, offset, limit)
    return paginator.build_page([b.to_dict() for b in books], offset, limit, total)


@router.get("/books/{book_id}", response_model=BookModel)
def get_book(book_id: str, ctx: RequestContext = Depends(get_request_context),
             store: DataStore = Depends(get_store)):
    _require_id(book_id, ErrorKind.EMPTY_BOOK_ID)
    return store.get_book(ctx, book_id).to_dict()


@router.post("/books/{book_id}/checkout", response_model=BookModel)
def checkout_book(book_id: str, body: bytes = Depends(read_body),
                  ctx: RequestContext = Depends(get_request_context), store: DataStore = Depends(get_store)):
    """Lend a book to the borrower named in ``{who}``."""
    _require_id(book_id, ErrorKind.EMPTY_BOOK_ID)
    payload = _parse_body(body, CheckoutRequestModel, ErrorKind.MALFORMED_REQUEST_BODY, allow_empty=True)
    book = store.checkout_book(ctx, book_id, payload.who)
    logger.info(ctx.describe(f"book {book_id} checked out"))
    return book.to_dict()


@router.post("/books/{book_id}/checkin", response_model=BookModel)
def checkin_book(book_id: str, body: bytes = Depends(read_body),
                 ctx: RequestContext = Depends(get_request_context), store: DataStore = Depends(get_store)):
    """Return a book with a ``{review}`` score between 1 and 5."""
    _require_id(book_id, ErrorKind.EMPTY_BOOK_ID)
    payload = _parse_body(body, CheckinRequestModel, ErrorKind.MALFORMED_REQUEST_BODY, allow_empty=True)
    book = store.checkin_book(ctx, book_id, payload.review)
    logger.info(ctx.describe(f"book {book_id} checked in"))
    return book.to_dict()


# --- Reviews ---
@router.post("/books/{book_id}/reviews", response_model=ReviewModel, status_code=201)
def add_review(book_id: str, body: bytes = Depends(read_body),
               ctx: RequestContext = Depends(get_request_context), store: DataStore = Depends(get_store)):
    _require_id(book_id, ErrorKind.EMPTY_BOOK_ID)
    candidate = _parse_body(body, ReviewBodyModel, ErrorKind.INVALID_REVIEW).to_review()
    validate_review(candidate)

    store.get_book(ctx, book_id)
    review = new_review(book_id, message=candidate.message, user=candidate.user)
    store.add_review(ctx, review)
    logger.info(ctx.describe(f"review {review.id} added to book {book_id}"))
    return review.to_dict()


@router.get("/books/{book_id}/reviews", response_model=ReviewsPageModel)
def list_reviews(book_id: str, request: Request, ctx: RequestContext = Depends(get_request_context),
                 store: DataStore = Depends(get_store), paginator: Paginator = Depends(get_paginator)):
    _require_id(book_id, ErrorKind.EMPTY_BOOK_ID)
    offset, limit = paginator.get_pagination_values(request.query_params)
    store.get_book(ctx, book_id)
    reviews, total = store.get_reviews(ctx, book_id, offset, limit)
    return paginator.build_page([r.to_dict() for r in reviews], offset, limit, total)


@router.get("/books/{book_id}/reviews/{review_id}", response_model=ReviewModel)
def get_review(book_id: str, review_id: str, ctx: RequestContext = Depends(get_request_context),
               store: DataStore = Depends(get_store)):
    _require_id(book_id, ErrorKind.EMPTY_BOOK_ID)
    _require_id(review_id, ErrorKind.EMPTY_REVIEW_ID)
    return _get_book_review(ctx, store, book_id, review_id).to_dict()


@router.put("/books/{book_id}/reviews/{review_id}", response_model=ReviewModel)
def update_review(book_id: str, review_id: str, body: bytes = Depends(read_body),
                  ctx: RequestContext = Depends(get_request_context), store: DataStore = Depends(get_store)):
    """Partially update a review; only non-empty fields are applied."""
    _require_id(book_id, ErrorKind.EMPTY_BOOK_ID)
    _require_id(review_id, ErrorKind.EMPTY_REVIEW_ID)
    partial = _parse_body(body, ReviewBodyModel, ErrorKind.INVALID_REVIEW).to_review()

    current = _get_book_review(ctx, store, book_id, review_id)
    validate_review(merge_review(current, partial))
    store.update_review(ctx, review_id, partial)
    logger.info(ctx.describe(f"review {review_id} updated"))
    return store.get_review(ctx, review_id).to_dict()


# --- Application factory ---
async def _error_response(request: Request, exc: Exception) -> JSONResponse:
    status_code, message = handle_error(exc)
    return JSONResponse(status_code=status_code, content={"detail": message})


def create_app(store: Optional[DataStore] = None, paginator: Optional[Paginator] = None,
               cfg: Optional[Settings] = None) -> FastAPI:
    cfg = cfg or settings
    store = store or build_datastore(cfg.datastore, cfg.database_file)
    paginator = paginator or Paginator(cfg.default_limit, cfg.default_offset, cfg.default_maximum_limit)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        ctx = background()
        store.init(ctx)
        try:
            yield
        finally:
            store.close(ctx)

    app = FastAPI(title=cfg.app_name, version=cfg.app_version, lifespan=lifespan)
    app.state.store = store
    app.state.paginator = paginator

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        ctx = RequestContext.from_header(request.headers.get(REQUEST_ID_HEADER))
        request.state.ctx = ctx
        try:
            response = await call_next(request)
        except Exception as exc:
            status_code, message = handle_error(exc)
            response = JSONResponse(status_code=status_code, content={"detail": message})
        response.headers[REQUEST_ID_HEADER] = ctx.request_id
        logger.info(ctx.describe(f"{request.method} {request.url.path} -> {response.status_code}"))
        return response

    app.add_exception_handler(LibraryError, _error_response)
    app.add_exception_handler(DataStoreError, _error_response)
    app.include_router(router)
    return app


configure_logging(settings)
app = create_app()
