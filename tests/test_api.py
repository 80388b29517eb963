import pytest
from fastapi.testclient import TestClient

from api import create_app
from config import Settings
from context import REQUEST_ID_HEADER
from datastore import InMemoryDataStore
from errors import DataStoreError
from pagination import Paginator

VALID_REVIEW = {"message": "A perfect review. 10/10. Would read again",
                "user": {"forenames": "Reviewer", "surname": "OfBooks"}}


def _add_book(client, title="Kindred", author="Octavia E. Butler", **extra):
    response = client.post("/books", json={"title": title, "author": author, **extra})
    assert response.status_code == 201
    return response.json()


def _add_review(client, book_id, body=None):
    response = client.post(f"/books/{book_id}/reviews", json=body or VALID_REVIEW)
    assert response.status_code == 201
    return response.json()


# --- Books ---
def test_add_and_fetch_book(client):
    created = _add_book(client, synopsis="Time travel to antebellum Maryland")
    assert created["id"]
    assert created["links"] == {"self": f"/books/{created['id']}", "reviews": f"/books/{created['id']}/reviews"}
    assert created["history"] == []

    response = client.get(f"/books/{created['id']}")
    assert response.status_code == 200
    body = response.json()
    assert body["title"] == "Kindred"
    assert body["author"] == "Octavia E. Butler"
    assert body["synopsis"] == "Time travel to antebellum Maryland"


def test_add_book_missing_field(client):
    response = client.post("/books", json={"title": "Kindred"})
    assert response.status_code == 400
    assert response.json() == {"detail": "invalid book. Missing required field"}


@pytest.mark.parametrize("content", [b"", b"{}"])
def test_add_book_empty_body(client, content):
    response = client.post("/books", content=content, headers={"Content-Type": "application/json"})
    assert response.status_code == 400
    assert response.json() == {"detail": "empty request body"}


@pytest.mark.parametrize("content", [b"{not json", b"[1, 2]", b'{"title": 5, "author": []}'])
def test_add_book_malformed_body(client, content):
    response = client.post("/books", content=content, headers={"Content-Type": "application/json"})
    assert response.status_code == 400
    assert response.json() == {"detail": "failed to parse json body"}


def test_get_missing_book(client):
    response = client.get("/books/does-not-exist")
    assert response.status_code == 404
    assert response.json() == {"detail": "book not found"}


def test_blank_book_id(client):
    response = client.get("/books/%20")
    assert response.status_code == 400
    assert response.json() == {"detail": "empty book ID in request"}


def test_list_books_pages(client):
    ids = [_add_book(client, title=f"Book {n}")["id"] for n in range(3)]

    body = client.get("/books", params={"offset": "1", "limit": "1"}).json()
    assert body["count"] == 1
    assert body["offset"] == 1
    assert body["limit"] == 1
    assert body["total_count"] == 3
    assert [b["id"] for b in body["items"]] == ids[1:2]


def test_list_books_defaults(client):
    body = client.get("/books").json()
    assert body == {"items": [], "count": 0, "offset": 0, "limit": 20, "total_count": 0}


@pytest.mark.parametrize("params,message", [
    ({"offset": "-1"}, "invalid query parameter: offset"),
    ({"offset": "abc", "limit": "-1"}, "invalid query parameter: offset"),
    ({"limit": "ten"}, "invalid query parameter: limit"),
    ({"limit": "1001"}, "invalid query parameter: limit exceeds the maximum"),
])
def test_list_books_invalid_pagination(client, params, message):
    response = client.get("/books", params=params)
    assert response.status_code == 400
    assert response.json() == {"detail": message}


# --- Checkout / check-in ---
def test_checkout_and_checkin(client):
    book_id = _add_book(client)["id"]

    response = client.post(f"/books/{book_id}/checkout", json={"who": "alice"})
    assert response.status_code == 200
    last = response.json()["history"][-1]
    assert last["who"] == "alice"
    assert last["in"] is None

    response = client.post(f"/books/{book_id}/checkin", json={"review": 4})
    assert response.status_code == 200
    last = response.json()["history"][-1]
    assert last["review"] == 4
    assert last["in"] is not None


def test_double_checkout(client):
    book_id = _add_book(client)["id"]
    client.post(f"/books/{book_id}/checkout", json={"who": "alice"})

    response = client.post(f"/books/{book_id}/checkout", json={"who": "bob"})
    assert response.status_code == 400
    assert response.json() == {"detail": "this book is currently checked out"}


def test_checkout_without_name(client):
    book_id = _add_book(client)["id"]
    response = client.post(f"/books/{book_id}/checkout")
    assert response.status_code == 400
    assert response.json() == {"detail": "a name must be provided for checkout"}


def test_checkin_errors(client):
    book_id = _add_book(client)["id"]

    response = client.post(f"/books/{book_id}/checkin", json={"review": 3})
    assert response.status_code == 400
    assert response.json() == {"detail": "this book is not currently checked out"}

    client.post(f"/books/{book_id}/checkout", json={"who": "alice"})
    response = client.post(f"/books/{book_id}/checkin", json={"review": 6})
    assert response.status_code == 400
    assert response.json() == {"detail": "a review between 1 and 5 must be provided"}


@pytest.mark.parametrize("score", [True, "4", 4.0])
def test_checkin_score_must_be_an_integer(client, score):
    book_id = _add_book(client)["id"]
    client.post(f"/books/{book_id}/checkout", json={"who": "alice"})

    response = client.post(f"/books/{book_id}/checkin", json={"review": score})
    assert response.status_code == 400
    assert response.json() == {"detail": "failed to parse json body"}
    assert client.get(f"/books/{book_id}").json()["history"][-1]["in"] is None


def test_checkout_missing_book(client):
    response = client.post("/books/nope/checkout", json={"who": "alice"})
    assert response.status_code == 404


# --- Reviews ---
def test_add_review_to_missing_book(client):
    response = client.post("/books/does-not-exist/reviews", json=VALID_REVIEW)
    assert response.status_code == 404
    assert "book not found" in response.text


def test_invalid_review_is_reported_before_missing_book(client):
    response = client.post("/books/does-not-exist/reviews", json={"message": "", "user": {}})
    assert response.status_code == 400
    assert response.json() == {"detail": "empty review message"}


def test_review_message_length(client):
    book_id = _add_book(client)["id"]
    user = VALID_REVIEW["user"]

    response = client.post(f"/books/{book_id}/reviews", json={"message": "x" * 201, "user": user})
    assert response.status_code == 400
    assert "too long" in response.json()["detail"]

    response = client.post(f"/books/{book_id}/reviews", json={"message": "x" * 200, "user": user})
    assert response.status_code == 201


@pytest.mark.parametrize("content", [b"not json", b'{"message": 1}', b'"text"'])
def test_unparsable_review(client, content):
    book_id = _add_book(client)["id"]
    response = client.post(f"/books/{book_id}/reviews", content=content,
                           headers={"Content-Type": "application/json"})
    assert response.status_code == 400
    assert response.json() == {"detail": "invalid review"}


def test_add_get_and_list_reviews(client):
    book_id = _add_book(client)["id"]
    created = _add_review(client, book_id)
    assert created["book_id"] == book_id
    assert created["links"] == {"self": f"/books/{book_id}/reviews/{created['id']}", "book": f"/books/{book_id}"}
    assert created["last_updated"]

    response = client.get(f"/books/{book_id}/reviews/{created['id']}")
    assert response.status_code == 200
    assert response.json()["message"] == VALID_REVIEW["message"]

    _add_review(client, book_id)
    body = client.get(f"/books/{book_id}/reviews", params={"limit": "1"}).json()
    assert body["count"] == 1
    assert body["total_count"] == 2
    assert body["items"][0]["id"] == created["id"]


def test_list_reviews_of_missing_book(client):
    response = client.get("/books/nope/reviews")
    assert response.status_code == 404
    assert response.json() == {"detail": "book not found"}


def test_review_of_another_book_is_not_found(client):
    first = _add_book(client)["id"]
    second = _add_book(client, title="Parable of the Sower")["id"]
    review = _add_review(client, first)

    response = client.get(f"/books/{second}/reviews/{review['id']}")
    assert response.status_code == 404
    assert response.json() == {"detail": "review not found"}


def test_get_missing_review(client):
    book_id = _add_book(client)["id"]
    response = client.get(f"/books/{book_id}/reviews/nope")
    assert response.status_code == 404
    assert response.json() == {"detail": "review not found"}


def test_blank_review_id(client):
    book_id = _add_book(client)["id"]
    response = client.get(f"/books/{book_id}/reviews/%20")
    assert response.status_code == 400
    assert response.json() == {"detail": "empty review ID in request"}


def test_partial_review_update(client):
    book_id = _add_book(client)["id"]
    created = _add_review(client, book_id)

    response = client.put(f"/books/{book_id}/reviews/{created['id']}", json={"message": "Changed my mind"})
    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Changed my mind"
    assert body["user"] == VALID_REVIEW["user"]
    assert body["last_updated"]


def test_review_update_validates_merged_review(client):
    book_id = _add_book(client)["id"]
    created = _add_review(client, book_id)

    response = client.put(f"/books/{book_id}/reviews/{created['id']}", json={"message": "x" * 201})
    assert response.status_code == 400
    stored = client.get(f"/books/{book_id}/reviews/{created['id']}").json()
    assert stored["message"] == VALID_REVIEW["message"]


def test_update_review_of_missing_book(client):
    response = client.put("/books/nope/reviews/also-nope", json={"message": "hi"})
    assert response.status_code == 404
    assert response.json() == {"detail": "book not found"}


# --- Ambient behaviour ---
def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["datastore"] == "ok"


def test_health_reports_unavailable_store(client, memory_store, monkeypatch):
    def broken(ctx):
        raise DataStoreError("database is locked")

    monkeypatch.setattr(memory_store, "healthcheck", broken)
    response = client.get("/health")
    assert response.status_code == 503
    assert response.json()["datastore"] == "unavailable"


def test_request_id_is_echoed(client):
    response = client.get("/books", headers={REQUEST_ID_HEADER: "abc-123"})
    assert response.headers[REQUEST_ID_HEADER] == "abc-123"


def test_request_id_is_generated(client):
    assert client.get("/books").headers[REQUEST_ID_HEADER]


def test_store_failures_are_hidden(client, memory_store, monkeypatch):
    def broken(ctx, book_id):
        raise DataStoreError("disk I/O error at /var/lib/library.db")

    monkeypatch.setattr(memory_store, "get_book", broken)
    response = client.get("/books/anything")
    assert response.status_code == 500
    assert response.json() == {"detail": "internal server error"}


def test_unexpected_errors_are_hidden(client, memory_store, monkeypatch):
    def broken(ctx, offset, limit):
        raise RuntimeError("boom")

    monkeypatch.setattr(memory_store, "get_books", broken)
    response = client.get("/books", headers={REQUEST_ID_HEADER: "req-500"})
    assert response.status_code == 500
    assert response.json() == {"detail": "internal server error"}
    assert response.headers[REQUEST_ID_HEADER] == "req-500"


def test_sqlite_backed_app(tmp_path):
    cfg = Settings(datastore="sqlite", database_file=str(tmp_path / "api.db"))
    with TestClient(create_app(cfg=cfg)) as client:
        book_id = _add_book(client)["id"]
        client.post(f"/books/{book_id}/checkout", json={"who": "alice"})
        review = _add_review(client, book_id)

        assert client.get(f"/books/{book_id}").json()["history"][0]["who"] == "alice"
        assert client.get(f"/books/{book_id}/reviews/{review['id']}").status_code == 200


def test_settings_drive_pagination_defaults():
    cfg = Settings(datastore="memory", default_limit=2, default_offset=0, default_maximum_limit=5)
    with TestClient(create_app(cfg=cfg)) as client:
        body = client.get("/books").json()
        assert body["limit"] == 2
        assert client.get("/books", params={"limit": "6"}).status_code == 400


def test_injected_paginator_wins_over_settings():
    cfg = Settings(datastore="memory", default_limit=2)
    app = create_app(store=InMemoryDataStore(), paginator=Paginator(7, 0, 10), cfg=cfg)
    with TestClient(app) as client:
        assert client.get("/books").json()["limit"] == 7


def test_sqlite_app_offset_past_the_end(tmp_path):
    cfg = Settings(datastore="sqlite", database_file=str(tmp_path / "api.db"))
    with TestClient(create_app(cfg=cfg)) as client:
        book_id = _add_book(client)["id"]
        huge = str(2**63)

        response = client.get("/books", params={"offset": huge})
        assert response.status_code == 200
        assert response.json()["items"] == []
        assert response.json()["total_count"] == 1

        response = client.get(f"/books/{book_id}/reviews", params={"offset": huge})
        assert response.status_code == 200
        assert response.json()["count"] == 0
