import pytest
from fastapi.testclient import TestClient

from api import create_app
from book import Book
from context import RequestContext
from database import SQLiteDataStore
from datastore import InMemoryDataStore
from pagination import Paginator


@pytest.fixture
def ctx():
    return RequestContext(request_id="test-request")


@pytest.fixture
def memory_store():
    return InMemoryDataStore()


@pytest.fixture
def sqlite_store(tmp_path, request, ctx):
    # Unique database file per test
    db_file = str(tmp_path / f"test_{request.node.name}.db")
    store = SQLiteDataStore(db_file)
    store.init(ctx)
    yield store
    store.close(ctx)


@pytest.fixture(params=["memory", "sqlite"])
def store(request):
    """Run a test against every data store implementation."""
    return request.getfixturevalue(f"{request.param}_store")


@pytest.fixture
def paginator():
    return Paginator(default_limit=20, default_offset=0, default_maximum_limit=1000)


@pytest.fixture
def client(memory_store, paginator):
    app = create_app(store=memory_store, paginator=paginator)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def kindred():
    book = Book(title="Kindred", author="Octavia E. Butler")
    book.assign_id("kindred-1")
    return book
