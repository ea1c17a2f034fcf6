"""
Pytest fixtures for cafepos backend tests.

Every app gets its own in-memory SQLite database and a mongomock client
standing in for the document store. `any_app` / `store` run a test against
both primary backends; `app` is always relational (with the replica
attached) for replication tests.
"""

import mongomock
import pytest
from bson import ObjectId
from pymongo.errors import OperationFailure

from cafepos import create_app
from cafepos.extensions import db
from cafepos.identity import LocalId, RemoteId
from cafepos.services import catalog_service, customer_service
from cafepos.storage import get_storage

# Small membership batches so chunking is exercised with a handful of rows
TEST_CONFIG = {
    "TESTING": True,
    "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
    "SQLALCHEMY_TRACK_MODIFICATIONS": False,
    "SYNC_ENABLED": False,
    "DOCUMENT_IN_BATCH_SIZE": 3,
    "RELATIONAL_IN_BATCH_SIZE": 3,
    "DEFAULT_TAX_RATE_BPS": 0,
    "BUSINESS_TIMEZONE": "UTC",
}


def _build_app(backend: str, mongo_client):
    app = create_app({**TEST_CONFIG, "STORAGE_BACKEND": backend}, mongo_client=mongo_client)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def mongo_client():
    return mongomock.MongoClient()


@pytest.fixture(scope='function')
def app(mongo_client):
    """Relational primary with the document replica and sync queue."""
    yield from _build_app("relational", mongo_client)


@pytest.fixture(scope='function', params=["relational", "document"])
def any_app(request, mongo_client):
    """Same test against both primary backends."""
    yield from _build_app(request.param, mongo_client)


@pytest.fixture(scope='function')
def store(any_app):
    return get_storage()


@pytest.fixture(scope='function')
def client(app):
    return app.test_client()


@pytest.fixture(scope='function')
def make_product():
    """Factory: make_product(name, price_cents=..., **flags) -> row."""
    def _make(name="Espresso", price_cents=250, **values):
        values.setdefault("is_sellable", True)
        return catalog_service.create_product({"name": name, "price_cents": price_cents, **values})

    return _make


@pytest.fixture(scope='function')
def make_customer():
    def _make(name="Asha", **values):
        return customer_service.create_customer({"name": name, **values})

    return _make


def missing_id(store):
    """An identifier of the right kind for the backend that matches nothing."""
    if store.kind == "relational":
        return LocalId(987654)
    return RemoteId(str(ObjectId()))


@pytest.fixture(scope='function')
def missing_identifier(store):
    return missing_id(store)


class FlakyDatabase:
    """
    Wraps a mongomock database so replica calls can be made to fail.

    Set `error` to an exception instance to raise it from every call, or
    `reject` to a predicate (method, args) -> bool to fail selected calls
    with OperationFailure.
    """

    def __init__(self, inner):
        self._inner = inner
        self.error = None
        self.reject = None
        self.calls = []

    def check(self, method, args):
        self.calls.append(method)
        if self.error is not None:
            raise self.error
        if self.reject is not None and self.reject(method, args):
            raise OperationFailure(f"rejected {method}")

    def command(self, *args, **kwargs):
        self.check("command", args)
        return self._inner.command(*args, **kwargs)

    def __getitem__(self, name):
        return FlakyCollection(self._inner[name], self)


class FlakyCollection:
    def __init__(self, inner, owner):
        self._inner = inner
        self._owner = owner

    def __getattr__(self, name):
        attr = getattr(self._inner, name)
        if not callable(attr):
            return attr

        def call(*args, **kwargs):
            self._owner.check(name, args)
            return attr(*args, **kwargs)

        return call


@pytest.fixture(scope='function')
def flaky_replica(app):
    """Replica of the relational app with its database wrapped in FlakyDatabase."""
    replica = app.extensions["cafepos"]["replica"]
    flaky = FlakyDatabase(replica.database)
    replica.database = flaky
    return flaky
