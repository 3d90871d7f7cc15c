"""
Pytest fixtures for possync backend tests.

Each test gets a fresh app on an in-memory SQLite remote store, an
in-memory device cache and a manually switched connectivity probe.
"""

import pytest

from possync import create_app
from possync.config import TestConfig
from possync.errors import NetworkUnavailable, RemoteRejected
from possync.extensions import db
from possync.services.auth_backend import SqlAuthBackend
from possync.services.connectivity import StaticConnectivityProbe
from possync.services.local_cache import LocalCache, MemoryKeyValueStore


@pytest.fixture()
def probe():
    return StaticConnectivityProbe(online=True)


@pytest.fixture()
def cache():
    return LocalCache(MemoryKeyValueStore())


@pytest.fixture()
def app(probe, cache):
    """Create application for testing."""
    app = create_app(
        TestConfig,
        probe=probe,
        cache=cache,
        # bcrypt's minimum cost keeps the auth tests fast
        auth_backend=SqlAuthBackend(bcrypt_rounds=4),
    )
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture()
def engine(app):
    return app.extensions["possync"]


@pytest.fixture()
def offline(probe):
    """Switch the probe off for the test body."""
    probe.set_online(False)
    return probe


@pytest.fixture()
def make_product(engine):
    """Create a product through the remote store while online."""
    def _make(name="Soap", price="25.00", stock=10, **extra):
        return engine.products.create_product({"name": name, "price": price, "stock": stock, **extra})
    return _make


def raiser(exc):
    """Stand-in for a remote call that always fails with ``exc``."""
    def _raise(*args, **kwargs):
        raise exc
    return _raise


def network_down():
    return raiser(NetworkUnavailable("Remote store is unreachable"))


def rejected(message="Remote store rejected the request"):
    return raiser(RemoteRejected(message))
