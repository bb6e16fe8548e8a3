"""
Pytest configuration for mongo-uri-doctor tests.

This file ensures that the src directory is in the Python path so that tests
can import from mongo_uri_doctor, isolates the tests from any local .env file,
and provides a fake pymongo client so no test needs a real database.
"""
import sys
import os
from pathlib import Path

import pytest

# Keep a developer's .env out of the tests (load_dotenv never overrides)
os.environ["MONGO_URI"] = ""
os.environ["CORS_ORIGINS"] = "http://localhost:3000"
os.environ["PROBE_RATE_LIMIT"] = "1000/minute"
os.environ["SHOW_SECRETS"] = "false"

# Add src directory to Python path
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))


class FakeDatabase:
    def __init__(self, name, collections):
        self.name = name
        self._collections = collections

    def list_collection_names(self):
        return list(self._collections)


class FakeAdmin:
    def __init__(self, client):
        self.client = client

    def command(self, name):
        self.client.commands.append(name)
        if self.client.error is not None:
            raise self.client.error
        return {"ok": 1.0}


class FakeMongoClient:
    """Stands in for pymongo.MongoClient; records what the prober did with it."""

    def __init__(self, uri, error=None, close_error=None, **options):
        self.uri = uri
        self.options = options
        self.error = error
        self.close_error = close_error
        self.commands = []
        self.closed = False
        self.admin = FakeAdmin(self)

    def list_database_names(self):
        return ["admin", "full_funnel"]

    def get_default_database(self, default=None):
        return FakeDatabase(default, ["campaigns", "events"])

    def close(self):
        self.closed = True
        if self.close_error is not None:
            raise self.close_error


class FakeClientFactory:
    """
    Callable used as ConnectionProber(client_factory=...).

    errors maps a substring of the candidate URI to the exception the client
    raises on its first command; construct_errors does the same for the
    constructor itself (the way MongoClient rejects a bad URI or SRV record).
    """

    def __init__(self, errors=None, construct_errors=None, close_error=None):
        self.errors = errors or {}
        self.construct_errors = construct_errors or {}
        self.close_error = close_error
        self.clients = []
        self.calls = []

    def _match(self, table, uri):
        for marker, error in table.items():
            if marker in uri:
                return error
        return None

    def __call__(self, uri, **options):
        self.calls.append(uri)
        construct_error = self._match(self.construct_errors, uri)
        if construct_error is not None:
            raise construct_error
        client = FakeMongoClient(
            uri,
            error=self._match(self.errors, uri),
            close_error=self.close_error,
            **options
        )
        self.clients.append(client)
        return client


@pytest.fixture
def fake_factory():
    """Client factory whose clients always connect"""
    return FakeClientFactory()


@pytest.fixture
def make_factory():
    """Build a client factory with scripted failures"""
    return FakeClientFactory
