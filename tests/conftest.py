"""
Pytest configuration and fixtures for store-sink.

Provides store URLs, connector-style properties and a scripted writer factory
so the sink task can be driven without a live database.
"""

import os

import pytest

from store_sink.errors import RetriableStoreError


class FakeWriter:
    """Writer whose outcomes come from the owning factory's shared script."""

    def __init__(self, factory, config, dialect):
        self.factory = factory
        self.config = config
        self.dialect = dialect
        self.closed = False
        self.close_error = None

    def write(self, records):
        self.factory.write_calls += 1
        if self.factory.script:
            outcome = self.factory.script.pop(0)
            if outcome is not None:
                raise outcome
        self.factory.batches.append(list(records))
        return len(records)

    def close_quietly(self):
        self.closed = True
        if self.close_error is not None:
            raise self.close_error


class FakeWriterFactory:
    """
    Builds FakeWriters and records every construction.

    script: outcomes for successive write() calls across all writers
            (an exception instance to raise, or None for success).
    fail_on_create: exceptions to raise from successive constructions
            (None lets that construction succeed).
    """

    def __init__(self, script=(), fail_on_create=()):
        self.script = list(script)
        self.fail_on_create = list(fail_on_create)
        self.created = []
        self.batches = []
        self.write_calls = 0

    def __call__(self, config, dialect):
        if self.fail_on_create:
            err = self.fail_on_create.pop(0)
            if err is not None:
                raise err
        w = FakeWriter(self, config, dialect)
        self.created.append(w)
        return w

    @property
    def reconstructions(self) -> int:
        return max(0, len(self.created) - 1)


def transient_error(msg="connection reset by peer"):
    """RetriableStoreError chained to a low-level cause, as a driver would produce."""
    try:
        try:
            raise ConnectionResetError("peer closed the socket")
        except ConnectionResetError as e:
            raise RetriableStoreError(msg) from e
    except RetriableStoreError as err:
        return err


@pytest.fixture
def sqlite_url(tmp_path):
    return f"sqlite:///{tmp_path / 'sink.db'}"


@pytest.fixture
def base_props(sqlite_url):
    """Connector-style properties with pacing disabled."""
    return {
        "connection.url": sqlite_url,
        "max.retries": 3,
        "retry.backoff.ms": 250,
        "batch.size": 100,
    }


@pytest.fixture
def writer_factory():
    return FakeWriterFactory()


@pytest.fixture
def make_writer_factory():
    """FakeWriterFactory class, for tests that need a scripted sequence of outcomes."""
    return FakeWriterFactory


@pytest.fixture
def make_transient():
    return transient_error


@pytest.fixture(autouse=True)
def _no_sink_env(monkeypatch):
    """Keep SINK_* variables from the developer's shell out of config tests."""
    for key in list(os.environ):
        if key.upper().startswith("SINK_"):
            monkeypatch.delenv(key, raising=False)
