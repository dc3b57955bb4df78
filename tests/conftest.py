"""Common test fixtures for the link maintainer."""
import logging

import pytest

from notelinks.config import config
from notelinks.observability import metrics
from notelinks.services.maintainer import LinkMaintainer
from notelinks.storage.index_store import LinkIndexStore
from tests.fakes import FakeClock, FakeNoteStore


@pytest.fixture
def test_config(tmp_path, monkeypatch):
    """Point the global config at temp paths (auto-restored even on crash)."""
    monkeypatch.setattr(config, "base_dir", tmp_path)
    monkeypatch.setattr(config, "database_path", tmp_path / "db" / "links.db")
    monkeypatch.setattr(config, "folder_path", tmp_path / "notes")
    monkeypatch.setattr(config, "log_dir", tmp_path / "logs")
    monkeypatch.setattr(config, "query_parameter_limit", 999)
    yield config


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def note_store(clock):
    return FakeNoteStore(clock)


@pytest.fixture
def index_store(test_config):
    """Link index on a real SQLite file."""
    store = LinkIndexStore.open(test_config.get_db_url())
    yield store
    store.dispose()


@pytest.fixture
def index(index_store):
    """A LinkIndex inside a transaction that commits after the test."""
    with index_store.begin() as link_index:
        yield link_index


@pytest.fixture
def maintainer(note_store, index_store, clock):
    return LinkMaintainer(note_store, index_store, clock=clock, report_title="Broken Links")


@pytest.fixture(autouse=True)
def _reset_metrics():
    metrics.reset()
    yield


@pytest.fixture
def notelinks_logger():
    """Start without package handlers; restore them and the level after."""
    logger = logging.getLogger("notelinks")
    handlers, level = list(logger.handlers), logger.level
    logger.handlers = []
    yield logger
    for handler in logger.handlers:
        if handler not in handlers:
            handler.close()
    logger.handlers = handlers
    logger.setLevel(level)
