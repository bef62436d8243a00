from __future__ import annotations

from collections.abc import Iterator

import pytest

from store.db import Database, close_database, open_database
from store.feeds import Feed, save_feed


@pytest.fixture
def db(tmp_path) -> Iterator[Database]:
    database = open_database(tmp_path / "test.db")
    try:
        yield database
    finally:
        close_database(database)


@pytest.fixture
def add_feeds(db):
    def _add(*feeds: Feed) -> None:
        for feed in feeds:
            save_feed(db, feed)

    return _add
