"""Shared fixtures."""
from datetime import date

import pytest

from bookcatalog.catalog import Catalog
from bookcatalog.models import Book
from bookcatalog.nodes import MemoryNodeStore


@pytest.fixture
def store():
    """Fresh in-memory node store."""
    return MemoryNodeStore()


@pytest.fixture
def session(store):
    """Open session on the store, closed after the test."""
    with store.session() as session:
        yield session


@pytest.fixture
def root(session):
    """Catalog root node inside the open session."""
    return session.root().ensure_child("books")


@pytest.fixture
def catalog(store):
    return Catalog(store, root_name="books")


@pytest.fixture
def caterpillar():
    return Book(
        isbn="978-0399226908",
        title="The Very Hungry Caterpillar",
        author=["Eric Carle"],
        publication_date=date(1994, 3, 23),
        short_description="A caterpillar eats through a lot of food.",
    )
