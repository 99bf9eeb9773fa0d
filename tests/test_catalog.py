"""Tests for caller-facing catalog operations."""
import pytest

from bookcatalog.catalog import Catalog, create_store, sample_books, sanitize_for_output
from bookcatalog.config import Config
from bookcatalog.errors import ValidationError
from bookcatalog.models import Book
from bookcatalog.nodes import MemoryNodeStore


def test_upsert_then_fetch_with_punctuation(catalog, caterpillar):
    catalog.upsert(caterpillar)

    book = catalog.fetch_by_key("978-0399226908")
    assert book is not None
    assert book.title == "The Very Hungry Caterpillar"
    assert book == caterpillar


def test_fetch_on_empty_store(catalog):
    assert catalog.fetch_by_key("9780399226908") is None
    assert catalog.list_all() == []
    assert catalog.search("anything") == []


def test_list_all_returns_both(catalog):
    catalog.upsert(Book(isbn="9780399226908", title="The Very Hungry Caterpillar"))
    catalog.upsert(Book(isbn="9780679805274", title="Oh, The Places You'll Go!"))

    isbns = {b.isbn for b in catalog.list_all()}
    assert isbns == {"9780399226908", "9780679805274"}


def test_remove_sole_entry_leaves_no_folders(catalog, caterpillar):
    catalog.upsert(caterpillar)

    assert catalog.remove_by_key(caterpillar.isbn) is True
    assert catalog.list_all() == []
    assert catalog.stats()["shard_folders"] == 0


def test_remove_never_inserted(catalog):
    assert catalog.remove_by_key("9780399226908") is False


def test_invalid_book_in_batch_writes_nothing(catalog, caterpillar):
    with pytest.raises(ValidationError):
        catalog.upsert_many([caterpillar, Book(isbn="123")])

    assert catalog.list_all() == []


def test_search(catalog):
    catalog.seed()

    results = catalog.search("Dragons")
    assert [b.title for b in results] == ["Dragons Love Tacos"]
    assert catalog.search("nonexistentxyz") == []


def test_search_blank_query(catalog):
    catalog.seed()
    assert catalog.search("   ") == []


def test_search_treats_wildcards_literally(catalog):
    catalog.seed()
    assert catalog.search("%") == []


def test_seed_and_stats(catalog):
    assert catalog.seed() == 3
    assert catalog.stats() == {"total_books": 3, "shard_folders": 3, "largest_shard": 1}


def test_seed_is_idempotent(catalog):
    catalog.seed()
    catalog.seed()
    assert len(catalog.list_all()) == 3


def test_sample_books_are_valid():
    for book in sample_books():
        book.validate_for_save()


def test_sanitize_for_output():
    assert sanitize_for_output("<script>&") == "&lt;script&gt;&amp;"
    assert sanitize_for_output(None) == ""


def test_catalogs_share_store():
    store = MemoryNodeStore()
    Catalog(store).upsert(Book(isbn="9780399226908", title="Shared"))

    assert Catalog(store).fetch_by_key("9780399226908").title == "Shared"
    assert Catalog(store, root_name="other").fetch_by_key("9780399226908") is None


def test_create_store_memory():
    assert isinstance(create_store(Config(), "memory"), MemoryNodeStore)


def test_create_store_unknown_backend():
    with pytest.raises(ValueError):
        create_store(Config(), "mongo")


def test_search_matches_field_text_only(catalog):
    catalog.seed()

    assert catalog.search("date") == []
    assert [b.title for b in catalog.search("Salmieri")] == ["Dragons Love Tacos"]
    assert [b.title for b in catalog.search("1994-03")] == ["The Very Hungry Caterpillar"]
