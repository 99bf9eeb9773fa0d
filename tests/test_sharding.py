"""Tests for sharded book storage."""
import pytest

from bookcatalog import sharding
from bookcatalog.errors import ValidationError
from bookcatalog.models import BOOK_TYPE, Book


def test_shard_key_last_three_digits():
    assert sharding.shard_key("9780399226908") == "908"


def test_shard_key_short_key():
    assert sharding.shard_key("12") == "12"


def test_upsert_places_book_under_shard(root, caterpillar):
    entry = sharding.upsert(root, caterpillar)

    assert entry.path == "/books/908/9780399226908"
    assert entry.type_tag == BOOK_TYPE
    assert [f.name for f in root.children()] == ["908"]


def test_upsert_then_fetch(root, caterpillar):
    sharding.upsert(root, caterpillar)

    book = sharding.fetch_by_key(root, "9780399226908")
    assert book == caterpillar


def test_fetch_normalizes_key(root, caterpillar):
    """Punctuated ISBNs find the same record."""
    sharding.upsert(root, caterpillar)

    book = sharding.fetch_by_key(root, "978-0399226908")
    assert book is not None
    assert book.title == "The Very Hungry Caterpillar"


def test_upsert_is_idempotent(root, caterpillar):
    sharding.upsert(root, caterpillar)
    sharding.upsert(root, caterpillar)

    folders = list(root.children())
    assert len(folders) == 1
    assert len(list(folders[0].children())) == 1


def test_upsert_twice_merges_fields(root, caterpillar):
    """A second upsert updates set fields and keeps omitted ones."""
    sharding.upsert(root, caterpillar)
    sharding.upsert(root, Book(isbn=caterpillar.isbn, title="Revised"))

    book = sharding.fetch_by_key(root, caterpillar.isbn)
    assert book.title == "Revised"
    assert book.author == ["Eric Carle"]
    assert book.publication_date == caterpillar.publication_date


def test_upsert_replace(root, caterpillar):
    sharding.upsert(root, caterpillar)
    sharding.upsert(root, Book(isbn=caterpillar.isbn, title="Revised"), replace=True)

    book = sharding.fetch_by_key(root, caterpillar.isbn)
    assert book.title == "Revised"
    assert book.author == []
    assert book.short_description is None


@pytest.mark.parametrize("isbn", [None, "", "12345", "978-0399-22690-8-1"])
def test_upsert_invalid_isbn_leaves_store_unchanged(root, isbn):
    with pytest.raises(ValidationError):
        sharding.upsert(root, Book(isbn=isbn, title="Nope"))

    assert not root.has_children()


def test_fetch_missing_does_not_create(root):
    assert sharding.fetch_by_key(root, "9780399226908") is None
    assert not root.has_children()


def test_fetch_missing_in_existing_folder(root, caterpillar):
    sharding.upsert(root, caterpillar)

    # same shard "908", different book
    assert sharding.fetch_by_key(root, "9781111111908") is None
    assert len(list(root.get_child("908").children())) == 1


def test_fetch_blank_key(root):
    assert sharding.fetch_by_key(root, "no digits") is None


def test_shared_shard_keeps_books_apart(root):
    first = Book(isbn="9780399226908", title="First")
    second = Book(isbn="9781234567908", title="Second")
    sharding.upsert(root, first)
    sharding.upsert(root, second)

    assert sharding.find_folder(root, first.isbn).path == sharding.find_folder(root, second.isbn).path
    assert sharding.fetch_by_key(root, first.isbn).title == "First"
    assert sharding.fetch_by_key(root, second.isbn).title == "Second"


def test_get_or_create_folder_idempotent(root):
    first = sharding.get_or_create_folder(root, "9780399226908")
    second = sharding.get_or_create_folder(root, "9780399226908")

    assert first.path == second.path
    assert len(list(root.children())) == 1


def test_get_or_create_entry_idempotent(root):
    folder = sharding.get_or_create_folder(root, "9780399226908")
    sharding.get_or_create_entry(folder, "9780399226908")
    sharding.get_or_create_entry(folder, "9780399226908")

    assert len(list(folder.children())) == 1


def test_find_folder_does_not_create(root):
    assert sharding.find_folder(root, "9780399226908") is None
    assert not root.has_children()


def test_remove_never_inserted(root):
    assert sharding.remove_by_key(root, "9780399226908") is False
    assert not root.has_children()


def test_remove_missing_in_existing_folder(root, caterpillar):
    sharding.upsert(root, caterpillar)

    assert sharding.remove_by_key(root, "9781111111908") is False
    assert sharding.fetch_by_key(root, caterpillar.isbn) is not None


def test_remove_sole_entry_removes_folder(root, caterpillar):
    sharding.upsert(root, caterpillar)

    assert sharding.remove_by_key(root, "978-0399226908") is True
    assert not root.has_children()
    assert sharding.list_all(root) == []


def test_remove_one_of_several_keeps_folder(root):
    sharding.upsert(root, Book(isbn="9780399226908", title="First"))
    sharding.upsert(root, Book(isbn="9781234567908", title="Second"))

    assert sharding.remove_by_key(root, "9780399226908") is True

    folder = sharding.find_folder(root, "9781234567908")
    assert folder is not None
    assert [e.name for e in folder.children()] == ["9781234567908"]
    assert sharding.fetch_by_key(root, "9781234567908").title == "Second"


def test_list_all(root):
    sharding.upsert(root, Book(isbn="9780399226908", title="Caterpillar"))
    sharding.upsert(root, Book(isbn="9780679805274", title="Places"))

    books = sharding.list_all(root)
    assert sorted(b.isbn for b in books) == ["9780399226908", "9780679805274"]
