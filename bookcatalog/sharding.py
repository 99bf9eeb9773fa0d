"""
Sharded storage of books under a catalog root node.

Each book lives at ``root/<shard key>/<isbn>``. The shard key is the last
three digits of the ISBN; shard folders are created on the first insert
that needs them and pruned when their last book is removed.

Note: almost all 13-digit ISBNs share their leading digits, which is why
the trailing ones are used. The partition is still uneven. Whatever the
derivation, reads and writes must go through ``shard_key``.
"""
import logging
from typing import List, Optional

from bookcatalog.models import BOOK_TYPE, Book, normalize_isbn
from bookcatalog.nodes import Node

logger = logging.getLogger(__name__)

SHARD_KEY_LENGTH = 3


def shard_key(isbn: str) -> str:
    """Short folder key for a normalized ISBN."""
    return isbn[-SHARD_KEY_LENGTH:]


def find_folder(root: Node, isbn: str) -> Optional[Node]:
    """Find, but do not create, the shard folder for ``isbn``."""
    key = shard_key(isbn)
    if root.has_child(key):
        return root.get_child(key)
    return None


def get_or_create_folder(root: Node, isbn: str) -> Node:
    """Find or create the shard folder for ``isbn``."""
    key = shard_key(isbn)
    folder = root.ensure_child(key)
    logger.debug(f"Using shard folder {folder.path}")
    return folder


def get_or_create_entry(folder: Node, isbn: str) -> Node:
    """Find or create the book node for ``isbn`` inside its shard folder."""
    return folder.ensure_child(isbn, BOOK_TYPE)


def upsert(root: Node, book: Book, replace: bool = False) -> Node:
    """
    Create or update the node for ``book``.

    Fields left blank on ``book`` keep their stored values unless
    ``replace`` is set. Nothing is written when validation fails.

    Args:
        root: Catalog root node
        book: Book to store
        replace: Remove stored values for fields the book leaves blank

    Returns:
        The book's entry node

    Raises:
        ValidationError: If the book has no valid ISBN
    """
    book.validate_for_save()

    folder = get_or_create_folder(root, book.isbn)
    entry = get_or_create_entry(folder, book.isbn)
    book.write_to(entry, replace=replace)
    return entry


def fetch_by_key(root: Node, isbn: str) -> Optional[Book]:
    """Load a book by ISBN, or ``None`` if the catalog doesn't know it."""
    isbn = normalize_isbn(isbn)
    if not isbn:
        return None

    folder = find_folder(root, isbn)
    if folder is None or not folder.has_child(isbn):
        return None
    return Book.from_node(folder.get_child(isbn))


def remove_by_key(root: Node, isbn: str) -> bool:
    """
    Remove a book by ISBN.

    The shard folder is removed as well once it holds no more books.

    Returns:
        True if a book was removed, False if no such book existed
    """
    isbn = normalize_isbn(isbn)
    if not isbn:
        return False

    folder = find_folder(root, isbn)
    if folder is None or not folder.has_child(isbn):
        return False

    folder.remove_child(isbn)
    if root.prune_child(folder.name):
        logger.debug(f"Removed empty shard folder {folder.path}")
    return True


def list_all(root: Node) -> List[Book]:
    """Load every stored book, in no particular order."""
    books = []
    for folder in root.children():
        for entry in folder.children():
            books.append(Book.from_node(entry))
    return books
