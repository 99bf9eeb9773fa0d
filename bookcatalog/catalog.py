"""
Caller-facing catalog operations.

Every operation runs in its own store session: the session is opened,
the work is done and saved, and the session is released on every exit
path. Errors from the store propagate unchanged.
"""
import html
import logging
from datetime import date
from typing import Dict, Iterable, List, Optional

from bookcatalog import sharding
from bookcatalog.config import Config
from bookcatalog.database import PostgresNodeStore
from bookcatalog.models import Book, normalize_isbn
from bookcatalog.nodes import MemoryNodeStore, Node, NodeStore, Session
from bookcatalog.search import search_books

logger = logging.getLogger(__name__)

DRAGONS_DESC = (
    "Dragons love tacos. They love chicken tacos, beef tacos, great big tacos, "
    "and teeny tiny tacos. So if you want to lure a bunch of dragons to your party, "
    "you should definitely serve tacos. Buckets and buckets of tacos. Unfortunately, "
    "where there are tacos, there is also salsa. And if a dragon accidentally eats "
    "spicy salsa . . . oh, boy. You're in red-hot trouble."
)


def sample_books() -> List[Book]:
    """Three demo books."""
    return [
        Book(
            isbn="978-0399226908",
            title="The Very Hungry Caterpillar",
            author=["Eric Carle"],
            publication_date=date(1994, 3, 23),
            short_description=(
                "THE all-time classic picture book, from generation to generation, "
                "sold somewhere in the world every 30 seconds!"
            ),
        ),
        Book(
            isbn="978-0803736801",
            title="Dragons Love Tacos",
            author=["Adam Rubin", "Daniel Salmieri"],
            publication_date=date(2012, 6, 20),
            short_description=DRAGONS_DESC,
        ),
        Book(
            isbn="978-0679805274",
            title="Oh, The Places You'll Go!",
            author=["Dr. Seuss"],
            publication_date=date(1990, 1, 22),
            short_description=(
                "Dr. Seuss's wonderfully wise Oh, the Places You'll Go! is the perfect "
                "send-off for grads, from nursery school, high school, college, and beyond!"
            ),
        ),
    ]


def sanitize_for_output(text: str) -> str:
    """Escape markup characters in user input before echoing it back."""
    return html.escape(text or "")


def create_store(config: Config, backend: Optional[str] = None) -> NodeStore:
    """Build the node store selected by ``backend`` or the configuration."""
    backend = (backend or config.STORE_BACKEND).lower()
    if backend == "memory":
        return MemoryNodeStore()
    if backend == "postgres":
        return PostgresNodeStore(
            config.DATABASE_URL,
            min_conn=config.DB_MIN_CONN,
            max_conn=config.DB_MAX_CONN,
        )
    raise ValueError(f"Unknown store backend: {backend!r}")


class Catalog:
    """CRUD and search over books kept in a sharded node tree."""

    def __init__(self, store: NodeStore, root_name: str = "books"):
        """
        Args:
            store: Node store holding the catalog
            root_name: Name of the catalog root under the store root
        """
        self.store = store
        self.root_name = root_name

    def _root(self, session: Session, create: bool = False) -> Optional[Node]:
        store_root = session.root()
        if create:
            return store_root.ensure_child(self.root_name)
        if store_root.has_child(self.root_name):
            return store_root.get_child(self.root_name)
        return None

    def upsert(self, book: Book, replace: bool = False) -> None:
        """Create or update a single book."""
        self.upsert_many([book], replace=replace)

    def upsert_many(self, books: Iterable[Book], replace: bool = False) -> int:
        """
        Store several books in one session.

        All books are validated before anything is written, so an invalid
        book leaves the catalog unchanged.

        Returns:
            Number of books stored
        """
        books = list(books)
        for book in books:
            book.validate_for_save()

        with self.store.session() as session:
            root = self._root(session, create=True)
            for book in books:
                sharding.upsert(root, book, replace=replace)
            session.save()

        logger.info(f"Stored {len(books)} books")
        return len(books)

    def fetch_by_key(self, isbn: str) -> Optional[Book]:
        """Look up a book by ISBN; ``None`` when unknown."""
        with self.store.session() as session:
            root = self._root(session)
            if root is None:
                return None
            return sharding.fetch_by_key(root, isbn)

    def remove_by_key(self, isbn: str) -> bool:
        """Remove a book by ISBN; False when there was nothing to remove."""
        with self.store.session() as session:
            root = self._root(session)
            if root is None:
                return False
            removed = sharding.remove_by_key(root, isbn)
            if removed:
                session.save()
                logger.info(f"Removed book {normalize_isbn(isbn)}")
            return removed

    def list_all(self) -> List[Book]:
        """Every stored book, in no particular order."""
        with self.store.session() as session:
            root = self._root(session)
            if root is None:
                return []
            return sharding.list_all(root)

    def search(self, text: str) -> List[Book]:
        """Books with any field containing ``text``."""
        with self.store.session() as session:
            root = self._root(session)
            if root is None:
                return []
            return search_books(session, root, text)

    def seed(self) -> int:
        """Store the sample books."""
        return self.upsert_many(sample_books())

    def stats(self) -> Dict[str, int]:
        """Counts of books and shard folders."""
        with self.store.session() as session:
            root = self._root(session)
            folders = list(root.children()) if root is not None else []
            sizes = [sum(1 for _ in folder.children()) for folder in folders]
            return {
                "total_books": sum(sizes),
                "shard_folders": len(folders),
                "largest_shard": max(sizes, default=0),
            }
