"""Free-text search over the catalog."""
import logging
from typing import List

from bookcatalog.models import ISBN, Book
from bookcatalog.nodes import Node, Session

logger = logging.getLogger(__name__)


def search_books(session: Session, root: Node, text: str) -> List[Book]:
    """
    Find books with any field containing ``text``.

    The store matches ``text`` literally; shard folders are excluded by
    requiring the ISBN property.

    Args:
        session: Open store session
        root: Catalog root node
        text: Untrusted query string

    Returns:
        Matching books, possibly empty and in no particular order
    """
    text = (text or "").strip()
    if not text:
        return []

    nodes = session.search(root, text, require_property=ISBN)
    logger.info(f"Search matched {len(nodes)} books")
    return [Book.from_node(node) for node in nodes]
