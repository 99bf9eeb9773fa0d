"""Parse and normalize book documents (JSON objects) into Book objects."""
import logging
from datetime import date
from typing import Any, Dict, List, Optional

from bookcatalog.models import Book

logger = logging.getLogger(__name__)


def parse_date(value: Any) -> Optional[date]:
    """
    Parse an ISO date (``YYYY-MM-DD``); a longer timestamp is cut to its date.

    Args:
        value: Date string, ``date`` or ``None``

    Returns:
        The date, or None when missing or unparseable
    """
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        logger.warning(f"Ignoring unparseable date: {value!r}")
        return None


def parse_book(item: Dict[str, Any]) -> Optional[Book]:
    """
    Parse a single book document.

    Both snake_case and camelCase field names are accepted. The ISBN is
    normalized but not validated here; storing the book validates it.

    Args:
        item: Book document

    Returns:
        Book object or None if the document has no ISBN
    """
    if not isinstance(item, dict):
        logger.warning(f"Skipping non-object book document: {type(item).__name__}")
        return None

    isbn = item.get("isbn") or item.get("ISBN")
    if not isbn:
        return None

    author = item.get("author", item.get("authors"))

    return Book(
        isbn=str(isbn),
        title=item.get("title"),
        author=author,
        publication_date=parse_date(item.get("publication_date", item.get("publicationDate"))),
        first_publication_date=parse_date(
            item.get("first_publication_date", item.get("firstPublicationDate"))
        ),
        short_description=item.get("short_description", item.get("shortDescription")),
    )


def parse_books_payload(payload: Any) -> List[Book]:
    """
    Parse a JSON payload holding one book document or a list of them.

    Args:
        payload: Decoded JSON

    Returns:
        List of Book objects (documents without an ISBN are skipped)
    """
    items = payload if isinstance(payload, list) else [payload]
    books = []

    for item in items:
        book = parse_book(item)
        if book:
            books.append(book)
        else:
            logger.warning("Skipping book document without ISBN")

    return books
