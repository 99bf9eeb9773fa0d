"""Data models for books."""
import re
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional

from bookcatalog.errors import ValidationError

# Node property names
ISBN = "book:isbn"
TITLE = "book:title"
AUTHOR = "book:author"
PUBLICATION_DATE = "book:publicationDate"
FIRST_PUBLICATION_DATE = "book:firstPublicationDate"
SHORT_DESCRIPTION = "book:shortDescription"

BOOK_TYPE = "book:Book"
ISBN_LENGTH = 13

_NON_DIGITS = re.compile(r"\D")


def normalize_isbn(raw: str) -> str:
    """Remove every non-digit character from an ISBN."""
    return _NON_DIGITS.sub("", raw)


def _is_blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


@dataclass
class Book:
    """
    A catalog entry keyed by its ISBN.

    ``isbn`` is normalized on every assignment and ``author`` is never
    ``None``; both rules are enforced in ``__setattr__`` so they hold for
    the constructor as well as later updates.
    """
    isbn: Optional[str] = None
    title: Optional[str] = None
    author: List[str] = field(default_factory=list)  # print-priority order
    publication_date: Optional[date] = None
    first_publication_date: Optional[date] = None
    short_description: Optional[str] = None

    def __setattr__(self, name, value):
        if name == "isbn" and value is not None:
            value = normalize_isbn(str(value))
        elif name == "author":
            if value is None:
                value = []
            elif isinstance(value, str):
                value = [value]
            else:
                value = list(value)
        super().__setattr__(name, value)

    @property
    def authors_str(self) -> str:
        """Format authors as comma-separated string."""
        return ", ".join(self.author) if self.author else "Unknown"

    @classmethod
    def from_node(cls, node) -> "Book":
        """Create a Book from a previously saved book node."""
        book = cls()
        book.load(node)
        return book

    def load(self, node) -> None:
        """
        Copy book data from a node.

        Properties missing on the node leave the matching field unset.

        Args:
            node: Node holding ``book:*`` properties
        """
        self.isbn = node.get_property(ISBN)

        if node.has_property(TITLE):
            self.title = node.get_property(TITLE)
        if node.has_property(AUTHOR):
            self.author = node.get_property(AUTHOR)
        if node.has_property(PUBLICATION_DATE):
            self.publication_date = node.get_property(PUBLICATION_DATE)
        if node.has_property(FIRST_PUBLICATION_DATE):
            self.first_publication_date = node.get_property(FIRST_PUBLICATION_DATE)
        if node.has_property(SHORT_DESCRIPTION):
            self.short_description = node.get_property(SHORT_DESCRIPTION)

    def validate_for_save(self) -> None:
        """
        Check the rules a book must satisfy before it is written.

        Raises:
            ValidationError: If the ISBN is blank or not 13 digits
        """
        if _is_blank(self.isbn):
            raise ValidationError("ISBN field is required to save a book")
        if len(self.isbn) != ISBN_LENGTH:
            raise ValidationError(
                f"ISBN field must be {ISBN_LENGTH} digits, got {len(self.isbn)}"
            )

    def write_to(self, node, replace: bool = False) -> None:
        """
        Store book data as properties of ``node``.

        Only non-blank fields are written, so values already stored for
        omitted fields survive (merge). With ``replace=True`` the stored
        values of omitted fields are removed instead.

        Args:
            node: Entry node for this book
            replace: Clear properties for fields that are not set
        """
        node.set_property(ISBN, self.isbn)

        values = {
            TITLE: None if _is_blank(self.title) else self.title,
            AUTHOR: list(self.author) if self.author else None,
            PUBLICATION_DATE: self.publication_date,
            FIRST_PUBLICATION_DATE: self.first_publication_date,
            SHORT_DESCRIPTION: None if _is_blank(self.short_description) else self.short_description,
        }
        for name, value in values.items():
            if value is not None:
                node.set_property(name, value)
            elif replace and node.has_property(name):
                node.remove_property(name)

    def to_dict(self) -> dict:
        """JSON-friendly representation (dates as ISO strings)."""
        return {
            "isbn": self.isbn,
            "title": self.title,
            "author": list(self.author),
            "publication_date": self.publication_date.isoformat() if self.publication_date else None,
            "first_publication_date": (
                self.first_publication_date.isoformat() if self.first_publication_date else None
            ),
            "short_description": self.short_description,
        }
