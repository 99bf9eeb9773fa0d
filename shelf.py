#!/usr/bin/env python3
"""Shelf CLI - sharded book catalog."""
import argparse
import sys
import json
from tabulate import tabulate
from bookcatalog.catalog import Catalog, create_store, sanitize_for_output
from bookcatalog.config import Config
from bookcatalog.errors import ValidationError
from bookcatalog.parse import parse_books_payload
import logging

logger = logging.getLogger(__name__)

EXIT_NOT_FOUND = 1
EXIT_INVALID = 2


def display_books(books, format_type: str):
    """Display books in specified format."""
    if format_type == "table":
        headers = ["ISBN", "Title", "Authors", "Published"]
        rows = [
            [
                book.isbn,
                (book.title or "")[:50] + "..." if len(book.title or "") > 50 else book.title or "",
                book.authors_str[:30] + "..." if len(book.authors_str) > 30 else book.authors_str,
                book.publication_date.isoformat() if book.publication_date else "Unknown",
            ]
            for book in books
        ]
        print("\n" + tabulate(rows, headers=headers, tablefmt="grid"))

    elif format_type == "json":
        print(json.dumps([book.to_dict() for book in books], indent=2))

    elif format_type == "compact":
        for i, book in enumerate(books, 1):
            print(f"{i}. {book.isbn} {book.title or ''} - {book.authors_str}")


def init_schema(args, catalog: Catalog) -> int:
    """Create backing storage."""
    catalog.store.init_schema()
    print("Schema ready")
    return 0


def seed_books(args, catalog: Catalog) -> int:
    """Store the sample books."""
    count = catalog.seed()
    print(f"{count} books created")
    return 0


def list_books(args, catalog: Catalog) -> int:
    """List every stored book."""
    books = catalog.list_all()
    logger.info(f"Found {len(books)} books")
    display_books(books, args.format)
    return 0


def get_book(args, catalog: Catalog) -> int:
    """Show a single book."""
    book = catalog.fetch_by_key(args.isbn)
    if book is None:
        print(f"No book found with ISBN: {sanitize_for_output(args.isbn)}")
        return EXIT_NOT_FOUND

    if args.format == "json":
        print(json.dumps(book.to_dict(), indent=2))
    else:
        rows = [[key, value] for key, value in book.to_dict().items()]
        print("\n" + tabulate(rows, tablefmt="grid"))
    return 0


def put_books(args, catalog: Catalog) -> int:
    """Store books read from a JSON file."""
    if args.file == "-":
        payload = json.load(sys.stdin)
    else:
        with open(args.file, encoding="utf-8") as f:
            payload = json.load(f)

    # Documents are applied in order, so repeated ISBNs merge field by field
    books = parse_books_payload(payload)
    count = catalog.upsert_many(books, replace=args.replace)
    print(f"{count} books stored")
    return 0


def delete_book(args, catalog: Catalog) -> int:
    """Remove a book."""
    isbn = sanitize_for_output(args.isbn)
    if catalog.remove_by_key(args.isbn):
        print(f"Book removed with ISBN: {isbn}")
        return 0
    print(f"No book found with ISBN: {isbn}")
    return EXIT_NOT_FOUND


def search_catalog(args, catalog: Catalog) -> int:
    """Search book fields for text."""
    books = catalog.search(args.query)
    logger.info(f"Found {len(books)} books")
    display_books(books, args.format)
    return 0


def show_stats(args, catalog: Catalog) -> int:
    """Show catalog statistics."""
    stats = catalog.stats()

    print("\n" + "=" * 50)
    print("CATALOG STATISTICS")
    print("=" * 50)
    print(f"Total books stored: {stats['total_books']}")
    print(f"Shard folders: {stats['shard_folders']}")
    print(f"Largest shard: {stats['largest_shard']}")
    print("=" * 50 + "\n")
    return 0


COMMANDS = {
    "init": init_schema,
    "seed": seed_books,
    "list": list_books,
    "get": get_book,
    "put": put_books,
    "delete": delete_book,
    "search": search_catalog,
    "stats": show_stats,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Shelf - sharded book catalog CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Create the schema and load the sample books
  %(prog)s init
  %(prog)s seed

  # Store books from a JSON file, replacing omitted fields
  %(prog)s put books.json --replace

  # Look up, search and remove
  %(prog)s get 978-0399226908
  %(prog)s search "tacos" --format compact
  %(prog)s delete 9780399226908
        """
    )
    parser.add_argument("--backend", choices=["postgres", "memory"], help="Node store (default: STORE_BACKEND)")

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    subparsers.add_parser("init", help="Create database schema")
    subparsers.add_parser("seed", help="Store the sample books")

    list_parser = subparsers.add_parser("list", help="List all books")
    list_parser.add_argument("--format", choices=["table", "json", "compact"], default="table", help="Output format")

    get_parser = subparsers.add_parser("get", help="Show one book")
    get_parser.add_argument("isbn", help="ISBN (separators allowed)")
    get_parser.add_argument("--format", choices=["table", "json"], default="table", help="Output format")

    put_parser = subparsers.add_parser("put", help="Store books from a JSON file")
    put_parser.add_argument("file", help="JSON file with a book object or array ('-' for stdin)")
    put_parser.add_argument("--replace", action="store_true", help="Clear fields missing from the documents")

    delete_parser = subparsers.add_parser("delete", help="Remove a book")
    delete_parser.add_argument("isbn", help="ISBN (separators allowed)")

    search_parser = subparsers.add_parser("search", help="Search books")
    search_parser.add_argument("query", help="Text to look for in any field")
    search_parser.add_argument("--format", choices=["table", "json", "compact"], default="table", help="Output format")

    subparsers.add_parser("stats", help="Show catalog statistics")

    return parser


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    config = Config()
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    try:
        with create_store(config, args.backend) as store:
            catalog = Catalog(store, root_name=config.CATALOG_ROOT)
            status = COMMANDS[args.command](args, catalog)

    except ValidationError as e:
        logger.warning(f"Invalid book: {e}")
        sys.exit(EXIT_INVALID)
    except KeyboardInterrupt:
        logger.info("\nInterrupted by user")
        sys.exit(0)
    except Exception as e:
        logger.error(f"Error: {e}", exc_info=True)
        sys.exit(1)

    sys.exit(status)


if __name__ == "__main__":
    main()
