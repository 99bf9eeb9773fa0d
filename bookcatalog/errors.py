"""Exception types raised by the catalog and its node stores."""


class CatalogError(Exception):
    """Base class for catalog errors."""


class ValidationError(CatalogError, ValueError):
    """A book failed its required-field rules and was not written."""


class StoreError(CatalogError):
    """The underlying node store failed (I/O, conflict, missing node)."""
