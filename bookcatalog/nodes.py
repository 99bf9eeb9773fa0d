"""Hierarchical node store contract and an in-memory implementation."""
import copy
import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import date
from typing import Any, Dict, Iterator, List, Optional, Tuple

from bookcatalog.errors import StoreError

logger = logging.getLogger(__name__)


class Node(ABC):
    """A named node with typed properties and ordered, named children."""

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @property
    @abstractmethod
    def path(self) -> str:
        ...

    @property
    @abstractmethod
    def type_tag(self) -> Optional[str]:
        ...

    @abstractmethod
    def has_child(self, name: str) -> bool:
        ...

    @abstractmethod
    def get_child(self, name: str) -> "Node":
        """Return the named child; raises StoreError when it is missing."""

    @abstractmethod
    def add_child(self, name: str, type_tag: Optional[str] = None) -> "Node":
        """Create a child; raises StoreError when the name is taken."""

    @abstractmethod
    def ensure_child(self, name: str, type_tag: Optional[str] = None) -> "Node":
        """Return the named child, creating it first if it does not exist."""

    @abstractmethod
    def remove_child(self, name: str) -> None:
        """Remove the named child and its whole subtree."""

    @abstractmethod
    def prune_child(self, name: str) -> bool:
        """Remove the named child only if it has no children of its own."""

    @abstractmethod
    def children(self) -> Iterator["Node"]:
        ...

    def has_children(self) -> bool:
        return next(iter(self.children()), None) is not None

    @abstractmethod
    def get_property(self, name: str) -> Any:
        """Return the property value, or ``None`` when it is not set."""

    @abstractmethod
    def set_property(self, name: str, value: Any) -> None:
        ...

    @abstractmethod
    def has_property(self, name: str) -> bool:
        ...

    @abstractmethod
    def remove_property(self, name: str) -> None:
        ...

    def __repr__(self):
        return f"<{type(self).__name__} {self.path}>"


class Session(ABC):
    """One logical connection to a node store."""

    @abstractmethod
    def root(self) -> Node:
        ...

    @abstractmethod
    def search(self, scope: Node, text: str, require_property: str) -> List[Node]:
        """
        Find descendants of ``scope`` with a property value containing ``text``.

        Only nodes that carry ``require_property`` are returned.
        """

    @abstractmethod
    def save(self) -> None:
        ...

    @abstractmethod
    def rollback(self) -> None:
        ...

    @abstractmethod
    def close(self) -> None:
        ...


class NodeStore(ABC):
    """A store handing out sessions."""

    @abstractmethod
    def open_session(self) -> Session:
        ...

    @contextmanager
    def session(self) -> Iterator[Session]:
        """
        Scoped session: rolled back on error, always closed.

        Changes are only kept if ``save()`` is called before the block ends.
        """
        session = self.open_session()
        try:
            yield session
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def init_schema(self) -> None:
        """Prepare backing storage; nothing to do by default."""

    def close(self) -> None:
        """Release backing resources."""

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()


def property_text(value: Any) -> str:
    """Render a property value as searchable text."""
    if isinstance(value, (list, tuple)):
        return " ".join(property_text(v) for v in value)
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


# ---------------------------------------------------------------------------
# In-memory implementation


class _Entry:
    def __init__(self, name: str, type_tag: Optional[str] = None):
        self.name = name
        self.type_tag = type_tag
        self.properties: Dict[str, Any] = {}
        self.children: Dict[str, "_Entry"] = {}


class MemoryNode(Node):
    """
    Node view over a session's private tree.

    The node keeps only its path and resolves the entry on every call, so
    a node that was removed (or discarded by a rollback) fails loudly.
    """

    def __init__(self, session: "MemorySession", names: Tuple[str, ...]):
        self._session = session
        self._names = names

    def _entry(self) -> _Entry:
        entry = self._session._tree
        for name in self._names:
            try:
                entry = entry.children[name]
            except KeyError:
                raise StoreError(f"Node no longer exists: {self.path}") from None
        return entry

    def _child_node(self, name: str) -> "MemoryNode":
        return MemoryNode(self._session, self._names + (name,))

    @property
    def name(self) -> str:
        return self._names[-1] if self._names else ""

    @property
    def path(self) -> str:
        return "/" + "/".join(self._names)

    @property
    def type_tag(self) -> Optional[str]:
        return self._entry().type_tag

    def has_child(self, name: str) -> bool:
        return name in self._entry().children

    def get_child(self, name: str) -> "MemoryNode":
        if name not in self._entry().children:
            raise StoreError(f"No child {name!r} under {self.path}")
        return self._child_node(name)

    def add_child(self, name: str, type_tag: Optional[str] = None) -> "MemoryNode":
        if not name or "/" in name:
            raise StoreError(f"Invalid node name: {name!r}")
        entry = self._entry()
        if name in entry.children:
            raise StoreError(f"Child {name!r} already exists under {self.path}")
        entry.children[name] = _Entry(name, type_tag)
        self._session._dirty = True
        return self._child_node(name)

    def ensure_child(self, name: str, type_tag: Optional[str] = None) -> "MemoryNode":
        if self.has_child(name):
            return self._child_node(name)
        return self.add_child(name, type_tag)

    def remove_child(self, name: str) -> None:
        entry = self._entry()
        if name not in entry.children:
            raise StoreError(f"No child {name!r} under {self.path}")
        del entry.children[name]
        self._session._dirty = True

    def prune_child(self, name: str) -> bool:
        entry = self._entry()
        child = entry.children.get(name)
        if child is None or child.children:
            return False
        del entry.children[name]
        self._session._dirty = True
        return True

    def children(self) -> Iterator["MemoryNode"]:
        # Snapshot names so callers may remove while iterating
        for name in list(self._entry().children):
            yield self._child_node(name)

    def get_property(self, name: str) -> Any:
        return copy.deepcopy(self._entry().properties.get(name))

    def set_property(self, name: str, value: Any) -> None:
        if value is None:
            raise StoreError(f"Cannot store None for property {name!r}")
        self._entry().properties[name] = copy.deepcopy(value)
        self._session._dirty = True

    def has_property(self, name: str) -> bool:
        return name in self._entry().properties

    def remove_property(self, name: str) -> None:
        self._entry().properties.pop(name, None)
        self._session._dirty = True


class MemorySession(Session):
    """Session working on a private copy of the store's tree."""

    def __init__(self, store: "MemoryNodeStore"):
        self._store = store
        self._closed = False
        self._refresh()

    def _refresh(self) -> None:
        with self._store._lock:
            self._tree = copy.deepcopy(self._store._tree)
            self._base_revision = self._store._revision
        self._dirty = False

    def _check_open(self) -> None:
        if self._closed:
            raise StoreError("Session is closed")

    def root(self) -> MemoryNode:
        self._check_open()
        return MemoryNode(self, ())

    def search(self, scope: Node, text: str, require_property: str) -> List[MemoryNode]:
        self._check_open()
        needle = text.casefold()
        matches: List[MemoryNode] = []

        def walk(entry: _Entry, names: Tuple[str, ...]) -> None:
            for child in entry.children.values():
                child_names = names + (child.name,)
                if require_property in child.properties and any(
                    needle in property_text(v).casefold()
                    for value in child.properties.values()
                    for v in (value if isinstance(value, list) else [value])
                ):
                    matches.append(MemoryNode(self, child_names))
                walk(child, child_names)

        scope_node = MemoryNode(self, tuple(n for n in scope.path.split("/") if n))
        walk(scope_node._entry(), scope_node._names)
        return matches

    def save(self) -> None:
        self._check_open()
        if not self._dirty:
            return
        with self._store._lock:
            if self._store._revision != self._base_revision:
                raise StoreError("Concurrent modification: store changed since session start")
            self._store._tree = copy.deepcopy(self._tree)
            self._store._revision += 1
            self._base_revision = self._store._revision
        self._dirty = False
        logger.debug(f"Memory store saved at revision {self._base_revision}")

    def rollback(self) -> None:
        if not self._closed:
            self._refresh()

    def close(self) -> None:
        self._closed = True


class MemoryNodeStore(NodeStore):
    """Thread-safe in-memory node store with optimistic conflict detection."""

    def __init__(self):
        self._tree = _Entry("")
        self._revision = 0
        self._lock = threading.Lock()

    def open_session(self) -> MemorySession:
        return MemorySession(self)
