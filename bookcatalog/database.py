"""PostgreSQL-backed node store with connection pooling."""
import psycopg2
from psycopg2 import errors, extensions, pool
from psycopg2.extras import Json
from typing import Any, Iterator, List, Optional
from datetime import date
import logging

from bookcatalog.errors import StoreError
from bookcatalog.nodes import Node, NodeStore, Session

logger = logging.getLogger(__name__)

DATE_KEY = "$date"


def encode_value(value: Any) -> Any:
    """Convert a property value to its JSONB form."""
    if isinstance(value, date):
        return {DATE_KEY: value.isoformat()}
    if isinstance(value, (list, tuple)):
        return [encode_value(v) for v in value]
    return value


def decode_value(raw: Any) -> Any:
    """Convert a JSONB property value back to Python."""
    if isinstance(raw, dict) and DATE_KEY in raw:
        return date.fromisoformat(raw[DATE_KEY])
    if isinstance(raw, list):
        return [decode_value(v) for v in raw]
    return raw


def escape_like(text: str) -> str:
    """Neutralize LIKE wildcards so ``text`` only matches literally."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class PostgresNode(Node):
    """A row of the ``nodes`` table, read fresh on every call."""

    def __init__(self, session: "PostgresSession", node_id: int, name: str,
                 path: str, type_tag: Optional[str] = None):
        self._session = session
        self.id = node_id
        self._name = name
        self._path = path
        self._type_tag = type_tag

    @property
    def name(self) -> str:
        return self._name

    @property
    def path(self) -> str:
        return self._path or "/"

    @property
    def type_tag(self) -> Optional[str]:
        return self._type_tag

    def _child(self, row) -> "PostgresNode":
        node_id, name, type_tag = row
        return PostgresNode(self._session, node_id, name, f"{self._path}/{name}", type_tag)

    def has_child(self, name: str) -> bool:
        row = self._session.fetchone(
            "SELECT 1 FROM nodes WHERE parent_id = %s AND name = %s",
            (self.id, name),
        )
        return row is not None

    def get_child(self, name: str) -> "PostgresNode":
        row = self._session.fetchone(
            "SELECT id, name, type_tag FROM nodes WHERE parent_id = %s AND name = %s",
            (self.id, name),
        )
        if row is None:
            raise StoreError(f"No child {name!r} under {self.path}")
        return self._child(row)

    def add_child(self, name: str, type_tag: Optional[str] = None) -> "PostgresNode":
        if not name or "/" in name:
            raise StoreError(f"Invalid node name: {name!r}")
        row = self._session.fetchone(
            """
            INSERT INTO nodes (parent_id, name, type_tag)
            VALUES (%s, %s, %s)
            RETURNING id, name, type_tag
            """,
            (self.id, name, type_tag),
        )
        return self._child(row)

    def ensure_child(self, name: str, type_tag: Optional[str] = None) -> "PostgresNode":
        if not name or "/" in name:
            raise StoreError(f"Invalid node name: {name!r}")
        # Single statement so concurrent creators converge on one row
        self._session.execute(
            """
            INSERT INTO nodes (parent_id, name, type_tag)
            VALUES (%s, %s, %s)
            ON CONFLICT ((COALESCE(parent_id, 0)), name) DO NOTHING
            """,
            (self.id, name, type_tag),
        )
        return self.get_child(name)

    def remove_child(self, name: str) -> None:
        deleted = self._session.execute(
            "DELETE FROM nodes WHERE parent_id = %s AND name = %s",
            (self.id, name),
        )
        if deleted == 0:
            raise StoreError(f"No child {name!r} under {self.path}")

    def prune_child(self, name: str) -> bool:
        deleted = self._session.execute(
            """
            DELETE FROM nodes c
            WHERE c.parent_id = %s AND c.name = %s
              AND NOT EXISTS (SELECT 1 FROM nodes g WHERE g.parent_id = c.id)
            """,
            (self.id, name),
        )
        return deleted == 1

    def children(self) -> Iterator["PostgresNode"]:
        rows = self._session.fetchall(
            "SELECT id, name, type_tag FROM nodes WHERE parent_id = %s ORDER BY id",
            (self.id,),
        )
        for row in rows:
            yield self._child(row)

    def has_children(self) -> bool:
        row = self._session.fetchone(
            "SELECT EXISTS (SELECT 1 FROM nodes WHERE parent_id = %s)",
            (self.id,),
        )
        return bool(row[0])

    def _properties_row(self, sql: str, params: tuple):
        row = self._session.fetchone(sql, params)
        if row is None:
            raise StoreError(f"Node no longer exists: {self.path}")
        return row

    def get_property(self, name: str) -> Any:
        row = self._properties_row(
            "SELECT properties -> %s FROM nodes WHERE id = %s",
            (name, self.id),
        )
        return decode_value(row[0]) if row[0] is not None else None

    def set_property(self, name: str, value: Any) -> None:
        if value is None:
            raise StoreError(f"Cannot store None for property {name!r}")
        self._properties_row(
            """
            UPDATE nodes
            SET properties = properties || jsonb_build_object(%s::text, %s::jsonb),
                updated_at = CURRENT_TIMESTAMP
            WHERE id = %s
            RETURNING id
            """,
            (name, Json(encode_value(value)), self.id),
        )

    def has_property(self, name: str) -> bool:
        row = self._properties_row(
            "SELECT properties ? %s FROM nodes WHERE id = %s",
            (name, self.id),
        )
        return bool(row[0])

    def remove_property(self, name: str) -> None:
        self._properties_row(
            """
            UPDATE nodes
            SET properties = properties - %s::text,
                updated_at = CURRENT_TIMESTAMP
            WHERE id = %s
            RETURNING id
            """,
            (name, self.id),
        )


class PostgresSession(Session):
    """One pooled connection, held for the lifetime of the session."""

    def __init__(self, store: "PostgresNodeStore"):
        self._store = store
        self.conn = store.connection_pool.getconn()
        try:
            # Concurrent writers to the same rows fail instead of overwriting
            self.conn.set_session(
                isolation_level=extensions.ISOLATION_LEVEL_REPEATABLE_READ,
                autocommit=False,
            )
        except psycopg2.Error as e:
            store.connection_pool.putconn(self.conn)
            raise StoreError(f"Failed to open session: {e}") from e

    def execute(self, sql: str, params: tuple = ()) -> int:
        """Run a statement and return the affected row count."""
        try:
            with self.conn.cursor() as cur:
                cur.execute(sql, params)
                return cur.rowcount
        except errors.UniqueViolation as e:
            raise StoreError(f"Node already exists: {e}") from e
        except psycopg2.Error as e:
            raise StoreError(f"Database error: {e}") from e

    def fetchone(self, sql: str, params: tuple = ()):
        try:
            with self.conn.cursor() as cur:
                cur.execute(sql, params)
                return cur.fetchone()
        except errors.UniqueViolation as e:
            raise StoreError(f"Node already exists: {e}") from e
        except psycopg2.Error as e:
            raise StoreError(f"Database error: {e}") from e

    def fetchall(self, sql: str, params: tuple = ()) -> List[tuple]:
        try:
            with self.conn.cursor() as cur:
                cur.execute(sql, params)
                return cur.fetchall()
        except psycopg2.Error as e:
            raise StoreError(f"Database error: {e}") from e

    def root(self) -> PostgresNode:
        self.execute(
            """
            INSERT INTO nodes (parent_id, name)
            VALUES (NULL, '')
            ON CONFLICT ((COALESCE(parent_id, 0)), name) DO NOTHING
            """
        )
        row = self.fetchone("SELECT id FROM nodes WHERE parent_id IS NULL AND name = ''")
        if row is None:
            raise StoreError("Root node is not visible to this session")
        return PostgresNode(self, row[0], "", "")

    def search(self, scope: Node, text: str, require_property: str) -> List[PostgresNode]:
        if not isinstance(scope, PostgresNode):
            raise StoreError(f"Scope {scope!r} does not belong to this store")
        pattern = f"%{escape_like(text)}%"
        rows = self.fetchall(
            """
            WITH RECURSIVE subtree (id, name, type_tag, path) AS (
                SELECT id, name, type_tag, %s || '/' || name
                FROM nodes WHERE parent_id = %s
                UNION ALL
                SELECT n.id, n.name, n.type_tag, s.path || '/' || n.name
                FROM nodes n JOIN subtree s ON n.parent_id = s.id
            )
            SELECT s.id, s.name, s.type_tag, s.path
            FROM subtree s JOIN nodes n ON n.id = s.id
            WHERE n.properties ? %s
              AND EXISTS (
                  -- match plain values: array elements one by one, dates by ISO text
                  SELECT 1
                  FROM jsonb_each(n.properties) p
                  CROSS JOIN LATERAL jsonb_array_elements(
                      CASE jsonb_typeof(p.value)
                          WHEN 'array' THEN p.value
                          ELSE jsonb_build_array(p.value)
                      END
                  ) v
                  WHERE COALESCE(v.value ->> '$date', v.value #>> '{}') ILIKE %s ESCAPE '\\'
              )
            """,
            (scope._path, scope.id, require_property, pattern),
        )
        return [PostgresNode(self, node_id, name, path, type_tag)
                for node_id, name, type_tag, path in rows]

    def save(self) -> None:
        try:
            self.conn.commit()
        except psycopg2.Error as e:
            raise StoreError(f"Failed to commit: {e}") from e

    def rollback(self) -> None:
        if self.conn is not None and not self.conn.closed:
            self.conn.rollback()

    def close(self) -> None:
        if self.conn is not None:
            self._store.connection_pool.putconn(self.conn)
            self.conn = None


class PostgresNodeStore(NodeStore):
    """PostgreSQL node store with connection pooling."""

    def __init__(self, connection_string: str, min_conn: int = 1, max_conn: int = 10):
        """
        Initialize database connection pool.

        Args:
            connection_string: PostgreSQL connection string
            min_conn: Minimum connections in pool
            max_conn: Maximum connections in pool
        """
        try:
            self.connection_pool = psycopg2.pool.SimpleConnectionPool(
                min_conn,
                max_conn,
                connection_string
            )
        except psycopg2.Error as e:
            raise StoreError(f"Failed to create connection pool: {e}") from e

        logger.info("Database connection pool created successfully")

    def open_session(self) -> PostgresSession:
        try:
            return PostgresSession(self)
        except pool.PoolError as e:
            raise StoreError(f"No connection available: {e}") from e

    def init_schema(self):
        """Create the nodes table if it doesn't exist."""
        with self.session() as session:
            session.execute("""
                CREATE TABLE IF NOT EXISTS nodes (
                    id BIGSERIAL PRIMARY KEY,
                    parent_id BIGINT REFERENCES nodes (id) ON DELETE CASCADE,
                    name VARCHAR(255) NOT NULL,
                    type_tag VARCHAR(255),
                    properties JSONB NOT NULL DEFAULT '{}'::jsonb,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            # One child per name under each parent (root has parent 0)
            session.execute("""
                CREATE UNIQUE INDEX IF NOT EXISTS idx_nodes_parent_name
                ON nodes ((COALESCE(parent_id, 0)), name)
            """)

            session.execute("""
                CREATE INDEX IF NOT EXISTS idx_nodes_parent
                ON nodes (parent_id)
            """)

            session.save()
            logger.info("Database schema initialized successfully")

    def close(self):
        """Close all connections in the pool."""
        if self.connection_pool:
            self.connection_pool.closeall()
            logger.info("Database connection pool closed")
