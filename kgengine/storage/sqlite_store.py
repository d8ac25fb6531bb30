"""
SQLite-backed node store.

Payload, connections and metadata are stored as JSON text columns.  Every
``sqlite3.Error`` surfaces as :class:`~kgengine.errors.StoreUnavailable`.

Storage: ``.kgengine/knowledge.db`` by default.
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
import time
from contextlib import contextmanager
from typing import Iterable, Optional

from ..errors import InvalidParameter, NodeNotFound, StoreUnavailable
from ..models import Edge, KnowledgeNode
from .base import KnowledgeStore

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS knowledge_graph_nodes (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    project_id  TEXT    NOT NULL,
    node_type   TEXT    NOT NULL,
    node_id     TEXT    NOT NULL,
    node_data   TEXT    NOT NULL DEFAULT '{}',
    connections TEXT    NOT NULL DEFAULT '[]',
    metadata    TEXT    NOT NULL DEFAULT '{}',
    created_at  REAL    NOT NULL DEFAULT 0.0,
    updated_at  REAL    NOT NULL DEFAULT 0.0,
    UNIQUE (project_id, node_id)
);

CREATE INDEX IF NOT EXISTS idx_knowledge_project ON knowledge_graph_nodes(project_id);
CREATE INDEX IF NOT EXISTS idx_knowledge_node_id ON knowledge_graph_nodes(node_id);
"""

_COLUMNS = "id, project_id, node_type, node_id, node_data, connections, metadata"


def _row_to_node(row: sqlite3.Row) -> KnowledgeNode:
    return KnowledgeNode.from_dict({
        "id": row["id"],
        "project_id": row["project_id"],
        "node_type": row["node_type"],
        "node_id": row["node_id"],
        "node_data": json.loads(row["node_data"] or "{}"),
        "connections": json.loads(row["connections"] or "[]"),
        "metadata": json.loads(row["metadata"] or "{}"),
    })


def _edges_json(connections: Iterable[Edge]) -> str:
    return json.dumps([e.to_dict() for e in connections])


class SQLiteStore(KnowledgeStore):
    """
    Node store persisted in a single SQLite file.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file.  Will be created if absent.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        try:
            os.makedirs(os.path.dirname(os.path.abspath(db_path)), exist_ok=True)
            with self._connect() as conn:
                conn.executescript(_SCHEMA)
        except OSError as exc:
            raise StoreUnavailable(f"Cannot open {db_path}: {exc}") from exc
        logger.debug("[SQLiteStore] Opened %s", db_path)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _connect(self):
        """Yield a connected SQLite connection with WAL mode for concurrency."""
        try:
            conn = sqlite3.connect(self._db_path, timeout=10)
        except sqlite3.Error as exc:
            raise StoreUnavailable(str(exc)) from exc
        try:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.row_factory = sqlite3.Row
            yield conn
            conn.commit()
        except sqlite3.IntegrityError:
            conn.rollback()
            raise
        except sqlite3.Error as exc:
            conn.rollback()
            raise StoreUnavailable(str(exc)) from exc
        finally:
            conn.close()

    def _fetch(self, conn: sqlite3.Connection, id: int) -> KnowledgeNode:
        row = conn.execute(
            f"SELECT {_COLUMNS} FROM knowledge_graph_nodes WHERE id = ?", (id,)
        ).fetchone()
        if row is None:
            raise NodeNotFound(str(id))
        return _row_to_node(row)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get_nodes(self, project_id: str) -> list[KnowledgeNode]:
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM knowledge_graph_nodes "
                "WHERE project_id = ? ORDER BY id",
                (str(project_id),),
            ).fetchall()
        return [_row_to_node(r) for r in rows]

    def create_node(self, node: KnowledgeNode) -> KnowledgeNode:
        now = time.time()
        try:
            with self._connect() as conn:
                cursor = conn.execute(
                    """
                    INSERT INTO knowledge_graph_nodes
                        (project_id, node_type, node_id, node_data,
                         connections, metadata, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        node.project_id,
                        node.node_type,
                        node.node_id,
                        json.dumps(node.node_data, default=str),
                        _edges_json(node.connections),
                        json.dumps(node.metadata, default=str),
                        now,
                        now,
                    ),
                )
                created = self._fetch(conn, cursor.lastrowid)
        except sqlite3.IntegrityError as exc:
            raise InvalidParameter(
                f"Node {node.node_id!r} already exists in project {node.project_id}"
            ) from exc
        logger.debug("[SQLiteStore] Created node %s (id=%d)", created.node_id, created.id)
        return created

    def update_node(
        self,
        id: int,
        connections: Optional[Iterable[Edge]] = None,
        metadata: Optional[dict] = None,
    ) -> KnowledgeNode:
        with self._connect() as conn:
            current = self._fetch(conn, id)
            updated = current.with_connections(
                current.connections if connections is None else connections,
                metadata,
            )
            conn.execute(
                """
                UPDATE knowledge_graph_nodes
                SET connections = ?, metadata = ?, updated_at = ?
                WHERE id = ?
                """,
                (
                    _edges_json(updated.connections),
                    json.dumps(updated.metadata, default=str),
                    time.time(),
                    id,
                ),
            )
        return updated
