"""In-process node store, used by tests and short-lived tools."""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import replace
from typing import Iterable, Optional

from ..errors import InvalidParameter, NodeNotFound
from ..models import Edge, KnowledgeNode
from .base import KnowledgeStore

logger = logging.getLogger(__name__)


class InMemoryStore(KnowledgeStore):
    """Thread-safe dict-backed store.  Ids are assigned from 1 upwards."""

    def __init__(self) -> None:
        self._nodes: dict[int, KnowledgeNode] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def get_nodes(self, project_id: str) -> list[KnowledgeNode]:
        project_id = str(project_id)
        with self._lock:
            return [n for n in self._nodes.values() if n.project_id == project_id]

    def create_node(self, node: KnowledgeNode) -> KnowledgeNode:
        with self._lock:
            for existing in self._nodes.values():
                if (existing.project_id == node.project_id
                        and existing.node_id == node.node_id):
                    raise InvalidParameter(
                        f"Node {node.node_id!r} already exists in project "
                        f"{node.project_id}"
                    )
            created = replace(node, id=next(self._ids))
            self._nodes[created.id] = created
        logger.debug("Created node %s (id=%d)", created.node_id, created.id)
        return created

    def update_node(
        self,
        id: int,
        connections: Optional[Iterable[Edge]] = None,
        metadata: Optional[dict] = None,
    ) -> KnowledgeNode:
        with self._lock:
            current = self._nodes.get(id)
            if current is None:
                raise NodeNotFound(str(id))
            updated = current.with_connections(
                current.connections if connections is None else connections,
                metadata,
            )
            self._nodes[id] = updated
        return updated
