"""
Abstract node store.

Implementations must give read-after-write consistency within a process
and raise :class:`~kgengine.errors.StoreUnavailable` for backend failures.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, Optional

from ..models import Edge, KnowledgeNode


class KnowledgeStore(ABC):

    @abstractmethod
    def get_nodes(self, project_id: str) -> list[KnowledgeNode]:
        """Return every node of *project_id* in creation order."""

    @abstractmethod
    def create_node(self, node: KnowledgeNode) -> KnowledgeNode:
        """
        Persist *node* and return it with its store ``id`` assigned.

        Raises ``InvalidParameter`` if the project already holds the node id.
        """

    @abstractmethod
    def update_node(
        self,
        id: int,
        connections: Optional[Iterable[Edge]] = None,
        metadata: Optional[dict] = None,
    ) -> KnowledgeNode:
        """Replace the connections and/or metadata of node *id*."""

    def close(self) -> None:
        """Release backend resources."""
