"""
Node stores for the knowledge graph.

The engine only talks to :class:`KnowledgeStore`; the in-memory and SQLite
implementations here are reference backends.
"""

from .base import KnowledgeStore
from .memory import InMemoryStore
from .sqlite_store import SQLiteStore

__all__ = ["KnowledgeStore", "InMemoryStore", "SQLiteStore"]
