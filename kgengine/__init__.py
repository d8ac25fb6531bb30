"""
kgengine — analytics engine for project knowledge graphs.

Public API for library usage::

    from kgengine import KnowledgeGraphService, InMemoryStore

    service = KnowledgeGraphService(InMemoryStore())
    service.ingest_task_output(task, output)
    metrics = service.calculate_graph_metrics(project_id)
"""

from .errors import (
    InvalidParameter,
    KnowledgeGraphError,
    NodeNotFound,
    StoreUnavailable,
    UsageSignalUnavailable,
)
from .models import Edge, KnowledgeNode
from .service import KnowledgeGraphService, ProjectKnowledge
from .storage import InMemoryStore, KnowledgeStore, SQLiteStore
from .usage import HttpUsageSignal, StaticUsageSignal, UsageSignal

__version__ = "0.1.0"

__all__ = [
    "KnowledgeGraphService",
    "ProjectKnowledge",
    "KnowledgeNode",
    "Edge",
    "KnowledgeStore",
    "InMemoryStore",
    "SQLiteStore",
    "UsageSignal",
    "StaticUsageSignal",
    "HttpUsageSignal",
    "KnowledgeGraphError",
    "NodeNotFound",
    "InvalidParameter",
    "StoreUnavailable",
    "UsageSignalUnavailable",
]
