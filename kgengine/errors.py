"""
Exception hierarchy for the knowledge graph engine.

Feature extraction and vectorization never raise; everything else fails
fast with one of the errors below.  A project with fewer than two nodes is
not an error: metrics and clustering return zero-valued results instead.
"""


class KnowledgeGraphError(Exception):
    """Base class for all engine errors."""


class NodeNotFound(KnowledgeGraphError):
    """A referenced node id is not part of the project."""

    def __init__(self, node_id: str, project_id: str | None = None):
        self.node_id = node_id
        self.project_id = project_id
        where = f" in project {project_id}" if project_id is not None else ""
        super().__init__(f"Node not found: {node_id!r}{where}")


class InvalidParameter(KnowledgeGraphError, ValueError):
    """An operation parameter is out of range or malformed."""


class StoreUnavailable(KnowledgeGraphError):
    """The node store failed.  Propagated as-is, never retried internally."""


class UsageSignalUnavailable(KnowledgeGraphError):
    """The usage-frequency collaborator failed."""
