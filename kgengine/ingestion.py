"""
Node ingestion — turns produced artifacts into knowledge graph nodes.

Each ``{task, output}`` pair yields a task node plus, depending on the
output type, a linked code or documentation node:

* task node ``<task id>`` with a ``depends_on`` edge (weight 0.8) to every
  task dependency;
* code node ``code_<task id>`` with a ``generated_by`` edge (weight 1.0)
  back to the task;
* documentation node ``doc_<task id>`` with a ``documents`` edge
  (weight 1.0) back to the task.

Payload parsing is best effort: a malformed output never blocks node
creation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Union

from .errors import InvalidParameter
from .graph.features import (
    DEFAULT_KEYWORD_LIMIT,
    extract_doc_sections,
    extract_exports,
    extract_functions,
    extract_imports,
    extract_keywords,
)
from .models import Edge, EdgeType, KnowledgeNode, NodeType, merge_edge
from .storage.base import KnowledgeStore

logger = logging.getLogger(__name__)

DEPENDENCY_WEIGHT = 0.8
ARTIFACT_WEIGHT = 1.0
DEFAULT_CODE_LANGUAGE = "typescript"
DEFAULT_DOC_FORMAT = "markdown"


# ---------------------------------------------------------------------------
# Artifact records
# ---------------------------------------------------------------------------

@dataclass
class TaskArtifact:
    """A finished task as reported by the orchestration layer."""

    id: Union[int, str]
    project_id: Union[int, str]
    title: str = ""
    description: str = ""
    status: str = ""
    priority: str = ""
    dependencies: list = field(default_factory=list)
    phase_id: Optional[Union[int, str]] = None
    assigned_agents: list = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "TaskArtifact":
        task_id = data.get("id")
        project_id = data.get("project_id", data.get("projectId"))
        if task_id is None or project_id is None:
            raise InvalidParameter(f"Task needs 'id' and 'project_id': {data!r}")
        return cls(
            id=task_id,
            project_id=project_id,
            title=data.get("title") or "",
            description=data.get("description") or "",
            status=data.get("status") or "",
            priority=data.get("priority") or "",
            dependencies=list(data.get("dependencies") or []),
            phase_id=data.get("phase_id", data.get("phaseId")),
            assigned_agents=list(
                data.get("assigned_agents", data.get("assignedAgents")) or []
            ),
        )


@dataclass
class TaskOutput:
    """One artifact produced for a task."""

    type: str
    content: str = ""
    metadata: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> "TaskOutput":
        content = data.get("content")
        return cls(
            type=str(data.get("type", "")),
            content=content if isinstance(content, str) else "",
            metadata=dict(data.get("metadata") or {}),
        )

    def to_dict(self) -> dict:
        return {"type": self.type, "content": self.content, "metadata": self.metadata}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Node builders
# ---------------------------------------------------------------------------

def build_task_node(task: TaskArtifact, output: TaskOutput) -> KnowledgeNode:
    connections = tuple(
        Edge(str(dep), EdgeType.DEPENDS_ON, DEPENDENCY_WEIGHT)
        for dep in task.dependencies
    )
    return KnowledgeNode(
        project_id=str(task.project_id),
        node_id=str(task.id),
        node_type=NodeType.TASK,
        node_data={
            "title": task.title,
            "description": task.description,
            "status": task.status,
            "priority": task.priority,
            "outputs": [output.to_dict()],
        },
        connections=connections,
        metadata={
            "phaseId": task.phase_id,
            "createdAt": _now(),
            "agentIds": list(task.assigned_agents),
        },
    )


def build_code_node(task: TaskArtifact, output: TaskOutput) -> KnowledgeNode:
    meta = output.metadata
    content = output.content
    return KnowledgeNode(
        project_id=str(task.project_id),
        node_id=f"code_{task.id}",
        node_type=NodeType.CODE,
        node_data={
            "content": content,
            "language": meta.get("language") or DEFAULT_CODE_LANGUAGE,
            "quality": meta.get("quality") or 0,
            "functions": extract_functions(content),
            "imports": extract_imports(content),
            "exports": extract_exports(content),
        },
        connections=(Edge(str(task.id), EdgeType.GENERATED_BY, ARTIFACT_WEIGHT),),
        metadata={"agentIds": list(meta.get("agentIds") or []), "analyzedAt": _now()},
    )


def build_documentation_node(
    task: TaskArtifact,
    output: TaskOutput,
    keyword_limit: int = DEFAULT_KEYWORD_LIMIT,
) -> KnowledgeNode:
    meta = output.metadata
    content = output.content
    return KnowledgeNode(
        project_id=str(task.project_id),
        node_id=f"doc_{task.id}",
        node_type=NodeType.DOCUMENTATION,
        node_data={
            "content": content,
            "format": meta.get("format") or DEFAULT_DOC_FORMAT,
            "completeness": meta.get("completeness") or 0,
            "sections": extract_doc_sections(content),
            "keywords": extract_keywords(content, keyword_limit),
        },
        connections=(Edge(str(task.id), EdgeType.DOCUMENTS, ARTIFACT_WEIGHT),),
        metadata={"agentIds": list(meta.get("agentIds") or []), "analyzedAt": _now()},
    )


# ---------------------------------------------------------------------------
# Ingestion
# ---------------------------------------------------------------------------

def _upsert(
    store: KnowledgeStore,
    existing: dict[str, KnowledgeNode],
    node: KnowledgeNode,
) -> KnowledgeNode:
    """Create *node*, or merge its edges into the stored node of the same id."""
    current = existing.get(node.node_id)
    if current is None:
        created = store.create_node(node)
        existing[created.node_id] = created
        return created

    connections = current.connections
    for edge in node.connections:
        connections = merge_edge(connections, edge)
    metadata = {**current.metadata, "lastUpdated": _now()}
    updated = store.update_node(current.id, connections=connections, metadata=metadata)
    existing[updated.node_id] = updated
    logger.debug("Re-ingested existing node %s", node.node_id)
    return updated


def ingest_task_output(
    store: KnowledgeStore,
    task: Union[TaskArtifact, dict],
    output: Union[TaskOutput, dict, Any],
    keyword_limit: int = DEFAULT_KEYWORD_LIMIT,
) -> list[KnowledgeNode]:
    """
    Store the nodes for one produced artifact.

    Parameters
    ----------
    store:
        Destination node store.
    task:
        The task that produced *output* (dataclass or dict).
    output:
        The produced artifact; ``type`` ``"code"`` and ``"documentation"``
        add a linked node, anything else only records the task.

    Returns
    -------
    list[KnowledgeNode]
        The stored nodes, task node first.

    Raises
    ------
    InvalidParameter
        If the task has no id or project id.
    StoreUnavailable
        Propagated from *store*.
    """
    if isinstance(task, dict):
        task = TaskArtifact.from_dict(task)
    if not isinstance(output, TaskOutput):
        output = TaskOutput.from_dict(output if isinstance(output, dict) else {})

    existing = {n.node_id: n for n in store.get_nodes(str(task.project_id))}
    stored = [_upsert(store, existing, build_task_node(task, output))]

    if output.type == NodeType.CODE:
        stored.append(_upsert(store, existing, build_code_node(task, output)))
    elif output.type == NodeType.DOCUMENTATION:
        stored.append(_upsert(
            store, existing, build_documentation_node(task, output, keyword_limit)
        ))
    else:
        logger.debug("Output type %r of task %s adds no artifact node",
                     output.type, task.id)

    logger.info("Ingested %d node(s) for task %s in project %s",
                len(stored), task.id, task.project_id)
    return stored
