"""
Connection suggestions driven by semantic similarity and a rule table.

The rule table maps a (source type, target type) pairing to the connection
type to propose and a confidence multiplier.  Rules are checked in order
and the first match wins.  ``"*"`` matches any type and ``"same"`` as a
target matches when both nodes share a type.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from ..errors import InvalidParameter
from ..models import EdgeType, NodeType
from .index import GraphIndex
from .similarity import SimilarityEngine, SimilarityResult

logger = logging.getLogger(__name__)

DEFAULT_SUGGESTION_THRESHOLD = 0.6
HIGH_SIMILARITY = 0.8
COMMON_CONCEPT_MIN = 2
COMMON_CONCEPT_BOOST = 1.1
STRONG_RELATIONSHIP = 0.5
STRONG_RELATIONSHIP_BOOST = 1.15
CLOSE_DISTANCE = 3

ANY = "*"
SAME = "same"


@dataclass(frozen=True)
class ConnectionRule:
    source: str
    target: str
    connection_type: str
    multiplier: float = 1.0

    @property
    def strong(self) -> bool:
        return self.multiplier > 1.0

    def matches(self, source_type: str, target_type: str) -> bool:
        if self.source not in (ANY, source_type):
            return False
        if self.target == SAME:
            return source_type == target_type
        return self.target in (ANY, target_type)

    @classmethod
    def from_dict(cls, data: dict) -> "ConnectionRule":
        try:
            return cls(
                source=str(data.get("source", ANY)),
                target=str(data.get("target", ANY)),
                connection_type=str(data["type"]),
                multiplier=float(data.get("multiplier", 1.0)),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidParameter(f"Invalid connection rule {data!r}: {exc}") from exc


DEFAULT_RULES: tuple[ConnectionRule, ...] = (
    ConnectionRule(NodeType.TASK, NodeType.CODE, EdgeType.GENERATES, 1.2),
    ConnectionRule(NodeType.CODE, NodeType.DOCUMENTATION, EdgeType.DOCUMENTED_BY),
    ConnectionRule(NodeType.TASK, NodeType.TASK, EdgeType.DEPENDS_ON),
    ConnectionRule(ANY, SAME, EdgeType.RELATES_TO),
    ConnectionRule(ANY, ANY, EdgeType.USES),
)


def load_rules(raw_rules: Iterable[dict]) -> tuple[ConnectionRule, ...]:
    """
    Build a rule table from config entries, keeping the defaults as fallback.

    Configured rules are checked before the built-in ones.
    """
    return tuple(ConnectionRule.from_dict(r) for r in raw_rules) + DEFAULT_RULES


@dataclass(frozen=True)
class Suggestion:
    target_node_id: str
    connection_type: str
    confidence: float
    reasoning: str

    def to_dict(self) -> dict:
        return {
            "target_node_id": self.target_node_id,
            "connection_type": self.connection_type,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
        }


class ConnectionSuggester:
    """Proposes new edges from one node to the rest of its project."""

    def __init__(
        self,
        similarity: SimilarityEngine,
        rules: Sequence[ConnectionRule] = DEFAULT_RULES,
        threshold: float = DEFAULT_SUGGESTION_THRESHOLD,
    ) -> None:
        self._similarity = similarity
        self._rules = tuple(rules)
        self._threshold = threshold

    def match_rule(self, source_type: str, target_type: str) -> Optional[ConnectionRule]:
        for rule in self._rules:
            if rule.matches(source_type, target_type):
                return rule
        return None

    def suggest(
        self,
        index: GraphIndex,
        node_id: str,
        max_suggestions: int = 5,
    ) -> list[Suggestion]:
        """
        Return up to *max_suggestions* new edges for *node_id*, best first.

        Nodes already joined to *node_id* by an edge in either direction are
        never proposed.

        Raises
        ------
        NodeNotFound
            If *node_id* is not in *index*.
        InvalidParameter
            If *max_suggestions* is negative.
        """
        if max_suggestions < 0:
            raise InvalidParameter(
                f"max_suggestions must be >= 0, got {max_suggestions}"
            )
        source = index.node(node_id)
        suggestions: list[Suggestion] = []
        for target in index.nodes:
            if target.node_id == node_id:
                continue
            if index.edge_weight(node_id, target.node_id) is not None:
                continue
            result = self._similarity.analyze(index, node_id, target.node_id)
            if result.similarity <= self._threshold:
                continue
            rule = self.match_rule(source.node_type, target.node_type)
            suggestions.append(Suggestion(
                target_node_id=target.node_id,
                connection_type=rule.connection_type if rule else EdgeType.USES,
                confidence=self._confidence(result, rule),
                reasoning=self._reasoning(result, rule),
            ))

        suggestions.sort(key=lambda s: s.confidence, reverse=True)
        return suggestions[:max_suggestions]

    @staticmethod
    def _confidence(result: SimilarityResult, rule: Optional[ConnectionRule]) -> float:
        confidence = result.similarity
        if rule is not None:
            confidence *= rule.multiplier
        if len(result.common_concepts) > COMMON_CONCEPT_MIN:
            confidence *= COMMON_CONCEPT_BOOST
        if result.relationship_strength > STRONG_RELATIONSHIP:
            confidence *= STRONG_RELATIONSHIP_BOOST
        return min(1.0, confidence)

    @staticmethod
    def _reasoning(result: SimilarityResult, rule: Optional[ConnectionRule]) -> str:
        reasons = []
        if result.similarity > HIGH_SIMILARITY:
            reasons.append("High semantic similarity")
        if result.common_concepts:
            reasons.append(f"Shared concepts: {', '.join(result.common_concepts)}")
        if result.relationship_strength > STRONG_RELATIONSHIP:
            reasons.append("Strong existing relationships")
        if result.semantic_distance < CLOSE_DISTANCE:
            reasons.append("Close in knowledge graph")
        if rule is not None and rule.strong:
            reasons.append(f"Typical {rule.source} to {rule.target} relationship")
        return "; ".join(reasons) or "General semantic relationship"
