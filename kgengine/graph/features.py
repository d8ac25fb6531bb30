"""
Semantic feature extraction for knowledge graph nodes.

Derives a bag of concepts and keywords from a node's typed payload.  The
parsers here are plain regular expressions over source text: tolerant of
malformed input, never raising, and returning partial results when only
part of the text makes sense.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from dataclasses import dataclass
from typing import Iterable

from ..models import KnowledgeNode, NodeType

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_KEYWORD_LIMIT = 10
MIN_KEYWORD_LENGTH = 4

_FUNCTION_RE = re.compile(
    r"(?:\bdef\s+(\w+)|\bfunction\s+(\w+)|\bconst\s+(\w+)\s*=|(\w+)\s*\()"
)
_JS_IMPORT_RE = re.compile(
    r"import\s+(?:\{[^}]*\}|\*\s+as\s+\w+|\w+)\s+from\s+['\"`]([^'\"`]+)['\"`]"
)
_PY_IMPORT_RE = re.compile(
    r"^\s*(?:from\s+([\w.]+)\s+import\b|import\s+(?![^\n]*\bfrom\s+['\"`])([\w.]+))",
    re.MULTILINE,
)
_EXPORT_RE = re.compile(
    r"export\s+(?:default\s+)?(?:class|function|const|let|var)\s+(\w+)"
)
_SECTION_RE = re.compile(r"^#+\s+(.+)$", re.MULTILINE)
_NON_WORD_RE = re.compile(r"[^\w\s]")

# Call-like tokens that are language keywords, not function names
_CONTROL_WORDS = frozenset({
    "if", "for", "while", "switch", "catch", "return", "function",
    "elif", "with", "except", "print", "super", "typeof", "new",
})


@dataclass(frozen=True)
class Features:
    """Ordered, de-duplicated concepts and keywords of one node."""

    concepts: tuple[str, ...] = ()
    keywords: tuple[str, ...] = ()

    def terms(self) -> list[str]:
        """The term bag fed to :func:`~kgengine.graph.vector.vectorize`."""
        return [*self.concepts, *self.keywords]


def _unique(items: Iterable) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for item in items:
        if item is None:
            continue
        text = str(item).strip()
        if text:
            seen.setdefault(text, None)
    return tuple(seen)


def _as_list(value) -> list:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    try:
        return list(value)
    except TypeError:
        return [value]


# ---------------------------------------------------------------------------
# Source parsers
# ---------------------------------------------------------------------------

def extract_functions(code: str) -> list[str]:
    """Return function names declared or called in *code*, first-seen order."""
    if not isinstance(code, str):
        return []
    names: list[str] = []
    for match in _FUNCTION_RE.finditer(code):
        name = next((g for g in match.groups() if g), None)
        if not name or name in _CONTROL_WORDS or name in names:
            continue
        names.append(name)
    return names


def extract_imports(code: str) -> list[str]:
    """Return imported module names (JS ``import … from`` and Python)."""
    if not isinstance(code, str):
        return []
    modules = [m.group(1) for m in _JS_IMPORT_RE.finditer(code)]
    for match in _PY_IMPORT_RE.finditer(code):
        modules.append(match.group(1) or match.group(2))
    return list(_unique(modules))


def extract_exports(code: str) -> list[str]:
    if not isinstance(code, str):
        return []
    return [m.group(1) for m in _EXPORT_RE.finditer(code)]


def extract_doc_sections(text: str) -> list[str]:
    """Return markdown heading titles in document order."""
    if not isinstance(text, str):
        return []
    return [m.group(1).strip() for m in _SECTION_RE.finditer(text)]


def extract_keywords(text: str, limit: int = DEFAULT_KEYWORD_LIMIT) -> list[str]:
    """
    Return the *limit* most frequent words of *text*.

    Words are lowercased with punctuation stripped and must be longer than
    three characters.  Ties keep first-seen order.
    """
    if not isinstance(text, str) or limit <= 0:
        return []
    words = _NON_WORD_RE.sub(" ", text.lower()).split()
    counts = Counter(w for w in words if len(w) >= MIN_KEYWORD_LENGTH)
    # most_common() is a stable sort, so equal counts stay in insertion order
    return [word for word, _ in counts.most_common(limit)]


# ---------------------------------------------------------------------------
# Per-type extraction
# ---------------------------------------------------------------------------

def _code_features(data: dict, limit: int) -> Features:
    content = data.get("content", "")
    functions = data.get("functions")
    if functions is None:
        functions = extract_functions(content)
    imports = data.get("imports")
    if imports is None:
        imports = extract_imports(content)
    return Features(
        concepts=_unique([*_as_list(functions), *_as_list(imports)]),
        keywords=_unique([data.get("language")]),
    )


def _documentation_features(data: dict, limit: int) -> Features:
    content = data.get("content", "")
    sections = data.get("sections")
    if sections is None:
        sections = extract_doc_sections(content)
    keywords = data.get("keywords")
    if keywords is None:
        keywords = extract_keywords(content, limit)
    return Features(
        concepts=_unique(_as_list(sections)),
        keywords=_unique(_as_list(keywords)),
    )


def _task_features(data: dict, limit: int) -> Features:
    return Features(
        concepts=_unique([data.get("priority"), data.get("status")]),
        keywords=_unique(extract_keywords(data.get("description", ""), limit)),
    )


def _generic_features(data: dict, limit: int) -> Features:
    text = data.get("description") or data.get("content") or ""
    return Features(keywords=_unique(extract_keywords(text, limit)))


_EXTRACTORS = {
    NodeType.CODE: _code_features,
    NodeType.DOCUMENTATION: _documentation_features,
    NodeType.TASK: _task_features,
}


def extract_features(
    node: KnowledgeNode,
    keyword_limit: int = DEFAULT_KEYWORD_LIMIT,
) -> Features:
    """
    Derive the semantic features of *node*.

    Parameters
    ----------
    node:
        The node to analyse.
    keyword_limit:
        Number of top-frequency words kept for free-text fields.

    Returns
    -------
    Features
        Empty when the payload is unusable; this function never raises.
    """
    data = node.node_data if isinstance(node.node_data, dict) else {}
    extractor = _EXTRACTORS.get(node.node_type, _generic_features)
    try:
        return extractor(data, keyword_limit)
    except Exception as exc:
        logger.debug("Feature extraction failed for %s: %s", node.node_id, exc)
        return Features()
