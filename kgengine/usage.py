"""
Usage-frequency signal consumed by graph evolution.

How often an edge is actually used is owned by an external collaborator;
the engine never derives it from the edge weight it is about to update.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import requests

from .errors import UsageSignalUnavailable

logger = logging.getLogger(__name__)

NEUTRAL_FREQUENCY = 0.5


@dataclass(frozen=True)
class Usage:
    frequency: float
    last_used: Optional[str] = None


def _clamp_frequency(value: float, source: str) -> float:
    if 0.0 <= value <= 1.0:
        return value
    logger.warning("Usage frequency %.3f for %s outside [0, 1]; clamping", value, source)
    return max(0.0, min(1.0, value))


class UsageSignal(ABC):

    @abstractmethod
    def frequency(self, project_id: str, from_node_id: str, to_node_id: str) -> Usage:
        """Return the observed usage of the edge *from_node_id* → *to_node_id*."""


class StaticUsageSignal(UsageSignal):
    """
    In-process usage table.

    Edges without a recorded value report :data:`NEUTRAL_FREQUENCY`, which
    neither strengthens nor weakens them.
    """

    def __init__(self, default: float = NEUTRAL_FREQUENCY) -> None:
        self._default = default
        self._table: dict[tuple[str, str, str], Usage] = {}
        self._lock = threading.Lock()

    def record(
        self,
        project_id: str,
        from_node_id: str,
        to_node_id: str,
        frequency: float,
        last_used: Optional[str] = None,
    ) -> None:
        key = (str(project_id), from_node_id, to_node_id)
        usage = Usage(_clamp_frequency(float(frequency), f"{from_node_id}->{to_node_id}"),
                      last_used)
        with self._lock:
            self._table[key] = usage

    def frequency(self, project_id: str, from_node_id: str, to_node_id: str) -> Usage:
        with self._lock:
            usage = self._table.get((str(project_id), from_node_id, to_node_id))
        return usage if usage is not None else Usage(self._default)


class HttpUsageSignal(UsageSignal):
    """
    Reads usage from an HTTP endpoint.

    ``GET <base_url>/projects/<project_id>/usage?from=<id>&to=<id>`` must
    answer ``{"frequency": float, "lastUsed": str | null}``.
    """

    def __init__(self, base_url: str, timeout: float = 10.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = requests.Session()

    def frequency(self, project_id: str, from_node_id: str, to_node_id: str) -> Usage:
        url = f"{self.base_url}/projects/{project_id}/usage"
        try:
            response = self._session.get(
                url,
                params={"from": from_node_id, "to": to_node_id},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
            value = float(data["frequency"])
        except requests.RequestException as exc:
            raise UsageSignalUnavailable(f"Usage request to {url} failed: {exc}") from exc
        except (ValueError, KeyError, TypeError) as exc:
            raise UsageSignalUnavailable(f"Malformed usage response from {url}: {exc}") from exc
        logger.debug("[HttpUsageSignal] %s->%s frequency=%.3f", from_node_id, to_node_id, value)
        return Usage(
            frequency=_clamp_frequency(value, f"{from_node_id}->{to_node_id}"),
            last_used=data.get("lastUsed"),
        )
