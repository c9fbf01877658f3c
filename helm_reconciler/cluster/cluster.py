"""Interface to the live cluster.

The cluster is the only source of truth for live state. Callers query it
fresh for every apply attempt and never cache what it returns.
"""

from abc import ABC, abstractmethod
import logging
from typing import Any

from helm_reconciler.manifest import NamedResource, Resource, WORKLOAD_KINDS

__all__ = [
    "ClusterClient",
    "is_ready",
]

_LOGGER = logging.getLogger(__name__)


class ClusterClient(ABC):
    """Abstract client for the cluster API."""

    @abstractmethod
    async def apply(self, resource: Resource) -> None:
        """Create or update a resource.

        Raises:
            ReconcilerException: If the cluster rejected the resource.
        """

    @abstractmethod
    async def delete(self, resource_id: NamedResource) -> None:
        """Delete a resource, a resource that does not exist is not an error."""

    @abstractmethod
    async def get(self, resource_id: NamedResource) -> dict[str, Any] | None:
        """Return the current state of a resource, or None if it does not exist."""


def _as_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def is_ready(resource_id: NamedResource, state: dict[str, Any] | None) -> bool:
    """Return True if the live state satisfies the readiness condition.

    Non-workload resources are ready as soon as they exist. Workloads are ready
    once the number of ready replicas reaches the desired count.
    """
    if state is None:
        return False
    if resource_id.kind not in WORKLOAD_KINDS:
        return True
    spec = state.get("spec") or {}
    status = state.get("status") or {}
    if resource_id.kind == "DaemonSet":
        desired = _as_int(status.get("desiredNumberScheduled"))
        ready = _as_int(status.get("numberReady"))
    else:
        desired = _as_int(spec.get("replicas"), default=1)
        ready = _as_int(status.get("readyReplicas"))
    _LOGGER.debug("%s has %d/%d ready replicas", resource_id, ready, desired)
    return ready >= desired
