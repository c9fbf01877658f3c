"""Module for an in memory cluster.

The in memory cluster keeps applied documents in a dictionary and reports
workloads as fully rolled out, unless told otherwise. It is used for local
dry runs of the release pipeline and in tests, where failures and slow
rollouts can be injected per resource.
"""

import asyncio
import copy
import logging
from typing import Any

from helm_reconciler.exceptions import ReconcilerException
from helm_reconciler.manifest import NamedResource, Resource, WORKLOAD_KINDS

from .cluster import ClusterClient

_LOGGER = logging.getLogger(__name__)


class ClusterApiError(ReconcilerException):
    """Raised by the in memory cluster when an injected failure fires."""


class InMemoryCluster(ClusterClient):
    """In-memory implementation of the ClusterClient interface."""

    def __init__(self, latency: float = 0.0) -> None:
        """Initialize the InMemoryCluster."""
        self._objects: dict[NamedResource, dict[str, Any]] = {}
        self._apply_failures: dict[NamedResource, int | None] = {}
        self._never_ready: set[NamedResource] = set()
        self._latency = latency
        self.apply_log: list[tuple[str, NamedResource]] = []

    def fail_apply(self, resource_id: NamedResource, times: int | None = None) -> None:
        """Make applying a resource fail, `times` times or forever when None."""
        self._apply_failures[resource_id] = times

    def never_ready(self, resource_id: NamedResource) -> None:
        """Make a workload stay at zero ready replicas after it is applied."""
        self._never_ready.add(resource_id)

    @property
    def resources(self) -> dict[NamedResource, dict[str, Any]]:
        """A copy of every object currently in the cluster."""
        return copy.deepcopy(self._objects)

    def _check_failure(self, resource_id: NamedResource) -> None:
        if resource_id not in self._apply_failures:
            return
        remaining = self._apply_failures[resource_id]
        if remaining is not None:
            if remaining <= 1:
                del self._apply_failures[resource_id]
            else:
                self._apply_failures[resource_id] = remaining - 1
        raise ClusterApiError(f"Injected apply failure for {resource_id}")

    def _live_state(self, resource_id: NamedResource, doc: dict[str, Any]) -> dict[str, Any]:
        state = copy.deepcopy(doc)
        if resource_id.kind not in WORKLOAD_KINDS:
            return state
        spec = state.get("spec") or {}
        replicas = 0 if resource_id in self._never_ready else spec.get("replicas", 1)
        if resource_id.kind == "DaemonSet":
            desired = 1
            state["status"] = {
                "desiredNumberScheduled": desired,
                "numberReady": 0 if resource_id in self._never_ready else desired,
            }
        else:
            state["status"] = {"readyReplicas": replicas}
        return state

    async def apply(self, resource: Resource) -> None:
        """Create or update a resource."""
        if self._latency:
            await asyncio.sleep(self._latency)
        resource_id = resource.identity
        self._check_failure(resource_id)
        _LOGGER.debug("Applying %s", resource_id)
        self._objects[resource_id] = self._live_state(resource_id, resource.content)
        self.apply_log.append(("apply", resource_id))

    async def delete(self, resource_id: NamedResource) -> None:
        """Delete a resource if it exists."""
        if self._latency:
            await asyncio.sleep(self._latency)
        _LOGGER.debug("Deleting %s", resource_id)
        self._objects.pop(resource_id, None)
        self.apply_log.append(("delete", resource_id))

    async def get(self, resource_id: NamedResource) -> dict[str, Any] | None:
        """Return the current state of a resource."""
        if (state := self._objects.get(resource_id)) is None:
            return None
        return copy.deepcopy(state)
