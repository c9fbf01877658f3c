"""Cluster client that shells out to `kubectl`."""

import json
import logging
from typing import Any

from helm_reconciler import command
from helm_reconciler.exceptions import KubectlException
from helm_reconciler.manifest import NamedResource, Resource

from .cluster import ClusterClient

_LOGGER = logging.getLogger(__name__)

KUBECTL_BIN = "kubectl"


class KubectlCluster(ClusterClient):
    """ClusterClient backed by the kubectl command line tool."""

    def __init__(
        self,
        kubectl_bin: str = KUBECTL_BIN,
        context: str | None = None,
        timeout: float = 60.0,
    ) -> None:
        """Initialize KubectlCluster."""
        self._bin = kubectl_bin
        self._context = context
        self._timeout = timeout

    def _args(self, *args: str) -> command.Command:
        cmd = [self._bin]
        if self._context:
            cmd.extend(["--context", self._context])
        cmd.extend(args)
        return command.Command(cmd, exc=KubectlException)

    @staticmethod
    def _selector(resource_id: NamedResource) -> list[str]:
        args = [resource_id.kind, resource_id.name]
        if resource_id.namespace:
            args.extend(["--namespace", resource_id.namespace])
        return args

    async def apply(self, resource: Resource) -> None:
        """Apply the resource document with server side defaults."""
        _LOGGER.debug("kubectl apply %s", resource.identity)
        doc = json.dumps(resource.content).encode("utf-8")
        await command.run(self._args("apply", "-f", "-"), stdin=doc, timeout=self._timeout)

    async def delete(self, resource_id: NamedResource) -> None:
        """Delete the resource, ignoring resources that are already gone."""
        _LOGGER.debug("kubectl delete %s", resource_id)
        await command.run(
            self._args(
                "delete",
                *self._selector(resource_id),
                "--ignore-not-found=true",
                "--wait=false",
            ),
            timeout=self._timeout,
        )

    async def get(self, resource_id: NamedResource) -> dict[str, Any] | None:
        """Return the live object as a dictionary or None if not found."""
        out = await command.run(
            self._args(
                "get",
                *self._selector(resource_id),
                "--ignore-not-found=true",
                "--output=json",
            ),
            timeout=self._timeout,
        )
        if not out.strip():
            return None
        try:
            state = json.loads(out)
        except json.JSONDecodeError as err:
            raise KubectlException(
                f"Unable to parse kubectl output for {resource_id}: {err}"
            ) from err
        if not isinstance(state, dict):
            raise KubectlException(f"Unexpected kubectl output for {resource_id}")
        return state
