"""
The cluster module is the boundary between the reconciler and the live
cluster API. The reconciler only ever talks to a `ClusterClient`:

- `InMemoryCluster` keeps objects in process, used for dry runs and tests.
- `KubectlCluster` shells out to `kubectl` against the current context.
"""

from .cluster import ClusterClient, is_ready
from .in_memory import ClusterApiError, InMemoryCluster
from .kubectl import KubectlCluster

__all__ = [
    "ClusterClient",
    "ClusterApiError",
    "InMemoryCluster",
    "KubectlCluster",
    "is_ready",
]
