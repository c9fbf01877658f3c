"""Tests for the in memory cluster and readiness checks."""

from typing import Any

import pytest

from helm_reconciler.cluster import ClusterApiError, InMemoryCluster, is_ready
from helm_reconciler.manifest import NamedResource, Resource


def make_resource(kind: str, name: str, **spec: Any) -> Resource:
    return Resource.parse_doc(
        {"apiVersion": "apps/v1", "kind": kind, "metadata": {"name": name}, "spec": spec}
    )


DEPLOYMENT = make_resource("Deployment", "web", replicas=3)


async def test_apply_get_delete(cluster: InMemoryCluster) -> None:
    assert await cluster.get(DEPLOYMENT.identity) is None
    await cluster.apply(DEPLOYMENT)
    state = await cluster.get(DEPLOYMENT.identity)
    assert state is not None
    assert state["spec"]["replicas"] == 3
    assert state["status"] == {"readyReplicas": 3}
    assert is_ready(DEPLOYMENT.identity, state)

    await cluster.delete(DEPLOYMENT.identity)
    assert await cluster.get(DEPLOYMENT.identity) is None
    # Deleting a missing resource is not an error
    await cluster.delete(DEPLOYMENT.identity)
    assert cluster.apply_log == [
        ("apply", DEPLOYMENT.identity),
        ("delete", DEPLOYMENT.identity),
        ("delete", DEPLOYMENT.identity),
    ]


async def test_state_is_a_copy(cluster: InMemoryCluster) -> None:
    await cluster.apply(DEPLOYMENT)
    state = await cluster.get(DEPLOYMENT.identity)
    assert state is not None
    state["spec"]["replicas"] = 0
    assert cluster.resources[DEPLOYMENT.identity]["spec"]["replicas"] == 3


async def test_fail_apply_times(cluster: InMemoryCluster) -> None:
    """Test an injected failure fires the requested number of times."""
    cluster.fail_apply(DEPLOYMENT.identity, times=2)
    for _ in range(2):
        with pytest.raises(ClusterApiError, match="Injected apply failure"):
            await cluster.apply(DEPLOYMENT)
    await cluster.apply(DEPLOYMENT)
    assert DEPLOYMENT.identity in cluster.resources


async def test_fail_apply_forever(cluster: InMemoryCluster) -> None:
    cluster.fail_apply(DEPLOYMENT.identity)
    for _ in range(5):
        with pytest.raises(ClusterApiError):
            await cluster.apply(DEPLOYMENT)
    assert cluster.resources == {}


async def test_never_ready(cluster: InMemoryCluster) -> None:
    cluster.never_ready(DEPLOYMENT.identity)
    await cluster.apply(DEPLOYMENT)
    assert not is_ready(DEPLOYMENT.identity, await cluster.get(DEPLOYMENT.identity))


async def test_daemonset_readiness(cluster: InMemoryCluster) -> None:
    daemonset = make_resource("DaemonSet", "agent")
    await cluster.apply(daemonset)
    assert is_ready(daemonset.identity, await cluster.get(daemonset.identity))
    cluster.never_ready(daemonset.identity)
    await cluster.apply(daemonset)
    assert not is_ready(daemonset.identity, await cluster.get(daemonset.identity))


@pytest.mark.parametrize(
    ("kind", "state", "ready"),
    [
        ("ConfigMap", None, False),
        ("ConfigMap", {"data": {}}, True),
        ("Deployment", {"spec": {"replicas": 2}, "status": {"readyReplicas": 1}}, False),
        ("Deployment", {"spec": {"replicas": 2}, "status": {"readyReplicas": 2}}, True),
        ("Deployment", {"spec": {}, "status": {}}, False),
        ("Deployment", {"spec": {}, "status": {"readyReplicas": 1}}, True),
        ("Deployment", {"spec": {"replicas": 0}}, True),
        ("StatefulSet", {"spec": {"replicas": 3}, "status": {"readyReplicas": 3}}, True),
        ("ReplicaSet", {"spec": {"replicas": 1}, "status": None}, False),
        ("DaemonSet", {"status": {"desiredNumberScheduled": 4, "numberReady": 3}}, False),
        ("DaemonSet", {"status": {"desiredNumberScheduled": 4, "numberReady": 4}}, True),
    ],
)
def test_is_ready(kind: str, state: dict[str, Any] | None, ready: bool) -> None:
    """Test readiness of workloads and non-workload resources."""
    assert is_ready(NamedResource(kind, "default", "x"), state) == ready
