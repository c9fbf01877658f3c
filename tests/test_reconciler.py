"""Tests for executing plans against the cluster."""

import asyncio
from typing import Any

import pytest

from helm_reconciler.cluster import InMemoryCluster
from helm_reconciler.config import ReconcilerConfig
from helm_reconciler.exceptions import ApplyCancelled, ApplyFailure, ReadinessTimeout
from helm_reconciler.manifest import Resource
from helm_reconciler.plan import compute_plan
from helm_reconciler.reconciler import Reconciler


def make_resource(kind: str, name: str, **extra: Any) -> Resource:
    api_version = "apps/v1" if kind in ("Deployment", "StatefulSet") else "v1"
    return Resource.parse_doc(
        {"apiVersion": api_version, "kind": kind, "metadata": {"name": name}, **extra}
    )


NAMESPACE = make_resource("Namespace", "apps")
CONFIG_A = make_resource("ConfigMap", "config-a", data={"a": "1"})
CONFIG_B = make_resource("ConfigMap", "config-b", data={"b": "1"})
DEPLOYMENT = make_resource("Deployment", "web", spec={"replicas": 2})


class TrackingCluster(InMemoryCluster):
    """In memory cluster that records how many applies run at once."""

    def __init__(self) -> None:
        super().__init__(latency=0.05)
        self.in_flight = 0
        self.max_in_flight = 0

    async def apply(self, resource: Resource) -> None:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await super().apply(resource)
        finally:
            self.in_flight -= 1


class BrokenCluster(InMemoryCluster):
    """Cluster whose client fails with an unexpected error."""

    async def apply(self, resource: Resource) -> None:
        raise RuntimeError("connection reset")


async def test_tiers_in_weight_order(
    reconciler: Reconciler, cluster: InMemoryCluster
) -> None:
    plan = compute_plan([], [DEPLOYMENT, CONFIG_A, NAMESPACE])
    result = await reconciler.execute(plan)
    assert result.ok
    assert [resource_id for _, resource_id in cluster.apply_log] == [
        NAMESPACE.identity,
        CONFIG_A.identity,
        DEPLOYMENT.identity,
    ]
    assert [str(op) for op in result.applied] == [
        "create Namespace/apps",
        "create ConfigMap/default/config-a",
        "create Deployment/default/web",
    ]


async def test_tier_runs_concurrently(reconciler_config: ReconcilerConfig) -> None:
    cluster = TrackingCluster()
    reconciler = Reconciler(cluster, reconciler_config)
    result = await reconciler.execute(compute_plan([], [CONFIG_A, CONFIG_B, DEPLOYMENT]))
    assert result.ok
    assert cluster.max_in_flight == 2


async def test_noops_are_not_applied(
    reconciler: Reconciler, cluster: InMemoryCluster
) -> None:
    plan = compute_plan([CONFIG_A, CONFIG_B], [CONFIG_A, CONFIG_B])
    result = await reconciler.execute(plan)
    assert result.ok
    assert result.applied == []
    assert cluster.apply_log == []


async def test_retry_then_succeed(
    reconciler: Reconciler, cluster: InMemoryCluster
) -> None:
    """Test that a transient failure is retried until it succeeds."""
    cluster.fail_apply(CONFIG_A.identity, times=2)
    result = await reconciler.execute(compute_plan([], [CONFIG_A]))
    assert result.ok
    assert CONFIG_A.identity in cluster.resources


async def test_permanent_failure_aborts_plan(
    reconciler: Reconciler, cluster: InMemoryCluster
) -> None:
    cluster.fail_apply(CONFIG_A.identity)
    result = await reconciler.execute(compute_plan([], [CONFIG_A, CONFIG_B, DEPLOYMENT]))
    assert not result.ok
    assert not result.cancelled
    assert isinstance(result.error, ApplyFailure)
    assert result.error.resource_id == CONFIG_A.identity
    assert result.error.attempts == 3
    assert "Injected apply failure" in result.error.cause
    # The other operation in the tier finishes, the next tier never starts
    assert [str(op) for op in result.applied] == ["create ConfigMap/default/config-b"]
    assert DEPLOYMENT.identity not in cluster.resources


async def test_readiness_timeout(
    reconciler: Reconciler, cluster: InMemoryCluster
) -> None:
    cluster.never_ready(DEPLOYMENT.identity)
    result = await reconciler.execute(compute_plan([], [DEPLOYMENT]))
    assert isinstance(result.error, ReadinessTimeout)
    assert result.error.attempts == 3
    assert result.error.cause == "not ready after 0.2s"
    assert result.applied == []


async def test_delete_after_applies(
    reconciler: Reconciler, cluster: InMemoryCluster
) -> None:
    await cluster.apply(CONFIG_A)
    await cluster.apply(DEPLOYMENT)
    cluster.apply_log.clear()

    plan = compute_plan([CONFIG_A, DEPLOYMENT], [CONFIG_B])
    result = await reconciler.execute(plan)
    assert result.ok
    assert cluster.apply_log == [
        ("apply", CONFIG_B.identity),
        ("delete", DEPLOYMENT.identity),
        ("delete", CONFIG_A.identity),
    ]
    assert set(cluster.resources) == {CONFIG_B.identity}


async def test_cancel_before_start(
    reconciler: Reconciler, cluster: InMemoryCluster
) -> None:
    cancel = asyncio.Event()
    cancel.set()
    result = await reconciler.execute(compute_plan([], [CONFIG_A]), cancel=cancel)
    assert result.cancelled
    assert isinstance(result.error, ApplyCancelled)
    assert str(result.error) == "Apply cancelled after 0 operation(s)"
    assert cluster.resources == {}


async def test_cancel_between_tiers(reconciler_config: ReconcilerConfig) -> None:
    """Test that a running tier finishes before cancellation takes effect."""
    cancel = asyncio.Event()

    class CancellingCluster(InMemoryCluster):
        async def apply(self, resource: Resource) -> None:
            await super().apply(resource)
            cancel.set()

    cluster = CancellingCluster()
    reconciler = Reconciler(cluster, reconciler_config)
    result = await reconciler.execute(
        compute_plan([], [NAMESPACE, DEPLOYMENT]), cancel=cancel
    )
    assert result.cancelled
    assert [str(op) for op in result.applied] == ["create Namespace/apps"]
    assert set(cluster.resources) == {NAMESPACE.identity}


async def test_unexpected_error_propagates(
    reconciler_config: ReconcilerConfig,
) -> None:
    reconciler = Reconciler(BrokenCluster(), reconciler_config)
    with pytest.raises(RuntimeError, match="connection reset"):
        await reconciler.execute(compute_plan([], [CONFIG_A]))
